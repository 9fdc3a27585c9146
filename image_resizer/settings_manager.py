from __future__ import annotations

import json
import os
from typing import Any

from .logger import get_logger

_logger = get_logger("settings")


class SettingsManager:
    def __init__(self, settings_path: str | None = None):
        self.settings_path = settings_path
        self._settings: dict[str, Any] = {}
        self.load()

    DEFAULTS: dict[str, Any] = {
        "min_crop_px": 10,
        "nudge_step": 1,
        "nudge_large_step": 10,
        "zoom_min": 0.1,
        "zoom_max": 8.0,
        "zoom_step": 1.25,
        "handle_size": 12,
        "default_quality": 80,
        "default_format": "Original",
        "free_max_files": 1,
        "free_max_file_mb": 10,
        "pro_max_files": 50,
        "pro_max_file_mb": 100,
        "pro_max_total_mb": 500,
        "watermark_text": "image-resizer",
        "presets_path": None,
        "pro_tokens": [],
    }

    def load(self) -> None:
        try:
            if self.settings_path and os.path.exists(self.settings_path):
                with open(self.settings_path, encoding="utf-8") as f:
                    data = json.load(f)
                    if isinstance(data, dict):
                        self._settings = data
                        _logger.debug("settings loaded: %s", self.settings_path)
                        return
                    _logger.warning("settings file is not a JSON object: %s", self.settings_path)
        except (OSError, ValueError) as e:
            _logger.warning("settings load failed: %s", e)
        self._settings = {}

    def save(self) -> None:
        if not self.settings_path:
            return
        try:
            parent = os.path.dirname(self.settings_path)
            if parent:
                os.makedirs(parent, exist_ok=True)
            with open(self.settings_path, "w", encoding="utf-8") as f:
                json.dump(self._settings, f, ensure_ascii=False, indent=2)
            _logger.debug("settings saved: %s", self.settings_path)
        except OSError as e:
            _logger.error("settings save failed: %s", e)

    def get(self, key: str, default: Any = None) -> Any:
        if key in self._settings:
            return self._settings[key]
        if default is not None:
            return default
        return self.DEFAULTS.get(key)

    def has(self, key: str) -> bool:
        return key in self._settings

    def set(self, key: str, value: Any) -> None:
        self._settings[key] = value
        self.save()

    @property
    def data(self) -> dict[str, Any]:
        return self._settings

    @property
    def min_crop_px(self) -> int:
        try:
            return max(1, int(self.get("min_crop_px")))
        except (TypeError, ValueError):
            _logger.warning("invalid min_crop_px: %r", self.get("min_crop_px"))
            return int(self.DEFAULTS["min_crop_px"])

    @property
    def zoom_range(self) -> tuple[float, float]:
        lo = float(self.get("zoom_min"))
        hi = float(self.get("zoom_max"))
        if lo <= 0 or hi < lo:
            _logger.warning("invalid zoom range %s..%s, using defaults", lo, hi)
            return float(self.DEFAULTS["zoom_min"]), float(self.DEFAULTS["zoom_max"])
        return lo, hi

    @property
    def pro_tokens(self) -> set[str]:
        """Configured entitlement tokens plus any from the PRO_TOKENS env var."""
        tokens: set[str] = set()
        raw = self.get("pro_tokens")
        if isinstance(raw, str):
            raw = raw.split(",")
        if isinstance(raw, list):
            tokens.update(str(t).strip() for t in raw if str(t).strip())
        env = os.getenv("PRO_TOKENS") or ""
        tokens.update(t.strip() for t in env.split(",") if t.strip())
        return tokens
