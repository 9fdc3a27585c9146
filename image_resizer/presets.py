"""Named size presets (social platforms and marketplaces).

The catalog maps platform -> preset -> size. It is loaded from the packaged
``data/social_presets.json`` (or a user supplied file); if that fails a small
built-in fallback keeps the resize panel usable.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from importlib import resources
from typing import Any

from .crop.geometry import AspectRatio
from .logger import get_logger

_logger = get_logger("presets")


@dataclass(frozen=True, slots=True)
class PresetSize:
    width: int
    height: int
    aspect: str

    @property
    def aspect_ratio(self) -> AspectRatio:
        try:
            parsed = AspectRatio.parse(self.aspect)
        except ValueError:
            parsed = None
        return parsed or AspectRatio(self.width, self.height)


FALLBACK_PRESETS: dict[str, dict[str, dict[str, Any]]] = {
    "Instagram": {
        "post_square": {"w": 1080, "h": 1080, "aspect": "1:1"},
        "post_portrait": {"w": 1080, "h": 1350, "aspect": "4:5"},
    },
    "OpenGraph": {
        "og": {"w": 1200, "h": 630, "aspect": "1200:630"},
    },
}

# Square marketplace listings, selectable on the export service via `preset=`.
MARKETPLACE_PRESETS: dict[str, PresetSize] = {
    "amazon": PresetSize(2000, 2000, "1:1"),
    "etsy": PresetSize(2000, 2000, "1:1"),
    "shopify": PresetSize(2048, 2048, "1:1"),
    "ebay": PresetSize(1600, 1600, "1:1"),
}


def _parse_size(platform: str, name: str, spec: Any) -> PresetSize:
    if not isinstance(spec, dict):
        raise ValueError(f"preset {platform}/{name} is not an object")
    w = int(spec.get("w", spec.get("width", 0)))
    h = int(spec.get("h", spec.get("height", 0)))
    if w <= 0 or h <= 0:
        raise ValueError(f"preset {platform}/{name} has invalid size {w}x{h}")
    aspect = str(spec.get("aspect") or f"{w}:{h}")
    return PresetSize(w, h, aspect)


class PresetCatalog:
    def __init__(self, data: dict[str, dict[str, Any]]):
        self._presets: dict[str, dict[str, PresetSize]] = {}
        for platform, entries in data.items():
            if not isinstance(entries, dict):
                raise ValueError(f"platform {platform} is not an object")
            self._presets[str(platform)] = {
                str(name): _parse_size(platform, name, spec) for name, spec in entries.items()
            }

    def platforms(self) -> list[str]:
        return sorted(self._presets)

    def presets(self, platform: str) -> list[str]:
        return list(self._presets.get(platform, {}))

    def resolve(self, platform: str, preset: str) -> PresetSize:
        try:
            return self._presets[platform][preset]
        except KeyError:
            raise KeyError(f"unknown preset {platform}/{preset}") from None

    def to_dict(self) -> dict[str, dict[str, dict[str, Any]]]:
        return {
            platform: {name: {"w": s.width, "h": s.height, "aspect": s.aspect} for name, s in entries.items()}
            for platform, entries in self._presets.items()
        }


def load_catalog(path: str | None = None) -> PresetCatalog:
    """Load the preset catalog from path (or the packaged file), with fallback."""
    try:
        if path:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        else:
            text = resources.files("image_resizer").joinpath("data/social_presets.json").read_text(encoding="utf-8")
            data = json.loads(text)
        if not isinstance(data, dict) or not data:
            raise ValueError("preset catalog must be a non-empty object")
        catalog = PresetCatalog(data)
        _logger.debug("presets loaded: %d platforms from %s", len(catalog.platforms()), path or "package")
        return catalog
    except (OSError, ValueError) as e:
        _logger.warning("preset catalog load failed (%s); using built-in fallback", e)
        return PresetCatalog(FALLBACK_PRESETS)
