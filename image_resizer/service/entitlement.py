from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from image_resizer.errors import ValidationError
from image_resizer.logger import get_logger

if TYPE_CHECKING:
    from flask import Request

    from image_resizer.settings_manager import SettingsManager

_logger = get_logger("entitlement")

COOKIE_NAME = "pro_access"
MB = 1024 * 1024


class TokenEntitlement:
    """Answers whether a caller token belongs to the paid tier."""

    def __init__(self, valid_tokens: Iterable[str] = ()):
        self._tokens = frozenset(t for t in valid_tokens if t)

    def is_entitled(self, token: str | None) -> bool:
        return bool(token) and token in self._tokens


def token_from_request(request: Request) -> str | None:
    """Caller token from the pro_access cookie, else an Authorization bearer."""
    token = request.cookies.get(COOKIE_NAME)
    if token:
        return token
    auth = request.headers.get("Authorization", "")
    scheme, _, value = auth.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return None


@dataclass(frozen=True, slots=True)
class TierLimits:
    free_max_files: int = 1
    free_max_file_mb: float = 10
    pro_max_files: int = 50
    pro_max_file_mb: float = 100
    pro_max_total_mb: float = 500

    @classmethod
    def from_settings(cls, settings: SettingsManager) -> TierLimits:
        return cls(
            free_max_files=int(settings.get("free_max_files")),
            free_max_file_mb=float(settings.get("free_max_file_mb")),
            pro_max_files=int(settings.get("pro_max_files")),
            pro_max_file_mb=float(settings.get("pro_max_file_mb")),
            pro_max_total_mb=float(settings.get("pro_max_total_mb")),
        )


def validate_uploads(uploads: list[tuple[str, int]], entitled: bool, limits: TierLimits) -> None:
    """Raise ValidationError if (name, size_bytes) uploads break the caller's tier."""
    if entitled:
        if not uploads:
            raise ValidationError("No files uploaded.")
        if len(uploads) > limits.pro_max_files:
            raise ValidationError(f"Too many files. Pro users may upload up to {limits.pro_max_files} files at once.")
        total_mb = 0.0
        for name, size in uploads:
            mb = size / MB
            total_mb += mb
            if mb > limits.pro_max_file_mb:
                raise ValidationError(f"File {name} exceeds the per-file limit of {limits.pro_max_file_mb:g}MB.")
        if total_mb > limits.pro_max_total_mb:
            raise ValidationError(f"Batch total exceeds {limits.pro_max_total_mb:g}MB.")
        return

    # Free tier: exactly the allowed number of files.
    if len(uploads) != limits.free_max_files:
        plural = "" if limits.free_max_files == 1 else "s"
        raise ValidationError(f"Free users may upload exactly {limits.free_max_files} file{plural}.")
    for name, size in uploads:
        if size / MB > limits.free_max_file_mb:
            _logger.debug("free upload too large: %s (%d bytes)", name, size)
            raise ValidationError(f"File exceeds the free limit of {limits.free_max_file_mb:g}MB.")
