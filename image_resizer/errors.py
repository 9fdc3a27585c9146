"""Error kinds raised by the crop/export stack.

Geometry never raises for out-of-range input; it clamps. These errors cover
the collaborator boundaries (decode, validation, encode) and the invariant
violations the export pipeline asserts on.
"""

from __future__ import annotations


class ImageResizerError(Exception):
    """Base class for all project errors."""

    status = 500
    retryable = False


class DecodeError(ImageResizerError):
    """The image buffer could not be read or has no usable dimensions."""

    status = 400


class ValidationError(ImageResizerError):
    """Request is outside the caller's tier limits (file count/size)."""

    status = 400


class UnsupportedFormatError(ImageResizerError):
    """Export format is not one of the enumerated formats."""


class EmptyRegionError(ImageResizerError):
    """Crop resolved to zero area after clamping."""


class EncodeError(ImageResizerError):
    """Downstream encode failed; the session is kept so the user can retry."""

    retryable = True
