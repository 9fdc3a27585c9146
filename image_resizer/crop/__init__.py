"""Crop package public API.

Pure crop engine: geometry, handles, the session state machine and the
pointer/keyboard controller. Nothing here imports Qt or pyvips.
"""

from .geometry import AspectRatio, CropRect, FitResult, Point, ViewTransform
from .handles import Handle
from .session import ExportFormat, ImageMeta, ResizeMode, Session, SessionState

__all__ = [
    "AspectRatio",
    "CropRect",
    "ExportFormat",
    "FitResult",
    "Handle",
    "ImageMeta",
    "Point",
    "ResizeMode",
    "Session",
    "SessionState",
    "ViewTransform",
]
