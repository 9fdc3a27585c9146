"""Image Engine - pyvips decode and export.

Usage:
    from image_resizer.image_engine import export_image, probe_dimensions

    width, height = probe_dimensions(buffer)
    encoded = export_image(session, buffer)
"""

from .decoder import decode_buffer, probe_dimensions
from .pipeline import EncodedImage, TransformParams, export_image, render_preview, transform_buffer

__all__ = [
    "EncodedImage",
    "TransformParams",
    "decode_buffer",
    "export_image",
    "probe_dimensions",
    "render_preview",
    "transform_buffer",
]
