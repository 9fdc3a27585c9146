"""Export pipeline: session snapshot + source buffer -> encoded image.

Order is fixed: decode, rotate then flip, crop, resize, watermark, encode.
The crop rect is stored in rotated (canonical) space, so after the flips
are baked into the buffer it is mirrored to address the same pixels.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np

from image_resizer.crop.geometry import map_crop_through_flip
from image_resizer.crop.session import ExportFormat, Session, resolve_output_size
from image_resizer.errors import EmptyRegionError, EncodeError, UnsupportedFormatError
from image_resizer.logger import get_logger

from .decoder import _get_pyvips_module, load_image, source_loader, to_rgb_array, to_srgb

if TYPE_CHECKING:
    from image_resizer.presets import PresetCatalog

_logger = get_logger("pipeline")

# format -> (suffix passed to write_to_buffer, file extension, mime type)
_FORMATS: dict[ExportFormat, tuple[str, str, str]] = {
    ExportFormat.JPEG: (".jpg", "jpg", "image/jpeg"),
    ExportFormat.PNG: (".png", "png", "image/png"),
    ExportFormat.WEBP: (".webp", "webp", "image/webp"),
}

WATERMARK_OPACITY = 0.45


@dataclass(frozen=True, slots=True)
class EncodedImage:
    data: bytes
    format: ExportFormat
    width: int
    height: int
    quality: int | None = None

    @property
    def extension(self) -> str:
        return _FORMATS[self.format][1]

    @property
    def mime_type(self) -> str:
        return _FORMATS[self.format][2]


@dataclass(frozen=True, slots=True)
class TransformParams:
    """Server-side transform request (no crop session involved)."""

    width: int | None = None
    height: int | None = None
    fit: str = "inside"
    format: ExportFormat = ExportFormat.ORIGINAL
    quality: int = 80
    watermark_text: str | None = None


def resolve_format(fmt: ExportFormat, loader: str) -> ExportFormat:
    """Map ORIGINAL to the source's format; anything without an encoder becomes JPEG."""
    if fmt is not ExportFormat.ORIGINAL:
        if fmt not in _FORMATS:
            raise UnsupportedFormatError(f"unsupported export format: {fmt}")
        return fmt
    if loader.startswith("png"):
        return ExportFormat.PNG
    if loader.startswith("webp"):
        return ExportFormat.WEBP
    return ExportFormat.JPEG


# ---- stages ----


def orient(image: Any, rotation: int, flip_horizontal: bool, flip_vertical: bool) -> Any:
    turns = (int(rotation) // 90) % 4
    if turns == 1:
        image = image.rot90()
    elif turns == 2:
        image = image.rot180()
    elif turns == 3:
        image = image.rot270()
    if flip_horizontal:
        image = image.fliphor()
    if flip_vertical:
        image = image.flipver()
    return image


def crop_oriented(image: Any, session: Session) -> Any:
    view = session.view
    rect = map_crop_through_flip(session.crop, image.width, image.height, view.flip_horizontal, view.flip_vertical)
    left, top, width, height = rect.to_pixels()
    left = max(0, min(left, image.width))
    top = max(0, min(top, image.height))
    width = min(width, image.width - left)
    height = min(height, image.height - top)
    if width <= 0 or height <= 0:
        _logger.error("crop resolved to an empty region: %s on %dx%d", session.crop, image.width, image.height)
        raise EmptyRegionError(f"crop resolves to an empty region ({width}x{height})")
    if (left, top, width, height) == (0, 0, image.width, image.height):
        return image
    return image.crop(left, top, width, height)


def resize_to(image: Any, width: int, height: int) -> Any:
    if (image.width, image.height) == (width, height):
        return image
    return image.thumbnail_image(int(width), height=int(height), size="force")


def apply_watermark(image: Any, text: str, opacity: float = WATERMARK_OPACITY) -> Any:
    """Stamp semi-transparent white text into the bottom-right corner."""
    pyvips = _get_pyvips_module()
    image = to_srgb(image)
    if image.bands < 3:
        image = pyvips.Image.bandjoin([image] * 3)
    size = max(8, min(image.width, image.height) // 16)
    try:
        mask = pyvips.Image.text(text, font=f"sans bold {size}", dpi=72)
    except pyvips.Error as e:
        _logger.warning("watermark text rendering failed: %s", e)
        raise EncodeError(f"failed to render watermark: {e}") from e
    if mask.width >= image.width or mask.height >= image.height:
        mask = mask.thumbnail_image(max(1, image.width // 2), height=max(1, image.height // 2))
    alpha = (mask * opacity).cast("uchar")
    overlay = alpha.new_from_image([255, 255, 255]).bandjoin(alpha).copy(interpretation="srgb")

    had_alpha = image.hasalpha()
    base = image if had_alpha else image.bandjoin(255)
    margin = max(4, size // 2)
    x = max(0, base.width - overlay.width - margin)
    y = max(0, base.height - overlay.height - margin)
    out = base.composite2(overlay, "over", x=x, y=y).cast("uchar")
    if not had_alpha:
        out = out.extract_band(0, n=3)
    return out


def _encode_once(image: Any, fmt: ExportFormat, quality: int) -> bytes:
    suffix = _FORMATS[fmt][0]
    if fmt is ExportFormat.PNG:
        out = image.write_to_buffer(suffix)
    else:
        if fmt is ExportFormat.JPEG and image.hasalpha():
            image = image.flatten(background=[255, 255, 255])
        out = image.write_to_buffer(suffix, Q=max(1, min(100, int(quality))))
    # Normalize to bytes in case pyvips returns a memoryview-like object
    return out if isinstance(out, bytes) else bytes(out)


def encode(image: Any, fmt: ExportFormat, quality: int, target_byte_size: int | None = None) -> EncodedImage:
    """Encode image; lossy formats search quality downward to meet target_byte_size."""
    pyvips = _get_pyvips_module()
    if fmt not in _FORMATS:
        raise UnsupportedFormatError(f"unsupported export format: {fmt}")
    image = to_srgb(image)
    try:
        data = _encode_once(image, fmt, quality)
        used: int | None = None if fmt is ExportFormat.PNG else quality
        if target_byte_size and fmt is not ExportFormat.PNG and len(data) > target_byte_size:
            data, used = _fit_byte_size(image, fmt, quality, target_byte_size, data)
    except pyvips.Error as e:
        _logger.warning("encode %s failed: %s", fmt.value, e)
        raise EncodeError(f"failed to encode {fmt.value}: {e}") from e
    if not data:
        raise EncodeError(f"encoder produced no data for {fmt.value}")
    return EncodedImage(data, fmt, int(image.width), int(image.height), used)


def _fit_byte_size(image: Any, fmt: ExportFormat, quality: int, budget: int, first: bytes) -> tuple[bytes, int]:
    lo, hi = 1, max(1, int(quality) - 1)
    best: tuple[bytes, int] | None = None
    smallest = (first, quality)
    while lo <= hi:
        q = (lo + hi) // 2
        data = _encode_once(image, fmt, q)
        if len(data) <= budget:
            best = (data, q)
            lo = q + 1
        else:
            if len(data) < len(smallest[0]):
                smallest = (data, q)
            hi = q - 1
    if best is None:
        _logger.warning("target size %d bytes not reachable; smallest was %d", budget, len(smallest[0]))
        return smallest
    _logger.debug("target size %d bytes met at quality %d (%d bytes)", budget, best[1], len(best[0]))
    return best


# ---- entry points ----


def export_image(
    session: Session,
    buffer: bytes,
    catalog: PresetCatalog | None = None,
    watermark_text: str | None = None,
) -> EncodedImage:
    """Render the session's final output from the source buffer."""
    if session.image is None:
        raise EmptyRegionError("no image loaded")
    image = load_image(buffer)
    loader = source_loader(image)
    fmt = resolve_format(session.export.format, loader)

    view = session.view
    image = orient(image, view.rotation, view.flip_horizontal, view.flip_vertical)
    image = crop_oriented(image, session)
    width, height = resolve_output_size(session, catalog)
    image = resize_to(image, width, height)
    if session.export.watermark and watermark_text:
        image = apply_watermark(image, watermark_text)

    result = encode(image, fmt, session.export.quality, session.export.target_byte_size)
    _logger.debug(
        "export: %s %dx%d -> %s %dx%d (%d bytes)",
        session.image.source_ref,
        session.image.pixel_width,
        session.image.pixel_height,
        fmt.value,
        result.width,
        result.height,
        len(result.data),
    )
    return result


def render_preview(session: Session, buffer: bytes, max_side: int = 1024) -> "np.ndarray":
    """Oriented (uncropped) RGB preview for the canvas, bounded to max_side."""
    image = load_image(buffer)
    if max(image.width, image.height) > max_side:
        image = image.thumbnail_image(int(max_side), height=int(max_side))
    view = session.view
    image = orient(image, view.rotation, view.flip_horizontal, view.flip_vertical)
    return to_rgb_array(image)


def fit_dimensions(src_w: int, src_h: int, width: int | None, height: int | None, fit: str) -> tuple[int, int]:
    """Output size for a server resize request."""
    if width and height:
        if fit == "cover":
            return width, height
        scale = min(width / src_w, height / src_h)
        return max(1, round(src_w * scale)), max(1, round(src_h * scale))
    if width:
        return width, max(1, round(src_h * width / src_w))
    if height:
        return max(1, round(src_w * height / src_h)), height
    return src_w, src_h


def transform_buffer(buffer: bytes, params: TransformParams) -> EncodedImage:
    """Autorotate, resize by fit mode, optionally watermark, and encode."""
    image = load_image(buffer)
    fmt = resolve_format(params.format, source_loader(image))
    width, height = fit_dimensions(image.width, image.height, params.width, params.height, params.fit)
    if params.fit == "cover" and params.width and params.height:
        image = image.thumbnail_image(width, height=height, crop="centre")
    else:
        image = resize_to(image, width, height)
    if params.watermark_text:
        image = apply_watermark(image, params.watermark_text)
    return encode(image, fmt, params.quality)


def output_filename(original_name: str, width: int | None, height: int | None, extension: str) -> str:
    """`<base>_<w>x<h>.<ext>`, `<base>_<w>w.<ext>` or `<base>_<h>h.<ext>`."""
    base = os.path.splitext(os.path.basename(original_name or ""))[0] or "image"
    if width and height:
        suffix = f"_{width}x{height}"
    elif width:
        suffix = f"_{width}w"
    elif height:
        suffix = f"_{height}h"
    else:
        suffix = ""
    return f"{base}{suffix}.{extension}"
