"""Image decoding using pyvips.

Everything works on in-memory buffers: uploads arrive as bytes and the
session only needs their dimensions until export time.
"""

import contextlib
from typing import Any

import numpy as np

from image_resizer.errors import DecodeError
from image_resizer.logger import get_logger

_logger = get_logger("decoder")

RGB_CHANNELS = 3

_pyvips: Any | None = None


def _get_pyvips_module() -> Any:
    global _pyvips
    if _pyvips is None:
        import pyvips  # type: ignore

        # Configure pyvips caches to avoid memory growth
        with contextlib.suppress(Exception):
            pyvips.cache_set_max(0)
            pyvips.cache_set_max_mem(0)
            pyvips.cache_set_max_files(0)
        _pyvips = pyvips
    return _pyvips


def load_image(buffer: bytes, autorotate: bool = True) -> Any:
    """Open an encoded buffer as a pyvips image (EXIF orientation applied)."""
    pyvips = _get_pyvips_module()
    if not buffer:
        raise DecodeError("empty image buffer")
    try:
        image = pyvips.Image.new_from_buffer(buffer, "")
        if autorotate:
            image = image.autorot()
    except pyvips.Error as e:
        _logger.debug("load failed: %s", e)
        raise DecodeError(f"unreadable image: {e}") from e
    return image


def source_loader(image: Any) -> str:
    """Name of the libvips loader that opened image, e.g. "pngload_buffer"."""
    with contextlib.suppress(Exception):
        return str(image.get("vips-loader"))
    return ""


def probe_dimensions(buffer: bytes) -> tuple[int, int]:
    """Return (width, height) of an encoded image without decoding pixels."""
    image = load_image(buffer)
    width, height = int(image.width), int(image.height)
    if width <= 0 or height <= 0:
        raise DecodeError(f"could not determine dimensions ({width}x{height})")
    _logger.debug("probe: %dx%d loader=%s", width, height, source_loader(image))
    return width, height


def to_srgb(image: Any) -> Any:
    """Normalise to 8-bit sRGB, keeping an alpha band if present."""
    with contextlib.suppress(Exception):
        image = image.colourspace("srgb")
    if image.format != "uchar":
        image = image.cast("uchar")
    return image


def to_rgb_array(image: Any) -> "np.ndarray":
    """Flatten a pyvips image into an (h, w, 3) uint8 numpy array."""
    pyvips = _get_pyvips_module()
    image = to_srgb(image)
    if image.hasalpha():
        image = image.flatten(background=[0, 0, 0])
    if image.bands > RGB_CHANNELS:
        image = image.extract_band(0, n=RGB_CHANNELS)
    elif image.bands < RGB_CHANNELS:
        image = pyvips.Image.bandjoin([image] * RGB_CHANNELS)
    if image.format != "uchar":
        image = image.cast("uchar")

    mem = image.write_to_memory()
    array = np.frombuffer(mem, dtype=np.uint8).reshape(image.height, image.width, image.bands)
    array = array.copy()
    if array.shape[2] != RGB_CHANNELS:
        raise DecodeError(f"Unsupported band count after conversion: {array.shape[2]}")
    return array


def decode_buffer(buffer: bytes, max_side: int | None = None) -> "np.ndarray":
    """Decode buffer into an RGB numpy array, optionally bounded to max_side."""
    image = load_image(buffer)
    if max_side and max(image.width, image.height) > max_side:
        image = image.thumbnail_image(int(max_side), height=int(max_side))
    return to_rgb_array(image)
