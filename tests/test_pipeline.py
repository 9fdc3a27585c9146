from dataclasses import replace

import pytest

from image_resizer.crop import session as sm
from image_resizer.crop.geometry import CropRect
from image_resizer.errors import EmptyRegionError, EncodeError, UnsupportedFormatError
from image_resizer.image_engine.decoder import decode_buffer, probe_dimensions
from image_resizer.image_engine.pipeline import (
    TransformParams,
    apply_watermark,
    encode,
    export_image,
    fit_dimensions,
    output_filename,
    render_preview,
    transform_buffer,
)

RED = (255, 0, 0)
BLUE = (0, 0, 255)


def _session(width=80, height=60, fmt="PNG") -> sm.Session:
    s = sm.open_session(sm.new_session(), sm.ImageMeta(width, height, "split.png"))
    return sm.set_export_format(s, fmt)


def _rgb(data: bytes, x: int, y: int) -> tuple[int, int, int]:
    arr = decode_buffer(data)
    return tuple(int(v) for v in arr[y, x])


def test_full_extent_export_keeps_size(vips, split_image):
    out = export_image(_session(), split_image())
    assert (out.width, out.height) == (80, 60)
    assert out.data.startswith(b"\x89PNG")
    assert out.mime_type == "image/png"


def test_crop_selects_region(vips, split_image):
    s = sm.set_crop_rect(_session(), x=40, y=0, width=40, height=60)
    out = export_image(s, split_image())
    assert (out.width, out.height) == (40, 60)
    assert _rgb(out.data, 20, 30) == BLUE
    assert _rgb(out.data, 0, 0) == BLUE


def test_rotation_is_applied_before_crop(vips, split_image):
    s = sm.rotate(_session(), "cw")
    out = export_image(s, split_image())
    assert (out.width, out.height) == (60, 80)
    # the left (red) half ends up on top after a clockwise turn
    assert _rgb(out.data, 30, 10) == RED
    assert _rgb(out.data, 30, 70) == BLUE

    cropped = sm.set_crop_rect(s, x=0, y=40, width=60, height=40)
    out = export_image(cropped, split_image())
    assert (out.width, out.height) == (60, 40)
    assert _rgb(out.data, 30, 20) == BLUE


def test_flip_mirrors_output_and_crop_follows_pixels(vips, split_image):
    flipped = sm.flip(_session(), "h")
    out = export_image(flipped, split_image())
    assert _rgb(out.data, 5, 30) == BLUE
    assert _rgb(out.data, 75, 30) == RED

    # the left half of the unflipped image is the red half
    cropped = sm.set_crop_rect(flipped, x=0, y=0, width=40, height=60)
    out = export_image(cropped, split_image())
    assert (out.width, out.height) == (40, 60)
    assert _rgb(out.data, 20, 30) == RED


def test_resize_applies_after_crop(vips, split_image):
    s = sm.set_resize_width(_session(), 40)
    out = export_image(s, split_image())
    assert (out.width, out.height) == (40, 30)

    s = sm.set_crop_rect(_session(), x=0, y=0, width=40, height=60)
    s = sm.set_percentage(s, 50)
    out = export_image(s, split_image())
    assert (out.width, out.height) == (20, 30)


@pytest.mark.parametrize(
    ("fmt", "magic"),
    [("JPEG", b"\xff\xd8"), ("PNG", b"\x89PNG"), ("WebP", b"RIFF")],
)
def test_export_formats(vips, split_image, fmt, magic):
    out = export_image(_session(fmt=fmt), split_image())
    assert out.data.startswith(magic)
    assert out.format.value == fmt


def test_original_format_follows_source(vips, split_image):
    out = export_image(_session(fmt="Original"), split_image(fmt="JPEG"))
    assert out.format is sm.ExportFormat.JPEG
    out = export_image(_session(fmt="Original"), split_image(fmt="PNG"))
    assert out.format is sm.ExportFormat.PNG


def test_target_byte_size_lowers_quality(vips, noise_jpeg):
    s = sm.set_export_quality(_session(200, 200, fmt="JPEG"), 95)
    full = export_image(s, noise_jpeg)
    budget = len(full.data) // 2
    small = export_image(sm.set_target_byte_size(s, budget), noise_jpeg)
    assert len(small.data) <= budget
    assert small.quality is not None and small.quality < 95


def test_empty_region_is_rejected(vips, split_image):
    s = replace(_session(), crop=CropRect(100, 100, 10, 10))
    with pytest.raises(EmptyRegionError):
        export_image(s, split_image())


def test_encode_requires_concrete_format(vips):
    with pytest.raises(UnsupportedFormatError):
        encode(vips.Image.black(4, 4, bands=3), sm.ExportFormat.ORIGINAL, 80)


def test_watermark_marks_bottom_right(vips):
    base = vips.Image.black(200, 200, bands=3)
    try:
        marked = apply_watermark(base, "SAMPLE")
    except EncodeError as e:
        pytest.skip(f"text rendering unavailable: {e}")
    assert (marked.width, marked.height, marked.bands) == (200, 200, 3)
    assert marked.crop(100, 150, 100, 50).max() > 0
    assert marked.crop(0, 0, 50, 50).max() == 0


def test_render_preview_is_oriented_and_bounded(vips, split_image):
    s = sm.rotate(_session(), "cw")
    arr = render_preview(s, split_image())
    assert arr.shape == (80, 60, 3)
    small = render_preview(s, split_image(), max_side=40)
    assert small.shape == (40, 30, 3)


def test_transform_buffer_fit_modes(vips, split_image):
    src = split_image(80, 60)
    inside = transform_buffer(src, TransformParams(width=40, height=40, format=sm.ExportFormat.PNG))
    assert probe_dimensions(inside.data) == (40, 30)
    cover = transform_buffer(src, TransformParams(width=40, height=40, fit="cover", format=sm.ExportFormat.PNG))
    assert probe_dimensions(cover.data) == (40, 40)
    width_only = transform_buffer(src, TransformParams(width=20))
    assert (width_only.width, width_only.height) == (20, 15)
    assert width_only.format is sm.ExportFormat.PNG


def test_fit_dimensions():
    assert fit_dimensions(800, 600, 400, 400, "inside") == (400, 300)
    assert fit_dimensions(800, 600, 400, 400, "cover") == (400, 400)
    assert fit_dimensions(800, 600, 200, None, "inside") == (200, 150)
    assert fit_dimensions(800, 600, None, 300, "cover") == (400, 300)
    assert fit_dimensions(800, 600, None, None, "inside") == (800, 600)


def test_output_filename():
    assert output_filename("holiday.jpeg", 800, 600, "jpg") == "holiday_800x600.jpg"
    assert output_filename("dir/shot.png", 500, None, "webp") == "shot_500w.webp"
    assert output_filename("shot.png", None, 300, "png") == "shot_300h.png"
    assert output_filename("", None, None, "png") == "image.png"
