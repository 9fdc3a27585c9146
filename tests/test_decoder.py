import pytest

from image_resizer.errors import DecodeError
from image_resizer.image_engine.decoder import decode_buffer, load_image, probe_dimensions, source_loader


def test_probe_dimensions_png(vips, split_image):
    assert probe_dimensions(split_image(123, 45)) == (123, 45)


def test_probe_applies_exif_orientation(vips, encode):
    from PIL import Image

    img = Image.new("RGB", (80, 60), (10, 20, 30))
    exif = Image.Exif()
    exif[0x0112] = 6  # rotate 90 cw on display
    data = encode(img, "JPEG", exif=exif.tobytes())
    assert probe_dimensions(data) == (60, 80)
    assert (load_image(data, autorotate=False).width, load_image(data, autorotate=False).height) == (80, 60)


def test_source_loader_names_format(vips, split_image):
    assert source_loader(load_image(split_image(fmt="PNG"))).startswith("png")
    assert source_loader(load_image(split_image(fmt="JPEG"))).startswith("jpeg")


@pytest.mark.parametrize("data", [b"", b"not an image at all"])
def test_undecodable_buffers_raise(vips, data):
    with pytest.raises(DecodeError):
        probe_dimensions(data)


def test_decode_buffer_returns_rgb_array(vips, split_image):
    arr = decode_buffer(split_image(80, 60))
    assert arr.shape == (60, 80, 3)
    assert tuple(arr[0, 0]) == (255, 0, 0)
    assert tuple(arr[0, 79]) == (0, 0, 255)


def test_decode_buffer_bounds_longest_side(vips, split_image):
    arr = decode_buffer(split_image(200, 100), max_side=50)
    assert arr.shape == (25, 50, 3)


def test_decode_buffer_flattens_alpha(vips, encode):
    from PIL import Image

    img = Image.new("RGBA", (10, 10), (0, 255, 0, 255))
    arr = decode_buffer(encode(img, "PNG"))
    assert arr.shape == (10, 10, 3)
    assert tuple(arr[5, 5]) == (0, 255, 0)
