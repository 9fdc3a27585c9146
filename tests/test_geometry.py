from __future__ import annotations

import itertools

import pytest

from image_resizer.crop.geometry import (
    AspectRatio,
    CropRect,
    Point,
    ViewTransform,
    apply_aspect_ratio,
    clamp_crop,
    compute_dependent_dimension,
    display_delta_to_image,
    display_to_image_coords,
    fit_image_to_container,
    image_to_display_coords,
    map_crop_through_flip,
    move_crop,
    percentage_to_pixels,
    reproject_crop_on_rotate,
    resize_crop_by_handle,
)
from image_resizer.crop.handles import Handle


def _approx_rect(rect: CropRect, expected: tuple[float, float, float, float]) -> None:
    assert (rect.x, rect.y, rect.width, rect.height) == pytest.approx(expected, abs=1e-6)


# ---- fit ----


def test_fit_letterboxes_wide_image() -> None:
    fit = fit_image_to_container(800, 600, 400, 400)
    assert fit.scale == pytest.approx(0.5)
    assert (fit.scaled_w, fit.scaled_h) == pytest.approx((400, 300))
    assert (fit.offset_x, fit.offset_y) == pytest.approx((0, 50))


def test_fit_pillarboxes_tall_image() -> None:
    fit = fit_image_to_container(300, 600, 400, 400)
    assert (fit.scaled_w, fit.scaled_h) == pytest.approx((200, 400))
    assert (fit.offset_x, fit.offset_y) == pytest.approx((100, 0))


@pytest.mark.parametrize("dims", [(0, 600, 400, 400), (800, 600, 0, 400), (800, -1, 400, 400)])
def test_fit_degenerate_inputs_give_zero_fit(dims) -> None:
    fit = fit_image_to_container(*dims)
    assert fit.scale == 0
    assert fit.scaled_w == 0 and fit.scaled_h == 0


def test_fit_one_axis_matches_container() -> None:
    for iw, ih, cw, ch in [(1920, 1080, 640, 480), (50, 400, 300, 300), (333, 777, 1000, 10)]:
        fit = fit_image_to_container(iw, ih, cw, ch)
        assert fit.scaled_w <= cw + 1e-9 and fit.scaled_h <= ch + 1e-9
        assert fit.scaled_w == pytest.approx(cw) or fit.scaled_h == pytest.approx(ch)


# ---- coordinate mapping ----


def test_identity_view_maps_centre_to_centre() -> None:
    fit = fit_image_to_container(800, 600, 400, 300)
    p = display_to_image_coords(Point(200, 150), fit, ViewTransform())
    assert (p.x, p.y) == pytest.approx((400, 300))


def test_display_image_round_trip_for_every_orientation() -> None:
    points = [Point(0, 0), Point(123.4, 56.7), Point(799, 1), Point(400, 300)]
    for rotation, fh, fv, zoom, pan in itertools.product(
        (0, 90, 180, 270), (False, True), (False, True), (0.5, 1.0, 3.7), (Point(0, 0), Point(-35.5, 12))
    ):
        view = ViewTransform(zoom=zoom, pan=pan, rotation=rotation, flip_horizontal=fh, flip_vertical=fv)
        cw, ch = (600, 800) if rotation in (90, 270) else (800, 600)
        fit = fit_image_to_container(cw, ch, 500, 420)
        for p in points:
            back = display_to_image_coords(image_to_display_coords(p, fit, view), fit, view)
            assert back.x == pytest.approx(p.x, abs=1e-6)
            assert back.y == pytest.approx(p.y, abs=1e-6)


def test_drag_delta_follows_pointer_under_rotation() -> None:
    # 800x600 image rotated a quarter turn fills a 600x800 container at scale 1.
    fit = fit_image_to_container(600, 800, 600, 800)
    d = display_delta_to_image(10, 0, fit, ViewTransform(rotation=90))
    assert (d.x, d.y) == pytest.approx((10, 0))

    d = display_delta_to_image(10, 4, fit, ViewTransform(rotation=90, flip_horizontal=True))
    assert (d.x, d.y) == pytest.approx((-10, 4))

    d = display_delta_to_image(10, 4, fit, ViewTransform(rotation=270, zoom=2.0))
    assert (d.x, d.y) == pytest.approx((5, 2))


def test_view_transform_validates_and_normalises() -> None:
    assert ViewTransform(rotation=-90).rotation == 270
    assert ViewTransform(rotation=450).rotation == 90
    with pytest.raises(ValueError):
        ViewTransform(rotation=45)
    with pytest.raises(ValueError):
        ViewTransform(zoom=0)


# ---- clamp ----

_RECTS = [
    CropRect(-50, -20, 100, 100),
    CropRect(700, 500, 300, 300),
    CropRect(10, 10, 2, 3),
    CropRect(0, 0, 5000, 5000),
    CropRect(795, 595, 50, 50),
    CropRect(300, 200, -100, -50),
    CropRect(100.4, 99.6, 200.2, 150.9),
]


@pytest.mark.parametrize("rect", _RECTS)
def test_clamp_crop_enforces_bounds_and_floor(rect: CropRect) -> None:
    out = clamp_crop(rect, 800, 600, 10)
    assert out.x >= 0 and out.y >= 0
    assert out.right <= 800 + 1e-9
    assert out.bottom <= 600 + 1e-9
    assert out.width >= 10 and out.height >= 10


@pytest.mark.parametrize("rect", _RECTS)
def test_clamp_crop_is_idempotent(rect: CropRect) -> None:
    once = clamp_crop(rect, 800, 600, 10)
    twice = clamp_crop(once, 800, 600, 10)
    _approx_rect(twice, (once.x, once.y, once.width, once.height))


def test_clamp_prefers_shrinking_over_moving() -> None:
    out = clamp_crop(CropRect(700, 100, 300, 100), 800, 600, 10)
    _approx_rect(out, (700, 100, 100, 100))


def test_clamp_anchors_when_floor_does_not_fit() -> None:
    out = clamp_crop(CropRect(795, 595, 2, 2), 800, 600, 10)
    _approx_rect(out, (790, 590, 10, 10))


def test_clamp_enforces_ratio() -> None:
    out = clamp_crop(CropRect(0, 0, 400, 100, AspectRatio(1, 1)), 800, 600, 10)
    assert out.width / out.height == pytest.approx(1.0)
    assert out.x == pytest.approx(150)


def test_clamp_grows_to_smallest_ratio_rect_when_shrinking_breaks_floor() -> None:
    out = clamp_crop(CropRect(795, 0, 160, 90, AspectRatio(16, 9)), 800, 600, 10)
    assert out.width / out.height == pytest.approx(16 / 9)
    assert out.height == pytest.approx(10)
    assert out.right <= 800 + 1e-9
    _approx_rect(out, (800 - 160 / 9, 40, 160 / 9, 10))


def test_clamp_keeps_bounds_when_no_ratio_rect_fits() -> None:
    out = clamp_crop(CropRect(0, 0, 5, 5, AspectRatio(10, 1)), 50, 20, 10)
    _approx_rect(out, (0, 0, 10, 10))


def test_floor_larger_than_image_uses_image_extent() -> None:
    out = clamp_crop(CropRect(0, 0, 1, 1), 5, 4, 10)
    _approx_rect(out, (0, 0, 5, 4))


# ---- move / handles ----


def test_move_crop_shifts_without_resizing() -> None:
    out = move_crop(CropRect(700, 500, 80, 40), 100, 100, 800, 600)
    _approx_rect(out, (720, 560, 80, 40))
    out = move_crop(CropRect(10, 10, 80, 40), -50, -50, 800, 600)
    _approx_rect(out, (0, 0, 80, 40))


def test_freeform_corner_moves_two_edges() -> None:
    out = resize_crop_by_handle(Handle.SE, CropRect(100, 100, 200, 100), Point(10, 20), 800, 600, 10)
    _approx_rect(out, (100, 100, 210, 120))


def test_freeform_handle_clamps_to_image() -> None:
    out = resize_crop_by_handle("nw", CropRect(100, 100, 200, 100), Point(-500, -500), 800, 600, 10)
    _approx_rect(out, (0, 0, 300, 200))


def test_freeform_handle_never_inverts() -> None:
    out = resize_crop_by_handle(Handle.E, CropRect(100, 100, 200, 100), Point(-1000, 0), 800, 600, 10)
    _approx_rect(out, (100, 100, 10, 100))
    out = resize_crop_by_handle(Handle.N, CropRect(100, 100, 200, 100), Point(0, 1000), 800, 600, 10)
    _approx_rect(out, (100, 190, 200, 10))


def test_locked_corner_follows_dominant_axis() -> None:
    rect = CropRect(100, 100, 200, 100, AspectRatio(2, 1))
    out = resize_crop_by_handle(Handle.SE, rect, Point(40, 5), 800, 600, 10)
    _approx_rect(out, (100, 100, 240, 120))
    out = resize_crop_by_handle(Handle.SE, rect, Point(5, 40), 800, 600, 10)
    _approx_rect(out, (100, 100, 280, 140))


def test_locked_edge_grows_symmetrically() -> None:
    rect = CropRect(100, 100, 200, 100, AspectRatio(2, 1))
    out = resize_crop_by_handle(Handle.E, rect, Point(40, 0), 800, 600, 10)
    _approx_rect(out, (100, 90, 240, 120))
    out = resize_crop_by_handle(Handle.N, rect, Point(0, -20), 800, 600, 10)
    _approx_rect(out, (80, 80, 240, 120))


def test_locked_corner_stops_at_image_edge() -> None:
    rect = CropRect(700, 500, 80, 40, AspectRatio(2, 1))
    out = resize_crop_by_handle(Handle.SE, rect, Point(100, 0), 800, 600, 10)
    _approx_rect(out, (700, 500, 100, 50))


def test_handle_mirroring() -> None:
    assert Handle.SE.mirrored(horizontal=True, vertical=False) is Handle.SW
    assert Handle.SE.mirrored(horizontal=False, vertical=True) is Handle.NE
    assert Handle.N.mirrored(horizontal=True, vertical=False) is Handle.N
    assert Handle.NW.mirrored(horizontal=True, vertical=True) is Handle.SE
    assert Handle.NE.is_corner and not Handle.E.is_corner
    assert Handle.parse(" SW ") is Handle.SW


# ---- aspect ratio ----


def test_aspect_square_on_full_extent_is_centred() -> None:
    out = apply_aspect_ratio(CropRect(0, 0, 800, 600), AspectRatio(1, 1), 800, 600)
    _approx_rect(out, (100, 0, 600, 600))
    assert out.aspect_ratio == AspectRatio(1, 1)


@pytest.mark.parametrize("rect", [CropRect(0, 0, 800, 600), CropRect(50, 60, 300, 100), CropRect(700, 10, 90, 580)])
def test_aspect_four_three_holds(rect: CropRect) -> None:
    out = apply_aspect_ratio(rect, AspectRatio(4, 3), 800, 600, 10)
    assert abs(out.width / out.height - 4 / 3) < 1e-3
    assert out.x >= 0 and out.y >= 0 and out.right <= 800 + 1e-9 and out.bottom <= 600 + 1e-9


def test_aspect_none_clears_constraint() -> None:
    rect = CropRect(1, 2, 3, 4, AspectRatio(1, 1))
    assert apply_aspect_ratio(rect, None, 800, 600).aspect_ratio is None


def test_aspect_ratio_parse() -> None:
    assert AspectRatio.parse("16:9") == AspectRatio(16, 9)
    assert AspectRatio.parse("1:1 (Square)") == AspectRatio(1, 1)
    assert AspectRatio.parse("Free") is None
    assert AspectRatio.parse(None) is None
    assert str(AspectRatio.parse("1.91:1")) == "1.91:1"
    with pytest.raises(ValueError):
        AspectRatio.parse("wide")


# ---- rotation / flips ----


def test_quarter_turn_reprojection_swaps_size() -> None:
    out = reproject_crop_on_rotate(CropRect(100, 50, 200, 100), 0, 90, 800, 600)
    _approx_rect(out, (450, 100, 100, 200))


def test_four_quarter_turns_are_identity() -> None:
    rect = CropRect(100, 50, 200, 100, AspectRatio(2, 1))
    out = rect
    for old in (0, 90, 180, 270):
        out = reproject_crop_on_rotate(out, old, (old + 90) % 360, 800, 600)
    _approx_rect(out, (100, 50, 200, 100))
    assert out.aspect_ratio == AspectRatio(2, 1)


def test_counter_clockwise_turn_inverts_ratio() -> None:
    rect = CropRect(100, 50, 200, 100, AspectRatio(2, 1))
    out = reproject_crop_on_rotate(rect, 0, 270, 800, 600)
    _approx_rect(out, (50, 500, 100, 200))
    assert out.aspect_ratio == AspectRatio(1, 2)


def test_flip_mirrors_crop_position() -> None:
    rect = CropRect(100, 50, 200, 100)
    _approx_rect(map_crop_through_flip(rect, 800, 600, True, False), (500, 50, 200, 100))
    _approx_rect(map_crop_through_flip(rect, 800, 600, False, True), (100, 450, 200, 100))


# ---- resize arithmetic ----


def test_dependent_dimension() -> None:
    assert compute_dependent_dimension(400, "width", 800, 600) == 300
    assert compute_dependent_dimension(300, "height", 800, 600) == 400
    # half rounds up
    assert compute_dependent_dimension(3, "width", 2, 1) == 2
    with pytest.raises(ValueError):
        compute_dependent_dimension(10, "width", 0, 600)


def test_percentage_to_pixels() -> None:
    assert percentage_to_pixels(800, 600, 50) == (400, 300)
    assert percentage_to_pixels(801, 601, 50) == (401, 301)
    assert percentage_to_pixels(800, 600, 200) == (1600, 1200)
