"""Crop geometry: pure coordinate and rectangle math.

Three coordinate spaces are involved:

- native image space: pixels of the decoded image;
- canonical image space: native space after the session's quarter-turn
  rotation (the space a CropRect lives in);
- display space: container pixels after fit, zoom and pan.

Everything here is stateless. The crop operations clamp out-of-range input
instead of raising, so rounding drift during a drag never breaks an
interaction.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, replace
from typing import Literal

from .handles import Handle

_RATIO_TOL = 1e-6
_EPS = 1e-9
_RATIO_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*[:x/]\s*(\d+(?:\.\d+)?)")


@dataclass(frozen=True, slots=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True, slots=True)
class AspectRatio:
    w: float
    h: float

    def __post_init__(self) -> None:
        if self.w <= 0 or self.h <= 0:
            raise ValueError(f"aspect ratio terms must be positive: {self.w}:{self.h}")

    @property
    def value(self) -> float:
        return self.w / self.h

    def inverted(self) -> AspectRatio:
        return AspectRatio(self.h, self.w)

    def __str__(self) -> str:
        return f"{self.w:g}:{self.h:g}"

    @classmethod
    def parse(cls, text: str | AspectRatio | None) -> AspectRatio | None:
        """Parse "16:9", "1:1 (Square)" or "Free"/None (no constraint)."""
        if text is None or isinstance(text, AspectRatio):
            return text
        s = str(text).strip()
        if not s or s.lower().startswith("free"):
            return None
        m = _RATIO_RE.match(s)
        if m is None:
            raise ValueError(f"invalid aspect ratio: {text!r}")
        return cls(float(m.group(1)), float(m.group(2)))


@dataclass(frozen=True, slots=True)
class CropRect:
    """Crop rectangle in canonical image space."""

    x: float
    y: float
    width: float
    height: float
    aspect_ratio: AspectRatio | None = None

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> Point:
        return Point(self.x + self.width / 2.0, self.y + self.height / 2.0)

    def normalized(self) -> CropRect:
        x, y, w, h = float(self.x), float(self.y), float(self.width), float(self.height)
        if w < 0:
            x = x + w
            w = -w
        if h < 0:
            y = y + h
            h = -h
        return CropRect(x, y, w, h, self.aspect_ratio)

    def to_pixels(self) -> tuple[int, int, int, int]:
        """Return an integer (left, top, width, height) tuple."""
        left = _round_px(self.x)
        top = _round_px(self.y)
        return left, top, _round_px(self.right) - left, _round_px(self.bottom) - top


@dataclass(frozen=True, slots=True)
class ViewTransform:
    zoom: float = 1.0
    pan: Point = Point(0.0, 0.0)
    rotation: int = 0
    flip_horizontal: bool = False
    flip_vertical: bool = False

    def __post_init__(self) -> None:
        if not self.zoom > 0:
            raise ValueError(f"zoom must be > 0, got {self.zoom}")
        if int(self.rotation) % 90 != 0:
            raise ValueError(f"rotation must be a multiple of 90, got {self.rotation}")
        object.__setattr__(self, "rotation", int(self.rotation) % 360)

    @property
    def quarter_turns(self) -> int:
        return self.rotation // 90


@dataclass(frozen=True, slots=True)
class FitResult:
    """Placement of an image of image_w x image_h inside a container."""

    scaled_w: float
    scaled_h: float
    offset_x: float
    offset_y: float
    scale: float
    image_w: float
    image_h: float

    @property
    def center(self) -> Point:
        return Point(self.offset_x + self.scaled_w / 2.0, self.offset_y + self.scaled_h / 2.0)


def _round_px(v: float) -> int:
    # Half-up, matching how pixel inputs are rounded in the browser.
    return int(math.floor(float(v) + 0.5))


def _clamp(v: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, v))


def rotated_size(width: float, height: float, rotation: int) -> tuple[float, float]:
    """Size of a width x height image after rotating it by rotation degrees."""
    if (int(rotation) // 90) % 2:
        return height, width
    return width, height


def _rotate_vec(u: float, v: float, quarter_turns: int) -> tuple[float, float]:
    """Rotate (u, v) clockwise (y axis pointing down) by quarter turns."""
    q = quarter_turns % 4
    if q == 1:
        return -v, u
    if q == 2:
        return -u, -v
    if q == 3:
        return v, -u
    return u, v


# ---- fit / coordinate mapping ----


def fit_image_to_container(image_w: float, image_h: float, container_w: float, container_h: float) -> FitResult:
    """Scale the image to fit the container preserving aspect; centre the remainder."""
    if image_w <= 0 or image_h <= 0 or container_w <= 0 or container_h <= 0:
        return FitResult(0.0, 0.0, 0.0, 0.0, 0.0, float(max(image_w, 0)), float(max(image_h, 0)))

    sx = container_w / image_w
    sy = container_h / image_h
    if sx <= sy:
        scale = sx
        scaled_w = float(container_w)
        scaled_h = min(float(container_h), image_h * scale)
    else:
        scale = sy
        scaled_h = float(container_h)
        scaled_w = min(float(container_w), image_w * scale)

    return FitResult(
        scaled_w=scaled_w,
        scaled_h=scaled_h,
        offset_x=(container_w - scaled_w) / 2.0,
        offset_y=(container_h - scaled_h) / 2.0,
        scale=scale,
        image_w=float(image_w),
        image_h=float(image_h),
    )


def _native_size(fit: FitResult, view: ViewTransform) -> tuple[float, float]:
    # The fit was computed for the displayed (rotated) image.
    return rotated_size(fit.image_w, fit.image_h, view.rotation)


def image_to_display_coords(point: Point, fit: FitResult, view: ViewTransform) -> Point:
    """Map a native image-space point to display space."""
    nw, nh = _native_size(fit, view)
    u, v = _rotate_vec(point.x - nw / 2.0, point.y - nh / 2.0, view.quarter_turns)
    if view.flip_horizontal:
        u = -u
    if view.flip_vertical:
        v = -v
    k = fit.scale * view.zoom
    c = fit.center
    return Point(c.x + u * k + view.pan.x, c.y + v * k + view.pan.y)


def display_to_image_coords(point: Point, fit: FitResult, view: ViewTransform) -> Point:
    """Exact inverse of image_to_display_coords."""
    nw, nh = _native_size(fit, view)
    k = fit.scale * view.zoom
    if k <= 0:
        return Point(nw / 2.0, nh / 2.0)
    c = fit.center
    u = (point.x - c.x - view.pan.x) / k
    v = (point.y - c.y - view.pan.y) / k
    if view.flip_horizontal:
        u = -u
    if view.flip_vertical:
        v = -v
    u, v = _rotate_vec(u, v, -view.quarter_turns)
    return Point(u + nw / 2.0, v + nh / 2.0)


def native_to_canonical(point: Point, rotation: int, native_w: float, native_h: float) -> Point:
    cw, ch = rotated_size(native_w, native_h, rotation)
    u, v = _rotate_vec(point.x - native_w / 2.0, point.y - native_h / 2.0, rotation // 90)
    return Point(u + cw / 2.0, v + ch / 2.0)


def canonical_to_native(point: Point, rotation: int, native_w: float, native_h: float) -> Point:
    cw, ch = rotated_size(native_w, native_h, rotation)
    u, v = _rotate_vec(point.x - cw / 2.0, point.y - ch / 2.0, -(rotation // 90))
    return Point(u + native_w / 2.0, v + native_h / 2.0)


def display_to_canonical(point: Point, fit: FitResult, view: ViewTransform) -> Point:
    nw, nh = _native_size(fit, view)
    return native_to_canonical(display_to_image_coords(point, fit, view), view.rotation, nw, nh)


def canonical_to_display(point: Point, fit: FitResult, view: ViewTransform) -> Point:
    nw, nh = _native_size(fit, view)
    return image_to_display_coords(canonical_to_native(point, view.rotation, nw, nh), fit, view)


def display_delta_to_image(dx: float, dy: float, fit: FitResult, view: ViewTransform) -> Point:
    """Map a display-space drag delta into canonical crop space.

    The delta goes through the full inverse transform (zoom, scale, flips and
    the inverse rotation into native space, then forward into canonical
    space), so drags stay under the pointer whatever the view orientation.
    """
    origin = display_to_canonical(Point(0.0, 0.0), fit, view)
    moved = display_to_canonical(Point(dx, dy), fit, view)
    return Point(moved.x - origin.x, moved.y - origin.y)


def crop_display_rect(rect: CropRect, fit: FitResult, view: ViewTransform) -> tuple[float, float, float, float]:
    """Bounding box (left, top, width, height) of a crop rect in display space."""
    a = canonical_to_display(Point(rect.x, rect.y), fit, view)
    b = canonical_to_display(Point(rect.right, rect.bottom), fit, view)
    left, right = min(a.x, b.x), max(a.x, b.x)
    top, bottom = min(a.y, b.y), max(a.y, b.y)
    return left, top, right - left, bottom - top


# ---- crop rectangle constraints ----


def _clamp_axis(pos: float, size: float, extent: float, floor: float) -> tuple[float, float]:
    floor = min(floor, extent)
    pos = max(0.0, pos)
    size = max(size, floor)
    if size >= extent:
        return 0.0, float(extent)
    if pos + size > extent:
        if extent - pos >= floor:
            size = extent - pos
        else:
            size = floor
            pos = extent - floor
    return pos, size


def _ratio_ok(w: float, h: float, ratio: float) -> bool:
    return h > 0 and abs(w / h - ratio) <= _RATIO_TOL * ratio


def clamp_crop(rect: CropRect, image_w: float, image_h: float, min_crop_px: float) -> CropRect:
    """Enforce all crop invariants: inside the image, at least min_crop_px, ratio."""
    if image_w <= 0 or image_h <= 0:
        return CropRect(0.0, 0.0, 0.0, 0.0, rect.aspect_ratio)

    r = rect.normalized()
    floor_x = min(float(min_crop_px), float(image_w))
    floor_y = min(float(min_crop_px), float(image_h))
    x, w = _clamp_axis(r.x, r.width, image_w, floor_x)
    y, h = _clamp_axis(r.y, r.height, image_h, floor_y)

    ratio = r.aspect_ratio
    if ratio is not None and not _ratio_ok(w, h, ratio.value):
        target = ratio.value
        if w / h > target:
            new_w, new_h = h * target, h
        else:
            new_w, new_h = w, w / target
        if new_w < floor_x or new_h < floor_y:
            # smallest rect that satisfies both the ratio and the floor
            new_w = max(floor_x, floor_y * target)
            new_h = new_w / target
        # if even that does not fit, the bounded rect is kept as is
        if new_w <= image_w + _EPS and new_h <= image_h + _EPS:
            new_w, new_h = min(new_w, float(image_w)), min(new_h, float(image_h))
            cx, cy = x + w / 2.0, y + h / 2.0
            x = _clamp(cx - new_w / 2.0, 0.0, image_w - new_w)
            y = _clamp(cy - new_h / 2.0, 0.0, image_h - new_h)
            w, h = new_w, new_h

    return CropRect(x, y, w, h, ratio)


def move_crop(rect: CropRect, dx: float, dy: float, image_w: float, image_h: float) -> CropRect:
    """Translate the rect, shifting (never resizing) to stay inside the image."""
    x = _clamp(rect.x + dx, 0.0, max(0.0, image_w - rect.width))
    y = _clamp(rect.y + dy, 0.0, max(0.0, image_h - rect.height))
    return replace(rect, x=x, y=y)


def resize_crop_by_handle(
    handle: Handle | str,
    initial: CropRect,
    delta: Point,
    image_w: float,
    image_h: float,
    min_crop_px: float,
) -> CropRect:
    """Resize the initial rect by dragging one of its handles by delta (image space).

    Opposite edges stay fixed. The rect never inverts and never leaves the
    image. With a locked aspect ratio, corners follow the dominant drag axis
    and edges grow the perpendicular dimension symmetrically about the centre.
    """
    handle = Handle.parse(handle)
    rect = initial.normalized()
    edges = handle.edges
    floor_x = min(float(min_crop_px), float(image_w))
    floor_y = min(float(min_crop_px), float(image_h))
    dx, dy = float(delta.x), float(delta.y)

    left, top, right, bottom = rect.x, rect.y, rect.right, rect.bottom
    ratio = rect.aspect_ratio

    if ratio is None:
        if edges.left:
            left = _clamp(left + dx, 0.0, right - floor_x)
        if edges.right:
            right = _clamp(right + dx, left + floor_x, float(image_w))
        if edges.top:
            top = _clamp(top + dy, 0.0, bottom - floor_y)
        if edges.bottom:
            bottom = _clamp(bottom + dy, top + floor_y, float(image_h))
        return clamp_crop(CropRect(left, top, right - left, bottom - top), image_w, image_h, min_crop_px)

    r = ratio.value
    min_w = max(floor_x, floor_y * r)
    horizontal = edges.left or edges.right
    vertical = edges.top or edges.bottom
    sx = 1.0 if edges.right else -1.0
    sy = 1.0 if edges.bottom else -1.0
    anchor_x = left if edges.right else right
    anchor_y = top if edges.bottom else bottom
    avail_w = image_w - anchor_x if sx > 0 else anchor_x
    avail_h = image_h - anchor_y if sy > 0 else anchor_y
    c = rect.center

    if horizontal and vertical:
        if abs(dx) >= abs(dy):
            w = rect.width + sx * dx
        else:
            w = (rect.height + sy * dy) * r
        max_w = min(avail_w, avail_h * r)
    elif horizontal:
        w = rect.width + sx * dx
        max_w = min(avail_w, 2.0 * min(c.y, image_h - c.y) * r)
    else:
        w = (rect.height + sy * dy) * r
        max_w = min(2.0 * min(c.x, image_w - c.x), avail_h * r)

    w = min(max(w, min_w), max_w)
    h = w / r

    x = (anchor_x if sx > 0 else anchor_x - w) if horizontal else c.x - w / 2.0
    y = (anchor_y if sy > 0 else anchor_y - h) if vertical else c.y - h / 2.0
    return clamp_crop(CropRect(x, y, w, h, ratio), image_w, image_h, min_crop_px)


def apply_aspect_ratio(
    rect: CropRect,
    ratio: AspectRatio | None,
    image_w: float,
    image_h: float,
    min_crop_px: float = 1,
) -> CropRect:
    """Refit rect to ratio about its centre, shifting (then shrinking) to stay in bounds."""
    if ratio is None:
        return replace(rect, aspect_ratio=None)
    if image_w <= 0 or image_h <= 0:
        return CropRect(0.0, 0.0, 0.0, 0.0, ratio)

    r = rect.normalized()
    target = ratio.value
    w, h = r.width, r.height
    if w <= 0 or h <= 0:
        r = CropRect(0.0, 0.0, float(image_w), float(image_h))
        w, h = r.width, r.height

    if w / h > target:
        w = h * target
    else:
        h = w / target

    floor = min(float(min_crop_px), float(image_w), float(image_h))
    if w < floor:
        w = floor
        h = w / target
    if h < floor:
        h = floor
        w = h * target

    shrink = min(1.0, image_w / w, image_h / h)
    w *= shrink
    h *= shrink

    c = r.center
    x = _clamp(c.x - w / 2.0, 0.0, image_w - w)
    y = _clamp(c.y - h / 2.0, 0.0, image_h - h)
    return clamp_crop(CropRect(x, y, w, h, ratio), image_w, image_h, floor)


def reproject_crop_on_rotate(
    rect: CropRect,
    old_rotation: int,
    new_rotation: int,
    image_w: float,
    image_h: float,
    min_crop_px: float = 1,
) -> CropRect:
    """Carry a crop rect from one canonical orientation into another.

    image_w/image_h are the native image dimensions. Each clockwise quarter
    turn rotates the rect about the image centre, which swaps its width and
    height (and its aspect ratio); the result is clamped to the new space.
    """
    turns = ((int(new_rotation) // 90) - (int(old_rotation) // 90)) % 4
    cw, ch = rotated_size(image_w, image_h, old_rotation)
    x, y, w, h = rect.x, rect.y, rect.width, rect.height
    for _ in range(turns):
        x, y, w, h = ch - y - h, x, h, w
        cw, ch = ch, cw
    ratio = rect.aspect_ratio
    if ratio is not None and turns % 2:
        ratio = ratio.inverted()
    return clamp_crop(CropRect(x, y, w, h, ratio), cw, ch, min_crop_px)


def map_crop_through_flip(rect: CropRect, image_w: float, image_h: float, flip_h: bool, flip_v: bool) -> CropRect:
    """Mirror a crop rect so it addresses the same pixels of a flipped buffer."""
    x = image_w - rect.right if flip_h else rect.x
    y = image_h - rect.bottom if flip_v else rect.y
    return replace(rect, x=x, y=y)


# ---- resize arithmetic ----


def compute_dependent_dimension(
    source_dim: float,
    source_axis: Literal["width", "height"],
    original_w: float,
    original_h: float,
) -> int:
    if original_w <= 0 or original_h <= 0:
        raise ValueError(f"original dimensions must be positive: {original_w}x{original_h}")
    factor = original_h / original_w if source_axis == "width" else original_w / original_h
    return _round_px(source_dim * factor)


def percentage_to_pixels(original_w: float, original_h: float, percent: float) -> tuple[int, int]:
    return _round_px(original_w * percent / 100.0), _round_px(original_h * percent / 100.0)
