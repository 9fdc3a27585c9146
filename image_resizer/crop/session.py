"""Crop session state machine.

A Session is an immutable snapshot; every transition is a pure function that
takes a snapshot and returns a new one. Whoever owns the session (the UI
controller) keeps the only mutable reference.

States: IDLE (no image) -> LOADED (resize panel) <-> CROPPING (crop handles
live); close_session returns to IDLE. Transitions that need an image are
no-ops while IDLE.

Composition order is fixed: the crop is applied first and the resize targets
operate on the cropped region (the "basis" size below).
"""

from __future__ import annotations

import functools
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Concatenate, ParamSpec

from image_resizer.errors import DecodeError, UnsupportedFormatError
from image_resizer.logger import get_logger

from .geometry import (
    AspectRatio,
    CropRect,
    Point,
    ViewTransform,
    apply_aspect_ratio,
    clamp_crop,
    compute_dependent_dimension,
    move_crop,
    percentage_to_pixels,
    reproject_crop_on_rotate,
    rotated_size,
)

if TYPE_CHECKING:
    from image_resizer.presets import PresetCatalog
    from image_resizer.settings_manager import SettingsManager

_logger = get_logger("session")

_P = ParamSpec("_P")
_FULL_EXTENT_TOL = 0.5
PERCENT_MIN = 1.0
PERCENT_MAX = 200.0


class SessionState(Enum):
    IDLE = "idle"
    LOADED = "loaded"
    CROPPING = "cropping"


class ResizeMode(Enum):
    EXACT = "bySize"
    PERCENTAGE = "asPercentage"
    PRESET = "socialMedia"


class ExportFormat(Enum):
    ORIGINAL = "Original"
    JPEG = "JPEG"
    PNG = "PNG"
    WEBP = "WebP"

    @classmethod
    def parse(cls, value: str | ExportFormat) -> ExportFormat:
        if isinstance(value, ExportFormat):
            return value
        key = str(value or "").strip().lower()
        for fmt in cls:
            if fmt.value.lower() == key or fmt.name.lower() == key:
                return fmt
        if key == "jpg":
            return cls.JPEG
        raise UnsupportedFormatError(f"unsupported export format: {value!r}")


@dataclass(frozen=True, slots=True)
class ImageMeta:
    pixel_width: int
    pixel_height: int
    source_ref: str = ""


@dataclass(frozen=True, slots=True)
class ExactSize:
    width: int = 0
    height: int = 0
    lock_aspect: bool = True


@dataclass(frozen=True, slots=True)
class Percentage:
    percent: float = 100.0


@dataclass(frozen=True, slots=True)
class NamedPreset:
    platform_id: str = ""
    preset_id: str = ""


@dataclass(frozen=True, slots=True)
class ResizeSpec:
    """Resize settings; all three mode blocks are kept, one is active."""

    mode: ResizeMode = ResizeMode.EXACT
    exact: ExactSize = ExactSize()
    percentage: Percentage = Percentage()
    preset: NamedPreset = NamedPreset()
    target_width: int = 0
    target_height: int = 0

    @property
    def active(self) -> ExactSize | Percentage | NamedPreset:
        if self.mode is ResizeMode.PERCENTAGE:
            return self.percentage
        if self.mode is ResizeMode.PRESET:
            return self.preset
        return self.exact


@dataclass(frozen=True, slots=True)
class ExportSpec:
    format: ExportFormat = ExportFormat.ORIGINAL
    quality: int = 80
    target_byte_size: int | None = None
    watermark: bool = False


@dataclass(frozen=True, slots=True)
class Session:
    state: SessionState = SessionState.IDLE
    image: ImageMeta | None = None
    view: ViewTransform = ViewTransform()
    crop: CropRect = CropRect(0.0, 0.0, 0.0, 0.0)
    resize: ResizeSpec = ResizeSpec()
    export: ExportSpec = ExportSpec()
    show_grid: bool = True
    min_crop_px: int = 10
    zoom_range: tuple[float, float] = field(default=(0.1, 8.0))

    @property
    def is_loaded(self) -> bool:
        return self.image is not None and self.state is not SessionState.IDLE

    @property
    def is_cropping(self) -> bool:
        return self.state is SessionState.CROPPING

    @property
    def canonical_size(self) -> tuple[int, int]:
        """Image size after the session's quarter-turn rotation."""
        if self.image is None:
            return 0, 0
        w, h = rotated_size(self.image.pixel_width, self.image.pixel_height, self.view.rotation)
        return int(w), int(h)

    @property
    def crop_is_full_extent(self) -> bool:
        cw, ch = self.canonical_size
        c = self.crop
        return (
            abs(c.x) <= _FULL_EXTENT_TOL
            and abs(c.y) <= _FULL_EXTENT_TOL
            and abs(c.width - cw) <= _FULL_EXTENT_TOL
            and abs(c.height - ch) <= _FULL_EXTENT_TOL
        )

    @property
    def basis_size(self) -> tuple[int, int]:
        """Dimensions the resize targets act on: the crop if one is active."""
        if self.crop_is_full_extent:
            return self.canonical_size
        _, _, w, h = self.crop.to_pixels()
        return max(1, w), max(1, h)


def new_session(settings: SettingsManager | None = None) -> Session:
    """Return an IDLE session configured from settings (or defaults)."""
    if settings is None:
        return Session()
    quality = int(settings.get("default_quality"))
    try:
        fmt = ExportFormat.parse(settings.get("default_format"))
    except UnsupportedFormatError:
        _logger.warning("invalid default_format %r, using Original", settings.get("default_format"))
        fmt = ExportFormat.ORIGINAL
    return Session(
        export=ExportSpec(format=fmt, quality=max(0, min(100, quality))),
        min_crop_px=settings.min_crop_px,
        zoom_range=settings.zoom_range,
    )


def _requires_image(
    fn: Callable[Concatenate[Session, _P], Session],
) -> Callable[Concatenate[Session, _P], Session]:
    @functools.wraps(fn)
    def wrapper(session: Session, *args: _P.args, **kwargs: _P.kwargs) -> Session:
        if not session.is_loaded:
            _logger.debug("%s ignored: no image loaded", fn.__name__)
            return session
        return fn(session, *args, **kwargs)

    return wrapper


def _with_crop(session: Session, crop: CropRect) -> Session:
    """Replace the crop and keep an untouched locked resize target following it."""
    updated = replace(session, crop=crop)
    old_basis = session.basis_size
    new_basis = updated.basis_size
    if new_basis == old_basis:
        return updated

    resize = session.resize
    exact = resize.exact
    if (exact.width, exact.height) == old_basis:
        exact = replace(exact, width=new_basis[0], height=new_basis[1])
    elif exact.lock_aspect and exact.width > 0:
        height = max(1, compute_dependent_dimension(exact.width, "width", *new_basis))
        exact = replace(exact, height=height)
    else:
        return updated

    resize = replace(resize, exact=exact)
    if resize.mode is ResizeMode.EXACT:
        resize = replace(resize, target_width=exact.width, target_height=exact.height)
    return replace(updated, resize=resize)


# ---- lifecycle ----


def open_session(session: Session, meta: ImageMeta) -> Session:
    """Load an image: full-extent crop, identity view, native-size resize target."""
    if meta.pixel_width <= 0 or meta.pixel_height <= 0:
        raise DecodeError(f"could not determine dimensions for {meta.source_ref or 'image'}")
    w, h = int(meta.pixel_width), int(meta.pixel_height)
    _logger.debug("open_session: %s %dx%d", meta.source_ref, w, h)
    return replace(
        session,
        state=SessionState.LOADED,
        image=meta,
        view=ViewTransform(),
        crop=CropRect(0.0, 0.0, float(w), float(h)),
        resize=ResizeSpec(exact=ExactSize(w, h, True), target_width=w, target_height=h),
    )


def close_session(session: Session) -> Session:
    return Session(
        export=session.export,
        min_crop_px=session.min_crop_px,
        zoom_range=session.zoom_range,
    )


@_requires_image
def toggle_cropping(session: Session) -> Session:
    state = SessionState.LOADED if session.state is SessionState.CROPPING else SessionState.CROPPING
    return replace(session, state=state)


def toggle_grid(session: Session) -> Session:
    return replace(session, show_grid=not session.show_grid)


# ---- crop ----


@_requires_image
def set_crop_rect(session: Session, **partial: Any) -> Session:
    """Merge x/y/width/height (and aspect_ratio) into the crop, then clamp."""
    unknown = set(partial) - {"x", "y", "width", "height", "aspect_ratio"}
    if unknown:
        raise TypeError(f"unknown crop fields: {sorted(unknown)}")
    values = {k: (AspectRatio.parse(v) if k == "aspect_ratio" else float(v)) for k, v in partial.items()}
    merged = replace(session.crop, **values)
    cw, ch = session.canonical_size
    return _with_crop(session, clamp_crop(merged, cw, ch, session.min_crop_px))


@_requires_image
def set_aspect_ratio(session: Session, ratio: AspectRatio | str | None) -> Session:
    parsed = AspectRatio.parse(ratio)
    if parsed is None:
        return replace(session, crop=replace(session.crop, aspect_ratio=None))
    cw, ch = session.canonical_size
    return _with_crop(session, apply_aspect_ratio(session.crop, parsed, cw, ch, session.min_crop_px))


@_requires_image
def reset_crop(session: Session) -> Session:
    cw, ch = session.canonical_size
    crop = CropRect(0.0, 0.0, float(cw), float(ch), session.crop.aspect_ratio)
    if crop.aspect_ratio is not None:
        crop = apply_aspect_ratio(crop, crop.aspect_ratio, cw, ch, session.min_crop_px)
    return _with_crop(session, crop)


@_requires_image
def move_crop_by(session: Session, dx: float, dy: float) -> Session:
    cw, ch = session.canonical_size
    return replace(session, crop=move_crop(session.crop, dx, dy, cw, ch))


_NUDGE = {
    "up": (0, -1),
    "down": (0, 1),
    "left": (-1, 0),
    "right": (1, 0),
}


@_requires_image
def nudge_crop(session: Session, direction: str, large_step: bool = False, steps: tuple[int, int] = (1, 10)) -> Session:
    """Shift the crop by 1 (or 10) px; a no-op when already at the boundary."""
    try:
        ux, uy = _NUDGE[direction.lower()]
    except KeyError:
        raise ValueError(f"unknown nudge direction: {direction!r}") from None
    step = steps[1] if large_step else steps[0]
    return move_crop_by(session, ux * step, uy * step)


# ---- view ----


@_requires_image
def rotate(session: Session, direction: str = "cw") -> Session:
    d = direction.lower()
    if d not in ("cw", "ccw"):
        raise ValueError(f"unknown rotate direction: {direction!r}")
    old = session.view.rotation
    new = (old + (90 if d == "cw" else -90)) % 360
    image = session.image
    if image is None:
        return session
    crop = reproject_crop_on_rotate(
        session.crop,
        old,
        new,
        image.pixel_width,
        image.pixel_height,
        session.min_crop_px,
    )
    # Basis bookkeeping happens in the rotated frame.
    rotated = replace(session, view=replace(session.view, rotation=new))
    resize = rotated.resize
    exact = resize.exact
    swapped = replace(exact, width=exact.height, height=exact.width)
    resize = replace(resize, exact=swapped)
    if resize.mode is ResizeMode.EXACT:
        resize = replace(resize, target_width=swapped.width, target_height=swapped.height)
    return replace(rotated, crop=crop, resize=resize)


@_requires_image
def flip(session: Session, axis: str) -> Session:
    a = axis.lower()
    view = session.view
    if a in ("h", "horizontal"):
        view = replace(view, flip_horizontal=not view.flip_horizontal)
    elif a in ("v", "vertical"):
        view = replace(view, flip_vertical=not view.flip_vertical)
    else:
        raise ValueError(f"unknown flip axis: {axis!r}")
    return replace(session, view=view)


@_requires_image
def set_zoom(session: Session, factor: float) -> Session:
    lo, hi = session.zoom_range
    f = float(factor)
    if not f > 0:
        _logger.debug("set_zoom: ignoring non-positive factor %s", factor)
        return session
    return replace(session, view=replace(session.view, zoom=max(lo, min(hi, f))))


def zoom_by(session: Session, factor: float) -> Session:
    return set_zoom(session, session.view.zoom * float(factor))


@_requires_image
def set_pan(session: Session, dx: float, dy: float) -> Session:
    pan = session.view.pan
    return replace(session, view=replace(session.view, pan=Point(pan.x + float(dx), pan.y + float(dy))))


@_requires_image
def reset_view(session: Session) -> Session:
    return replace(session, view=replace(session.view, zoom=1.0, pan=Point(0.0, 0.0)))


# ---- resize ----


def _set_exact(session: Session, width: int, height: int, lock_aspect: bool | None = None) -> Session:
    exact = session.resize.exact
    exact = ExactSize(width, height, exact.lock_aspect if lock_aspect is None else lock_aspect)
    resize = replace(
        session.resize,
        mode=ResizeMode.EXACT,
        exact=exact,
        target_width=width,
        target_height=height,
    )
    return replace(session, resize=resize)


@_requires_image
def set_resize_width(session: Session, width: int) -> Session:
    w = max(1, int(width))
    exact = session.resize.exact
    h = exact.height
    if exact.lock_aspect:
        h = max(1, compute_dependent_dimension(w, "width", *session.basis_size))
    return _set_exact(session, w, h)


@_requires_image
def set_resize_height(session: Session, height: int) -> Session:
    h = max(1, int(height))
    exact = session.resize.exact
    w = exact.width
    if exact.lock_aspect:
        w = max(1, compute_dependent_dimension(h, "height", *session.basis_size))
    return _set_exact(session, w, h)


def toggle_lock_aspect(session: Session) -> Session:
    exact = session.resize.exact
    return replace(session, resize=replace(session.resize, exact=replace(exact, lock_aspect=not exact.lock_aspect)))


def set_resize_mode(session: Session, mode: ResizeMode | str) -> Session:
    """Switch the active mode; the last known pixel target is kept."""
    m = mode if isinstance(mode, ResizeMode) else ResizeMode(mode)
    return replace(session, resize=replace(session.resize, mode=m))


@_requires_image
def set_percentage(session: Session, percent: float) -> Session:
    p = max(PERCENT_MIN, min(PERCENT_MAX, float(percent)))
    w, h = percentage_to_pixels(*session.basis_size, p)
    w, h = max(1, w), max(1, h)
    resize = replace(
        session.resize,
        mode=ResizeMode.PERCENTAGE,
        percentage=Percentage(p),
        exact=replace(session.resize.exact, width=w, height=h),
        target_width=w,
        target_height=h,
    )
    return replace(session, resize=resize)


@_requires_image
def set_named_preset(session: Session, catalog: PresetCatalog, platform: str, preset: str) -> Session:
    size = catalog.resolve(platform, preset)
    resize = replace(
        session.resize,
        mode=ResizeMode.PRESET,
        preset=NamedPreset(platform, preset),
        exact=ExactSize(size.width, size.height, False),
        target_width=size.width,
        target_height=size.height,
    )
    return replace(session, resize=resize)


def resolve_output_size(session: Session, catalog: PresetCatalog | None = None) -> tuple[int, int]:
    """Resolved (width, height) for the active resize mode."""
    resize = session.resize
    size: tuple[int, int] = (0, 0)
    if resize.mode is ResizeMode.EXACT:
        size = (resize.exact.width, resize.exact.height)
    elif resize.mode is ResizeMode.PERCENTAGE:
        size = percentage_to_pixels(*session.basis_size, resize.percentage.percent)
    elif resize.mode is ResizeMode.PRESET and resize.preset.preset_id and catalog is not None:
        p = catalog.resolve(resize.preset.platform_id, resize.preset.preset_id)
        size = (p.width, p.height)
    if size[0] <= 0 or size[1] <= 0:
        size = (resize.target_width, resize.target_height)
    if size[0] <= 0 or size[1] <= 0:
        size = session.basis_size
    return max(1, int(size[0])), max(1, int(size[1]))


# ---- export ----


def set_export_format(session: Session, fmt: ExportFormat | str) -> Session:
    return replace(session, export=replace(session.export, format=ExportFormat.parse(fmt)))


def set_export_quality(session: Session, quality: int) -> Session:
    return replace(session, export=replace(session.export, quality=max(0, min(100, int(quality)))))


def set_target_byte_size(session: Session, size: int | None) -> Session:
    value = int(size) if size else None
    if value is not None and value <= 0:
        value = None
    return replace(session, export=replace(session.export, target_byte_size=value))


def set_watermark(session: Session, enabled: bool) -> Session:
    return replace(session, export=replace(session.export, watermark=bool(enabled)))
