"""Pointer and keyboard handling for the crop canvas.

Mouse, touch and pen input share one drag contract: a single active pointer
at a time, captured for the lifetime of the drag and always released on
pointer-up, cancel, or when the pointer leaves the document.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from image_resizer.logger import get_logger

from . import session as sm
from .geometry import (
    CropRect,
    FitResult,
    Point,
    crop_display_rect,
    display_delta_to_image,
    fit_image_to_container,
    move_crop,
    resize_crop_by_handle,
)
from .handles import Handle

if TYPE_CHECKING:
    from image_resizer.settings_manager import SettingsManager

_logger = get_logger("interaction")


class PointerKind(Enum):
    MOUSE = "mouse"
    TOUCH = "touch"
    PEN = "pen"


@dataclass(frozen=True, slots=True)
class PointerEvent:
    pointer_id: int
    x: float
    y: float
    kind: PointerKind = PointerKind.MOUSE
    button: int = 0

    @property
    def point(self) -> Point:
        return Point(self.x, self.y)


class HitKind(Enum):
    BACKGROUND = "background"
    HANDLE = "handle"
    BODY = "body"


@dataclass(frozen=True, slots=True)
class Hit:
    kind: HitKind
    handle: Handle | None = None


_NO_HIT = Hit(HitKind.BACKGROUND)


def hit_test(pos: Point, rect: tuple[float, float, float, float], handle_size: float) -> Hit:
    """Classify a display-space point against a display-space crop rect.

    Corners win over edges; edge handles only cover a band around the middle
    of each side so the body stays easy to grab on small crops.
    """
    left, top, w, h = rect
    right, bottom = left + w, top + h
    x, y = pos.x, pos.y
    hs = handle_size / 2.0

    if abs(x - left) <= hs and abs(y - top) <= hs:
        return Hit(HitKind.HANDLE, Handle.NW)
    if abs(x - right) <= hs and abs(y - top) <= hs:
        return Hit(HitKind.HANDLE, Handle.NE)
    if abs(x - right) <= hs and abs(y - bottom) <= hs:
        return Hit(HitKind.HANDLE, Handle.SE)
    if abs(x - left) <= hs and abs(y - bottom) <= hs:
        return Hit(HitKind.HANDLE, Handle.SW)

    half_x = max(handle_size * 2, w * 0.18) / 2.0
    half_y = max(handle_size * 2, h * 0.18) / 2.0
    cx = left + w / 2.0
    cy = top + h / 2.0
    if abs(y - top) <= hs and abs(x - cx) <= half_x:
        return Hit(HitKind.HANDLE, Handle.N)
    if abs(y - bottom) <= hs and abs(x - cx) <= half_x:
        return Hit(HitKind.HANDLE, Handle.S)
    if abs(x - left) <= hs and abs(y - cy) <= half_y:
        return Hit(HitKind.HANDLE, Handle.W)
    if abs(x - right) <= hs and abs(y - cy) <= half_y:
        return Hit(HitKind.HANDLE, Handle.E)
    if left <= x <= right and top <= y <= bottom:
        return Hit(HitKind.BODY)
    return _NO_HIT


_CURSORS = {
    Handle.NW: "SizeFDiagCursor",
    Handle.SE: "SizeFDiagCursor",
    Handle.NE: "SizeBDiagCursor",
    Handle.SW: "SizeBDiagCursor",
    Handle.N: "SizeVerCursor",
    Handle.S: "SizeVerCursor",
    Handle.E: "SizeHorCursor",
    Handle.W: "SizeHorCursor",
}


def cursor_for(hit: Hit) -> str:
    if hit.kind is HitKind.HANDLE and hit.handle is not None:
        return _CURSORS[hit.handle]
    if hit.kind is HitKind.BODY:
        return "OpenHandCursor"
    return "CrossCursor"


class InputCapture:
    """Exclusive pointer capture; at most one owner at a time.

    on_acquire/on_release let a UI layer grab and release the real device
    (e.g. QWidget.grabMouse) alongside the bookkeeping here.
    """

    def __init__(
        self,
        on_acquire: Callable[[int], None] | None = None,
        on_release: Callable[[int], None] | None = None,
    ):
        self._owner: int | None = None
        self._on_acquire = on_acquire
        self._on_release = on_release

    @property
    def owner(self) -> int | None:
        return self._owner

    @property
    def active(self) -> bool:
        return self._owner is not None

    def acquire(self, pointer_id: int) -> bool:
        if self._owner is not None:
            return False
        self._owner = pointer_id
        if self._on_acquire is not None:
            self._on_acquire(pointer_id)
        return True

    def release(self) -> None:
        owner, self._owner = self._owner, None
        if owner is not None and self._on_release is not None:
            self._on_release(owner)


class DragMode(Enum):
    MOVE = "move"
    RESIZE = "resize"
    PAN = "pan"


class DragSession:
    """One drag, from pointer-down to its end.

    Usable as a context manager: the capture is released on exit whatever
    the outcome.
    """

    def __init__(
        self,
        capture: InputCapture,
        pointer: PointerEvent,
        mode: DragMode,
        start_crop: CropRect,
        handle: Handle | None = None,
    ):
        self.capture = capture
        self.pointer_id = pointer.pointer_id
        self.kind = pointer.kind
        self.mode = mode
        self.handle = handle
        self.start = pointer.point
        self.last = pointer.point
        self.start_crop = start_crop
        self.moved = False
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def begin(self) -> bool:
        self._open = self.capture.acquire(self.pointer_id)
        return self._open

    def end(self) -> None:
        if self._open:
            self._open = False
            self.capture.release()

    def __enter__(self) -> DragSession:
        if not self.begin():
            raise RuntimeError("input already captured by another pointer")
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.end()


class InteractionController:
    """Translate canvas input into session transitions.

    The controller owns the current Session snapshot; on_change is called
    with the new snapshot whenever an event changes it.
    """

    def __init__(
        self,
        session: sm.Session,
        container_size: tuple[float, float] = (0.0, 0.0),
        settings: SettingsManager | None = None,
        on_change: Callable[[sm.Session], None] | None = None,
        capture: InputCapture | None = None,
    ):
        self.session = session
        self.container_size = container_size
        self.on_change = on_change
        self.capture = capture or InputCapture()
        self.drag: DragSession | None = None
        self.handle_size = 12.0
        self.nudge_steps = (1, 10)
        self.zoom_step = 1.25
        if settings is not None:
            self.handle_size = float(settings.get("handle_size"))
            self.nudge_steps = (int(settings.get("nudge_step")), int(settings.get("nudge_large_step")))
            self.zoom_step = float(settings.get("zoom_step"))

    # ---- helpers ----

    def fit(self) -> FitResult:
        cw, ch = self.session.canonical_size
        return fit_image_to_container(cw, ch, *self.container_size)

    def crop_display_rect(self) -> tuple[float, float, float, float]:
        return crop_display_rect(self.session.crop, self.fit(), self.session.view)

    def hit(self, pos: Point) -> Hit:
        """Hit-test a display point; handles are returned in crop space."""
        if not self.session.is_cropping:
            return _NO_HIT
        hit = hit_test(pos, self.crop_display_rect(), self.handle_size)
        if hit.handle is not None:
            view = self.session.view
            # Canonical and display space differ only by the flips.
            hit = Hit(hit.kind, hit.handle.mirrored(view.flip_horizontal, view.flip_vertical))
        return hit

    def cursor_at(self, pos: Point) -> str:
        if self.drag is not None and self.drag.mode is not DragMode.RESIZE:
            return "ClosedHandCursor"
        return cursor_for(self.hit(pos))

    def _commit(self, new: sm.Session) -> bool:
        if new == self.session:
            return False
        self.session = new
        if self.on_change is not None:
            self.on_change(new)
        return True

    def replace_session(self, new: sm.Session) -> None:
        """Swap in a snapshot produced elsewhere; any running drag is ended."""
        self.end_drag()
        self._commit(new)

    # ---- pointer ----

    def pointer_down(self, event: PointerEvent) -> bool:
        if self.drag is not None or not self.session.is_loaded:
            return False
        hit = self.hit(event.point)
        if hit.kind is HitKind.HANDLE:
            mode = DragMode.RESIZE
        elif hit.kind is HitKind.BODY:
            mode = DragMode.MOVE
        else:
            mode = DragMode.PAN
        drag = DragSession(self.capture, event, mode, self.session.crop, hit.handle)
        if not drag.begin():
            return False
        self.drag = drag
        _logger.debug("drag begin: %s %s pointer=%s", mode.value, hit.handle, event.pointer_id)
        return True

    def pointer_move(self, event: PointerEvent) -> bool:
        drag = self.drag
        if drag is None or event.pointer_id != drag.pointer_id:
            return False
        try:
            changed = self._apply_drag(drag, event.point)
        except Exception:
            self.end_drag()
            raise
        drag.last = event.point
        drag.moved = drag.moved or changed
        return changed

    def pointer_up(self, event: PointerEvent) -> bool:
        drag = self.drag
        if drag is None or event.pointer_id != drag.pointer_id:
            return False
        try:
            self.pointer_move(event)
        finally:
            self.end_drag()
        return True

    def pointer_cancel(self, event: PointerEvent | None = None) -> None:
        if self.drag is not None and (event is None or event.pointer_id == self.drag.pointer_id):
            self.end_drag()

    def leave_document(self) -> None:
        self.end_drag()

    def end_drag(self) -> None:
        drag, self.drag = self.drag, None
        if drag is not None:
            drag.end()
            _logger.debug("drag end: %s moved=%s", drag.mode.value, drag.moved)

    def _apply_drag(self, drag: DragSession, pos: Point) -> bool:
        s = self.session
        if drag.mode is DragMode.PAN:
            return self._commit(sm.set_pan(s, pos.x - drag.last.x, pos.y - drag.last.y))

        fit = self.fit()
        delta = display_delta_to_image(pos.x - drag.start.x, pos.y - drag.start.y, fit, s.view)
        cw, ch = s.canonical_size
        if drag.mode is DragMode.MOVE:
            rect = move_crop(drag.start_crop, delta.x, delta.y, cw, ch)
        elif drag.handle is not None:
            rect = resize_crop_by_handle(drag.handle, drag.start_crop, delta, cw, ch, s.min_crop_px)
        else:
            return False
        return self._commit(sm.set_crop_rect(s, x=rect.x, y=rect.y, width=rect.width, height=rect.height))

    # ---- keyboard / wheel ----

    _ARROWS = {"left": "left", "right": "right", "up": "up", "down": "down"}

    def key_press(self, key: str, shift: bool = False) -> bool:
        k = key.lower()
        s = self.session
        if k == "escape":
            if self.drag is not None:
                self.end_drag()
                return True
            return False
        if self.drag is not None or not s.is_loaded:
            return False
        if k in self._ARROWS:
            if not s.is_cropping:
                return False
            self._commit(sm.nudge_crop(s, self._ARROWS[k], large_step=shift, steps=self.nudge_steps))
            return True
        if k in ("+", "="):
            self._commit(sm.zoom_by(s, self.zoom_step))
            return True
        if k == "-":
            self._commit(sm.zoom_by(s, 1.0 / self.zoom_step))
            return True
        if k == "0":
            self._commit(sm.reset_view(s))
            return True
        if k == "r":
            self._commit(sm.rotate(s, "ccw" if shift else "cw"))
            return True
        if k == "g":
            self._commit(sm.toggle_grid(s))
            return True
        return False

    def wheel(self, delta_y: float) -> bool:
        if not self.session.is_loaded or delta_y == 0:
            return False
        factor = self.zoom_step if delta_y > 0 else 1.0 / self.zoom_step
        return self._commit(sm.zoom_by(self.session, factor))
