"""Owning controller for one crop/resize session.

UI → Python: controller.dispatch(cmd, payload)
Python → UI: controller.sessionChanged(Session), controller.taskEvent(dict)
Bindings:    controller.crop (CropState)

Decode and export run on an executor. Every request gets an increasing id
and only the latest id's result is applied; late results are dropped.
Worker threads report back through queued signals, so results are applied
on the controller's thread.
"""

from __future__ import annotations

import contextlib
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any

from PySide6.QtCore import Property, QObject, Signal, Slot

from image_resizer.app.state.crop_state import CropState
from image_resizer.crop import session as sm
from image_resizer.crop.interaction import InteractionController
from image_resizer.errors import ImageResizerError
from image_resizer.image_engine.decoder import probe_dimensions
from image_resizer.image_engine.pipeline import EncodedImage, export_image
from image_resizer.logger import get_logger
from image_resizer.presets import PresetCatalog, load_catalog
from image_resizer.settings_manager import SettingsManager

_logger = get_logger("controller")


def _read_and_probe(path: str | None, data: bytes | None) -> tuple[bytes, tuple[int, int]]:
    buffer = data if data is not None else Path(str(path)).read_bytes()
    return buffer, probe_dimensions(buffer)


def _export_to(
    session: sm.Session,
    buffer: bytes,
    catalog: PresetCatalog,
    watermark_text: str,
    output_path: str | None,
) -> EncodedImage:
    result = export_image(session, buffer, catalog, watermark_text)
    if output_path:
        Path(output_path).write_bytes(result.data)
    return result


class SessionController(QObject):
    taskEvent = Signal(object)
    sessionChanged = Signal(object)

    # worker -> controller thread
    _openFinished = Signal(int, object, object)
    _exportFinished = Signal(int, object, object)

    def __init__(
        self,
        settings: SettingsManager | None = None,
        catalog: PresetCatalog | None = None,
        executor: Executor | None = None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._settings_mgr = settings or SettingsManager()
        self._catalog = catalog or load_catalog(self._settings_mgr.get("presets_path"))
        self._executor = executor or ThreadPoolExecutor(max_workers=2)
        self._crop = CropState(self)
        self._buffer: bytes | None = None

        self._next_id = 1
        self._latest_open: int | None = None
        self._latest_export: int | None = None
        self._pending_open_ref = ""

        self.interaction = InteractionController(
            sm.new_session(self._settings_mgr),
            settings=self._settings_mgr,
            on_change=self._on_interaction_change,
        )
        self._crop._apply(self.session)

        self._openFinished.connect(self._on_open_finished)
        self._exportFinished.connect(self._on_export_finished)

    # ---- properties ----
    @property
    def session(self) -> sm.Session:
        return self.interaction.session

    @property
    def catalog(self) -> PresetCatalog:
        return self._catalog

    def _get_crop(self) -> QObject:
        return self._crop

    crop = Property(QObject, _get_crop, constant=True)  # type: ignore[arg-type]

    def _set_session(self, new: sm.Session) -> None:
        if new == self.interaction.session:
            return
        self.interaction.replace_session(new)

    def _on_interaction_change(self, new: sm.Session) -> None:
        self._crop._apply(new)
        self.sessionChanged.emit(new)

    def _emit_error(self, name: str, err: BaseException) -> None:
        retryable = bool(getattr(err, "retryable", False))
        self.taskEvent.emit(
            {
                "type": "task",
                "name": name,
                "state": "error",
                "message": str(err),
                "retryable": retryable,
            }
        )

    def _take_id(self) -> int:
        req_id = self._next_id
        self._next_id += 1
        return req_id

    # ---- commands ----
    @Slot(str, "QVariant")  # type: ignore[call-overload]
    def dispatch(self, cmd: str, payload: object | None = None) -> None:  # noqa: PLR0912, PLR0915
        command = str(cmd or "").strip()
        if not command:
            self.taskEvent.emit({"type": "event", "name": "error", "level": "error", "message": "Empty cmd"})
            return

        if command == "open":
            self.open(
                path=_get_payload_value(payload, "path", default=None),
                data=_get_payload_value(payload, "data", default=None),
            )
            return

        if command == "export":
            self.export(_get_payload_value(payload, "outputPath", default=None))
            return

        if command == "close":
            self.close()
            return

        if command == "log":
            self._handle_log_cmd(payload)
            return

        handler = _COMMANDS.get(command)
        if handler is None:
            self.taskEvent.emit(
                {"type": "event", "name": "error", "level": "warning", "message": f"Unknown cmd: {command}"}
            )
            return

        try:
            new = handler(self, payload)
        except (ImageResizerError, ValueError, KeyError) as e:
            _logger.warning("cmd %s failed: %s", command, e)
            self._emit_error(command, e)
            return
        self._set_session(new)

    def _handle_log_cmd(self, payload: object | None) -> None:
        level = str(_get_payload_value(payload, "level", default="debug")).lower()
        msg = str(_get_payload_value(payload, "message", default=""))
        if not msg:
            return
        if level == "info":
            _logger.info("[UI] %s", msg)
        elif level in {"warn", "warning"}:
            _logger.warning("[UI] %s", msg)
        elif level == "error":
            _logger.error("[UI] %s", msg)
        else:
            _logger.debug("[UI] %s", msg)

    def set_container_size(self, width: float, height: float) -> None:
        self.interaction.container_size = (float(width), float(height))

    # ---- open ----
    def open(self, path: str | None = None, data: bytes | None = None) -> int:
        """Start decoding a new image; supersedes any pending open."""
        req_id = self._take_id()
        self._latest_open = req_id
        self._pending_open_ref = str(path or "<memory>")
        self.interaction.end_drag()
        _logger.debug("open queued: ref=%s id=%s", self._pending_open_ref, req_id)
        self.taskEvent.emit({"type": "task", "name": "open", "state": "started", "id": req_id})
        try:
            future = self._executor.submit(_read_and_probe, path, data)
        except RuntimeError as e:
            _logger.exception("submit open failed")
            self._openFinished.emit(req_id, None, e)
            return req_id
        future.add_done_callback(lambda f, rid=req_id: self._forward(self._openFinished, rid, f))
        return req_id

    def _forward(self, signal: Any, req_id: int, future: Future) -> None:
        try:
            result = future.result()
        except Exception as e:
            signal.emit(req_id, None, e)
            return
        signal.emit(req_id, result, None)

    @Slot(int, object, object)
    def _on_open_finished(self, req_id: int, result: object, error: object) -> None:
        if req_id != self._latest_open:
            _logger.debug("open finished stale: id=%s latest=%s (dropped)", req_id, self._latest_open)
            return
        self._latest_open = None
        if error is not None:
            _logger.warning("open failed for %s: %s", self._pending_open_ref, error)
            self._emit_error("open", error)  # type: ignore[arg-type]
            return
        buffer, (width, height) = result  # type: ignore[misc]
        meta = sm.ImageMeta(width, height, self._pending_open_ref)
        try:
            opened = sm.open_session(self.session, meta)
        except ImageResizerError as e:
            self._emit_error("open", e)
            return
        self._buffer = buffer
        self._set_session(opened)
        _logger.info("opened %s (%dx%d)", meta.source_ref, width, height)
        self.taskEvent.emit(
            {"type": "task", "name": "open", "state": "finished", "id": req_id, "width": width, "height": height}
        )

    def close(self) -> None:
        self._latest_open = None
        self._latest_export = None
        self._buffer = None
        self._set_session(sm.close_session(self.session))

    # ---- export ----
    def export(self, output_path: str | None = None) -> int | None:
        """Encode the current session; the snapshot is captured at call time."""
        if self._buffer is None or not self.session.is_loaded:
            self._emit_error("export", ImageResizerError("no image loaded"))
            return None
        req_id = self._take_id()
        self._latest_export = req_id
        watermark_text = str(self._settings_mgr.get("watermark_text"))
        self.taskEvent.emit({"type": "task", "name": "export", "state": "started", "id": req_id})
        future = self._executor.submit(
            _export_to, self.session, self._buffer, self._catalog, watermark_text, output_path
        )
        future.add_done_callback(lambda f, rid=req_id: self._forward(self._exportFinished, rid, f))
        return req_id

    @Slot(int, object, object)
    def _on_export_finished(self, req_id: int, result: object, error: object) -> None:
        if req_id != self._latest_export:
            _logger.debug("export finished stale: id=%s latest=%s (dropped)", req_id, self._latest_export)
            return
        self._latest_export = None
        if error is not None:
            _logger.error("export failed: %s", error, exc_info=error)  # type: ignore[arg-type]
            self._emit_error("export", error)  # type: ignore[arg-type]
            return
        if not isinstance(result, EncodedImage):
            self._emit_error("export", ImageResizerError(f"unexpected export result: {type(result).__name__}"))
            return
        self.taskEvent.emit(
            {
                "type": "task",
                "name": "export",
                "state": "finished",
                "id": req_id,
                "format": result.format.value,
                "width": result.width,
                "height": result.height,
                "bytes": len(result.data),
                "result": result,
            }
        )

    def shutdown(self) -> None:
        self.interaction.end_drag()
        with contextlib.suppress(Exception):
            self._executor.shutdown(wait=False, cancel_futures=True)


def _payload_float(payload: object | None, key: str, default: float = 0.0) -> float:
    return float(_get_payload_value(payload, key, default=default))


def _crop_partial(payload: object | None) -> dict[str, Any]:
    keys = {"x": "x", "y": "y", "w": "width", "h": "height", "width": "width", "height": "height"}
    out: dict[str, Any] = {}
    for src, dst in keys.items():
        value = _get_payload_value(payload, src, default=None)
        if value is not None:
            out[dst] = float(value)
    return out


def _preset(c: SessionController, p: object | None) -> sm.Session:
    return sm.set_named_preset(
        c.session,
        c.catalog,
        str(_get_payload_value(p, "platform", default="")),
        str(_get_payload_value(p, "preset", default="")),
    )


_COMMANDS: dict[str, Any] = {
    "toggleCrop": lambda c, p: sm.toggle_cropping(c.session),
    "toggleGrid": lambda c, p: sm.toggle_grid(c.session),
    "cropSetRect": lambda c, p: sm.set_crop_rect(c.session, **_crop_partial(p)),
    "cropSetAspect": lambda c, p: sm.set_aspect_ratio(c.session, _get_payload_value(p, "ratio", default=None)),
    "cropReset": lambda c, p: sm.reset_crop(c.session),
    "nudge": lambda c, p: sm.nudge_crop(
        c.session,
        str(_get_payload_value(p, "direction", default="")),
        bool(_get_payload_value(p, "large", default=False)),
        c.interaction.nudge_steps,
    ),
    "rotate": lambda c, p: sm.rotate(c.session, str(_get_payload_value(p, "direction", default="cw"))),
    "flip": lambda c, p: sm.flip(c.session, str(_get_payload_value(p, "axis", default="h"))),
    "setZoom": lambda c, p: sm.set_zoom(c.session, _payload_float(p, "value", 1.0)),
    "zoomBy": lambda c, p: sm.zoom_by(c.session, _payload_float(p, "factor", 1.0)),
    "pan": lambda c, p: sm.set_pan(c.session, _payload_float(p, "dx"), _payload_float(p, "dy")),
    "resetView": lambda c, p: sm.reset_view(c.session),
    "setResizeWidth": lambda c, p: sm.set_resize_width(c.session, int(_payload_float(p, "value"))),
    "setResizeHeight": lambda c, p: sm.set_resize_height(c.session, int(_payload_float(p, "value"))),
    "toggleLockAspect": lambda c, p: sm.toggle_lock_aspect(c.session),
    "setResizeMode": lambda c, p: sm.set_resize_mode(c.session, str(_get_payload_value(p, "mode", default="bySize"))),
    "setPercent": lambda c, p: sm.set_percentage(c.session, _payload_float(p, "value", 100.0)),
    "setPreset": _preset,
    "setFormat": lambda c, p: sm.set_export_format(c.session, str(_get_payload_value(p, "value", default="Original"))),
    "setQuality": lambda c, p: sm.set_export_quality(c.session, int(_payload_float(p, "value", 80))),
    "setTargetSize": lambda c, p: sm.set_target_byte_size(c.session, _get_payload_value(p, "bytes", default=None)),
    "setWatermark": lambda c, p: sm.set_watermark(c.session, bool(_get_payload_value(p, "value", default=False))),
}


def _get_payload_value(payload: object | None, key: str, *, default: Any) -> Any:
    """Extract a value from a UI payload.

    Supports:
    - dict-like payloads (Python dict)
    - QJSValue objects from QML (converted via toVariant)
    - otherwise returns default
    """

    if payload is None:
        return default

    if payload.__class__.__name__ == "QJSValue" and hasattr(payload, "toVariant"):
        with contextlib.suppress(Exception):
            payload = payload.toVariant()  # type: ignore[assignment, attr-defined]

    if isinstance(payload, dict):
        return payload.get(key, default)

    return default
