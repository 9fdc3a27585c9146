from __future__ import annotations

from PySide6.QtCore import Property, QObject, Signal

from image_resizer.crop.session import Session


class CropState(QObject):
    """Read-only Qt view of the current Session snapshot.

    Design:
    - The crop rect is exposed in canonical (rotated) image pixels.
    - The SessionController is authoritative; it calls _apply() with every
      new snapshot and only changed values emit their notify signal.
    """

    stateChanged = Signal(str)
    activeChanged = Signal(bool)
    sourceRefChanged = Signal(str)
    imageWidthChanged = Signal(int)
    imageHeightChanged = Signal(int)

    rectXChanged = Signal(float)
    rectYChanged = Signal(float)
    rectWChanged = Signal(float)
    rectHChanged = Signal(float)
    aspectRatioChanged = Signal(float)
    showGridChanged = Signal(bool)

    zoomChanged = Signal(float)
    rotationChanged = Signal(int)
    flipHorizontalChanged = Signal(bool)
    flipVerticalChanged = Signal(bool)

    resizeModeChanged = Signal(str)
    targetWidthChanged = Signal(int)
    targetHeightChanged = Signal(int)
    lockAspectChanged = Signal(bool)
    exportFormatChanged = Signal(str)
    qualityChanged = Signal(int)

    def __init__(self, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._values: dict[str, object] = {
            "state": "idle",
            "active": False,
            "sourceRef": "",
            "imageWidth": 0,
            "imageHeight": 0,
            "rectX": 0.0,
            "rectY": 0.0,
            "rectW": 0.0,
            "rectH": 0.0,
            # 0.0 means free (no constraint). Otherwise width/height.
            "aspectRatio": 0.0,
            "showGrid": True,
            "zoom": 1.0,
            "rotation": 0,
            "flipHorizontal": False,
            "flipVertical": False,
            "resizeMode": "bySize",
            "targetWidth": 0,
            "targetHeight": 0,
            "lockAspect": True,
            "exportFormat": "Original",
            "quality": 80,
        }

    def value(self, name: str) -> object:
        return self._values[name]

    # ---- read-only properties (mutate via controller) ----
    def _get_state(self) -> str:
        return str(self._values["state"])

    state = Property(str, _get_state, notify=stateChanged)  # type: ignore[arg-type]

    def _get_active(self) -> bool:
        return bool(self._values["active"])

    active = Property(bool, _get_active, notify=activeChanged)  # type: ignore[arg-type]

    def _get_source_ref(self) -> str:
        return str(self._values["sourceRef"])

    sourceRef = Property(str, _get_source_ref, notify=sourceRefChanged)  # type: ignore[arg-type]

    def _get_image_width(self) -> int:
        return int(self._values["imageWidth"])  # type: ignore[arg-type]

    imageWidth = Property(int, _get_image_width, notify=imageWidthChanged)  # type: ignore[arg-type]

    def _get_image_height(self) -> int:
        return int(self._values["imageHeight"])  # type: ignore[arg-type]

    imageHeight = Property(int, _get_image_height, notify=imageHeightChanged)  # type: ignore[arg-type]

    def _get_x(self) -> float:
        return float(self._values["rectX"])  # type: ignore[arg-type]

    rectX = Property(float, _get_x, notify=rectXChanged)  # type: ignore[arg-type]

    def _get_y(self) -> float:
        return float(self._values["rectY"])  # type: ignore[arg-type]

    rectY = Property(float, _get_y, notify=rectYChanged)  # type: ignore[arg-type]

    def _get_w(self) -> float:
        return float(self._values["rectW"])  # type: ignore[arg-type]

    rectW = Property(float, _get_w, notify=rectWChanged)  # type: ignore[arg-type]

    def _get_h(self) -> float:
        return float(self._values["rectH"])  # type: ignore[arg-type]

    rectH = Property(float, _get_h, notify=rectHChanged)  # type: ignore[arg-type]

    def _get_aspect_ratio(self) -> float:
        return float(self._values["aspectRatio"])  # type: ignore[arg-type]

    aspectRatio = Property(float, _get_aspect_ratio, notify=aspectRatioChanged)  # type: ignore[arg-type]

    def _get_show_grid(self) -> bool:
        return bool(self._values["showGrid"])

    showGrid = Property(bool, _get_show_grid, notify=showGridChanged)  # type: ignore[arg-type]

    def _get_zoom(self) -> float:
        return float(self._values["zoom"])  # type: ignore[arg-type]

    zoom = Property(float, _get_zoom, notify=zoomChanged)  # type: ignore[arg-type]

    def _get_rotation(self) -> int:
        return int(self._values["rotation"])  # type: ignore[arg-type]

    rotation = Property(int, _get_rotation, notify=rotationChanged)  # type: ignore[arg-type]

    def _get_flip_horizontal(self) -> bool:
        return bool(self._values["flipHorizontal"])

    flipHorizontal = Property(bool, _get_flip_horizontal, notify=flipHorizontalChanged)  # type: ignore[arg-type]

    def _get_flip_vertical(self) -> bool:
        return bool(self._values["flipVertical"])

    flipVertical = Property(bool, _get_flip_vertical, notify=flipVerticalChanged)  # type: ignore[arg-type]

    def _get_resize_mode(self) -> str:
        return str(self._values["resizeMode"])

    resizeMode = Property(str, _get_resize_mode, notify=resizeModeChanged)  # type: ignore[arg-type]

    def _get_target_width(self) -> int:
        return int(self._values["targetWidth"])  # type: ignore[arg-type]

    targetWidth = Property(int, _get_target_width, notify=targetWidthChanged)  # type: ignore[arg-type]

    def _get_target_height(self) -> int:
        return int(self._values["targetHeight"])  # type: ignore[arg-type]

    targetHeight = Property(int, _get_target_height, notify=targetHeightChanged)  # type: ignore[arg-type]

    def _get_lock_aspect(self) -> bool:
        return bool(self._values["lockAspect"])

    lockAspect = Property(bool, _get_lock_aspect, notify=lockAspectChanged)  # type: ignore[arg-type]

    def _get_export_format(self) -> str:
        return str(self._values["exportFormat"])

    exportFormat = Property(str, _get_export_format, notify=exportFormatChanged)  # type: ignore[arg-type]

    def _get_quality(self) -> int:
        return int(self._values["quality"])  # type: ignore[arg-type]

    quality = Property(int, _get_quality, notify=qualityChanged)  # type: ignore[arg-type]

    # ---- internal mutation helpers (called by controller) ----
    def _set(self, name: str, value: object) -> None:
        if self._values[name] == value:
            return
        self._values[name] = value
        getattr(self, f"{name}Changed").emit(value)

    def _apply(self, session: Session) -> None:
        image = session.image
        crop = session.crop
        view = session.view
        resize = session.resize
        self._set("state", session.state.value)
        self._set("active", session.is_cropping)
        self._set("sourceRef", image.source_ref if image else "")
        self._set("imageWidth", int(image.pixel_width) if image else 0)
        self._set("imageHeight", int(image.pixel_height) if image else 0)
        self._set("rectX", float(crop.x))
        self._set("rectY", float(crop.y))
        self._set("rectW", float(crop.width))
        self._set("rectH", float(crop.height))
        self._set("aspectRatio", float(crop.aspect_ratio.value) if crop.aspect_ratio else 0.0)
        self._set("showGrid", bool(session.show_grid))
        self._set("zoom", float(view.zoom))
        self._set("rotation", int(view.rotation))
        self._set("flipHorizontal", bool(view.flip_horizontal))
        self._set("flipVertical", bool(view.flip_vertical))
        self._set("resizeMode", resize.mode.value)
        self._set("targetWidth", int(resize.target_width))
        self._set("targetHeight", int(resize.target_height))
        self._set("lockAspect", bool(resize.exact.lock_aspect))
        self._set("exportFormat", session.export.format.value)
        self._set("quality", int(session.export.quality))
