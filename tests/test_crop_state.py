from image_resizer.app.state.crop_state import CropState
from image_resizer.crop import session as sm


def _loaded() -> sm.Session:
    return sm.open_session(sm.new_session(), sm.ImageMeta(640, 480, "/tmp/a.png"))


def test_defaults_before_any_session(qtbot):
    state = CropState()
    assert state.state == "idle"
    assert state.active is False
    assert state.imageWidth == 0
    assert state.aspectRatio == 0.0
    assert state.exportFormat == "Original"


def test_apply_exposes_snapshot(qtbot):
    state = CropState()
    s = sm.toggle_cropping(sm.set_aspect_ratio(_loaded(), "4:3"))
    s = sm.flip(sm.set_zoom(s, 2.0), "v")
    state._apply(s)

    assert state.state == "cropping"
    assert state.active is True
    assert state.sourceRef == "/tmp/a.png"
    assert (state.imageWidth, state.imageHeight) == (640, 480)
    assert (state.rectX, state.rectY, state.rectW, state.rectH) == (0.0, 0.0, 640.0, 480.0)
    assert abs(state.aspectRatio - 4 / 3) < 1e-9
    assert state.zoom == 2.0
    assert state.flipVertical is True
    assert state.targetWidth == 640
    assert state.lockAspect is True


def test_only_changed_values_notify(qtbot):
    state = CropState()
    s = _loaded()
    state._apply(s)

    seen = []
    state.rectXChanged.connect(lambda v: seen.append(("rectX", v)))
    state.rectWChanged.connect(lambda v: seen.append(("rectW", v)))
    state.zoomChanged.connect(lambda v: seen.append(("zoom", v)))

    state._apply(s)
    assert seen == []

    with qtbot.waitSignal(state.rectXChanged, timeout=1000):
        state._apply(sm.set_crop_rect(s, x=100, width=200))
    assert seen == [("rectX", 100.0), ("rectW", 200.0)]


def test_close_resets_exposed_image(qtbot):
    state = CropState()
    state._apply(_loaded())
    state._apply(sm.close_session(_loaded()))
    assert state.state == "idle"
    assert state.imageWidth == 0
    assert state.sourceRef == ""
