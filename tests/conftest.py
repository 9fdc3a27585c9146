"""Pytest configuration.

Qt objects (the session controller and its state) need an application
instance. We create a single one, offscreen, before collection and shut it
down cleanly at the end.

Fixture images are synthesised with Pillow; tests that need libvips request
the `vips` fixture and are skipped when the shared library is missing.
"""

from __future__ import annotations

import io
import os
from typing import Any

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

_APP: Any | None = None


def pytest_configure(config) -> None:  # noqa: ARG001
    """Ensure a QApplication exists before collecting/running tests."""

    # Import lazily so non-Qt environments can still import this conftest.
    try:
        from PySide6.QtWidgets import QApplication
    except ImportError:
        return

    global _APP

    app = QApplication.instance()
    if app is None:
        # Keep a strong ref so it isn't GC'd mid-session.
        _APP = QApplication([])
    else:
        _APP = app


def pytest_sessionfinish(session, exitstatus) -> None:  # noqa: ARG001
    """Attempt a clean Qt shutdown to avoid lingering threads at interpreter exit."""

    try:
        from PySide6.QtWidgets import QApplication
    except ImportError:
        return

    app = QApplication.instance()
    if app is None:
        return

    app.quit()
    app.processEvents()


@pytest.fixture(scope="session")
def vips():
    try:
        import pyvips

        pyvips.Image.black(1, 1).avg()
    except Exception as e:  # libvips shared library missing or broken
        pytest.skip(f"libvips not available: {e}")
    return pyvips


def encode_image(img, fmt: str = "PNG", **save_kwargs) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format=fmt, **save_kwargs)
    return buf.getvalue()


@pytest.fixture
def split_image():
    """Factory: width x height image, left half red and right half blue."""
    from PIL import Image

    def make(width: int = 80, height: int = 60, fmt: str = "PNG") -> bytes:
        img = Image.new("RGB", (width, height), (0, 0, 255))
        img.paste((255, 0, 0), (0, 0, width // 2, height))
        return encode_image(img, fmt)

    return make


@pytest.fixture
def noise_jpeg() -> bytes:
    import numpy as np
    from PIL import Image

    rng = np.random.default_rng(1234)
    arr = rng.integers(0, 256, size=(200, 200, 3), dtype=np.uint8)
    return encode_image(Image.fromarray(arr, "RGB"), "JPEG", quality=95)


@pytest.fixture
def encode():
    return encode_image
