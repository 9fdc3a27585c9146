import logging
import sys

from image_resizer.logger import _CategoryFilter, setup_logger


def _record(name: str) -> logging.LogRecord:
    return logging.LogRecord(name, logging.INFO, __file__, 1, "msg", None, None)


def test_category_filter_matches_logger_suffix():
    f = _CategoryFilter({"pipeline", "service"})
    assert f.filter(_record("image_resizer.pipeline"))
    assert f.filter(_record("image_resizer.service"))
    assert not f.filter(_record("image_resizer.session"))
    assert not f.filter(_record("image_resizer"))


def test_setup_logger_installs_category_filter_from_env(monkeypatch):
    monkeypatch.setenv("IMAGE_RESIZER_LOG_CATS", "decoder, controller")
    base = setup_logger()
    handler = next(h for h in base.handlers if getattr(h, "stream", None) is sys.stderr)
    filters = [f for f in handler.filters if isinstance(f, _CategoryFilter)]
    assert len(filters) == 1
    assert filters[0].allowed == {"decoder", "controller"}

    # Clearing the env var removes the filter on the next call.
    monkeypatch.delenv("IMAGE_RESIZER_LOG_CATS")
    setup_logger()
    assert handler.filters == []
