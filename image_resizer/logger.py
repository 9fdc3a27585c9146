import logging
import os
import sys

# Session file logger intentionally absent: logs go to stderr only.

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


class _CategoryFilter(logging.Filter):
    def __init__(self, allowed: set[str]) -> None:
        super().__init__()
        self.allowed = allowed

    def filter(self, record: logging.LogRecord) -> bool:
        # record.name like: image_resizer.pipeline, image_resizer.service
        parts = (record.name or "").split(".")
        suffix = parts[-1] if parts else record.name
        return suffix in self.allowed


def setup_logger(level: int = logging.INFO, name: str = "image_resizer") -> logging.Logger:
    """Create or update the project logger.

    - Respects env overrides IMAGE_RESIZER_LOG_LEVEL/IMAGE_RESIZER_LOG_CATS on every call
      (so late CLI parsing can still take effect).
    - Ensures there is exactly one StreamHandler on the base logger and updates
      its formatter/filters instead of bailing out early.
    """
    logger = logging.getLogger(name)

    env_level = (os.getenv("IMAGE_RESIZER_LOG_LEVEL") or "").strip().lower()
    if env_level:
        level = _LEVELS.get(env_level, level)
    logger.setLevel(level)

    stream_handler: logging.StreamHandler | None = None
    for h in list(logger.handlers):
        if isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stderr:
            stream_handler = h
            break

    if stream_handler is None:
        stream_handler = logging.StreamHandler(stream=sys.stderr)
        logger.addHandler(stream_handler)

    # Do not include the full logger name in messages to keep output concise
    fmt = logging.Formatter(
        fmt="[%(asctime)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    stream_handler.setFormatter(fmt)

    # Clear previous filters and apply a new one if cats provided
    stream_handler.filters.clear()
    cats = (os.getenv("IMAGE_RESIZER_LOG_CATS") or "").strip()
    if cats:
        allowed = {c.strip() for c in cats.split(",") if c.strip()}
        stream_handler.addFilter(_CategoryFilter(allowed))

    logger.propagate = False
    return logger


def get_logger(name: str | None = None) -> logging.Logger:
    base = setup_logger()
    return base if not name else base.getChild(name)
