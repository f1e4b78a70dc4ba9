"""Package logger — silent unless the caller attaches a handler."""

import logging

logger = logging.getLogger("repo_risk")
logger.addHandler(logging.NullHandler())

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def get_logger(name: str | None = None) -> logging.Logger:
    """The ``repo_risk`` logger, or its child *name* (e.g. ``repo_risk.jobs``)."""
    return logger if name is None else logger.getChild(name)


def set_log_level(level: int | str) -> None:
    logger.setLevel(level)


def add_stream_handler(level: int | str = logging.INFO) -> None:
    """Log to stderr; a second call is a no-op."""
    if any(type(h) is logging.StreamHandler for h in logger.handlers):
        return
    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
