"""Process-wide logging setup."""

import logging
import sys

from chartwatch.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

# Chatty third-party loggers
_NOISY_LOGGERS = ("httpx", "httpcore", "apscheduler", "telegram")


def setup_logging(level: str | None = None):
    """Configure the root logger once. Safe to call repeatedly."""
    level_name = (level or settings.log_level).upper()
    root = logging.getLogger()
    root.setLevel(level_name)

    if not any(getattr(h, "_chartwatch", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._chartwatch = True
        root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
