# File: civicsync/core/logging.py
"""Process-wide logging setup."""
import logging

from civicsync.core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(level: str | None = None) -> logging.Logger:
    level_name = (level or settings.log_level or "INFO").upper()
    numeric = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger("civicsync")
    root.setLevel(numeric)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z"))
        root.addHandler(handler)
    root.propagate = False
    return root
