"""
Application-wide logging setup.
Modules log through ``logging.getLogger(__name__)``; this installs the handler once.
"""
from __future__ import annotations

import logging
import sys

from taskify.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging() -> None:
    """Attach a single stdout handler to the root logger at LOG_LEVEL."""
    root = logging.getLogger()
    if root.handlers:
        return

    root.setLevel(getattr(logging, settings.LOG_LEVEL, logging.INFO))
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)

    # SQL echo is controlled by DEBUG on the engine, not by the root level.
    if not settings.DEBUG:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
