from __future__ import annotations

import logging

from sharktrack.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Attach a stream handler to the ``sharktrack`` logger tree (idempotent)."""
    logger = logging.getLogger("sharktrack")
    logger.setLevel(level or settings.log_level)
    if logger.handlers:
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
