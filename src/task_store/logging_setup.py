"""Logging configuration for applications embedding the task store."""

from __future__ import annotations

import logging

from task_store.config.settings import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_configured = False


def configure_logging(level: str | int | None = None) -> None:
    """Configure root logging once. Later calls only adjust the level.

    Without an explicit level, ``TASK_STORE_LOG_LEVEL`` is used.
    """
    global _configured

    if level is None:
        level = get_settings().log_level

    root = logging.getLogger()
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    if not _configured:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
        _configured = True
    root.setLevel(level)

    # botocore logs every request at DEBUG.
    logging.getLogger("botocore").setLevel(max(level, logging.INFO))
