"""Logging setup shared by every rewardwatch module."""

from __future__ import annotations

import logging
import os
import sys

_FORMAT = "%(asctime)s %(levelname)s %(name)s | %(message)s"
_configured = False


def configure_logging(level: str | int | None = None) -> None:
    """Install a single stream handler on the ``rewardwatch`` logger."""

    global _configured
    root = logging.getLogger("rewardwatch")
    resolved = level or os.getenv("REWARDWATCH_LOG_LEVEL", "INFO")
    if isinstance(resolved, str):
        resolved = logging.getLevelName(resolved.strip().upper())
        if not isinstance(resolved, int):
            resolved = logging.INFO
    root.setLevel(resolved)
    if _configured:
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_FORMAT))
    root.addHandler(handler)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Return a module logger, configuring the package logger on first use."""

    if not _configured:
        configure_logging()
    return logging.getLogger(name)
