"""Logging setup for scripts and manual hardware checks.

Library modules only create ``logging.getLogger(__name__)`` loggers; the
scripts call :func:`setup_logging` once before connecting.
"""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup_logging(level: int = logging.INFO) -> None:
    """Send museband (and bleak) log records to stdout at ``level``."""
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
