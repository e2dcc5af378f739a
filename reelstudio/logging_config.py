"""Logging setup for the desktop application.

Modules log through ``logging.getLogger(__name__)``; only the entry point calls
``setup_logging``. Poll cycles log at DEBUG, state transitions at INFO and
swallowed collaborator failures at WARNING.
"""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def setup_logging(log_level: str = "INFO") -> None:
    root_logger = logging.getLogger()
    level = getattr(logging, log_level.upper(), logging.INFO)
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, "%H:%M:%S"))
    root_logger.addHandler(console_handler)

    # urllib3 logs every poll request at DEBUG
    logging.getLogger("urllib3").setLevel(max(level, logging.INFO))
    logging.getLogger("reelstudio").setLevel(level)


__all__ = ["setup_logging", "LOG_FORMAT"]
