"""Logging setup for the android_ssh_mcp package.

stdout carries the JSON-RPC stream, so log records go to stderr only.
"""

import logging
import os
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_LEVEL_ENV = "ANDROID_SSH_LOG_LEVEL"


def setup_logging(level: Optional[str] = None) -> None:
    """Configure the package logger with a stderr handler.

    Args:
        level: Level name; falls back to $ANDROID_SSH_LOG_LEVEL, then INFO.
    """
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV, "INFO")

    root_logger = logging.getLogger("android_ssh_mcp")
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.handlers = [handler]

    # paramiko logs every transport event at INFO
    logging.getLogger("paramiko").setLevel(logging.WARNING)

    root_logger.info("Logging initialized at %s level", level.upper())
