"""Logging helpers shared by every module."""

import logging
import os
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def setup_logging(level: Optional[str] = None) -> None:
    """
    Configure root logging once for the process.

    The LOG_LEVEL environment variable wins over the configured level.
    """
    resolved = (os.getenv("LOG_LEVEL") or level or "INFO").upper()
    logging.basicConfig(level=resolved, format=LOG_FORMAT)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
