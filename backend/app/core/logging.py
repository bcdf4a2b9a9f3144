"""
Logging setup for the caption backend.

`setup_logging()` is called once from `app.main`; modules get their logger
through `get_logger(__name__)`.
"""

import logging
import sys
from typing import Optional

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


def setup_logging(log_level: str = "INFO", stream: Optional[object] = None) -> None:
    """
    Configure the `app` logger hierarchy.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ...)
        stream: Output stream, stdout by default
    """
    numeric_level = getattr(logging, log_level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {log_level}")

    logger = logging.getLogger("app")
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATEFMT))
    logger.addHandler(handler)
    logger.setLevel(numeric_level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
