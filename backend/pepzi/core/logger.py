"""
Logging setup.

Modules either use the shared ``logger`` or create their own with
``setup_logger(__name__)``.
"""

import logging
import sys

from pepzi.core.config import get_settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup_logger(name: str = "pepzi") -> logging.Logger:
    """Return a configured logger with a single stream handler."""
    log = logging.getLogger(name)
    if not log.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log.addHandler(handler)
        log.propagate = False
    log.setLevel(get_settings().LOG_LEVEL.upper())
    return log


logger = setup_logger()
