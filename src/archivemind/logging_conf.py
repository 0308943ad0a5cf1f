# src/archivemind/logging_conf.py
"""
Logging setup for the API process and scripts.

Everything under the `archivemind` logger goes to stdout. Compliance events use the
`archivemind.audit` child, which stays at INFO even when the rest is turned down.
"""

import logging
import sys
from typing import Optional

from archivemind.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
AUDIT_LOGGER = "archivemind.audit"
QUIET_LIBRARIES = ("httpx", "httpcore", "telegram")


def setup_logging(level: Optional[int] = None) -> logging.Logger:
    logger = logging.getLogger("archivemind")
    if logger.handlers:
        return logger
    if level is None:
        level = logging.DEBUG if settings.ENV == "dev" else logging.INFO
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(level)

    get_audit_logger().setLevel(logging.INFO)
    for name in QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)
    return logger


def get_audit_logger() -> logging.Logger:
    """Compliance events (forgotten deletions) go to a dedicated child logger."""
    return logging.getLogger(AUDIT_LOGGER)
