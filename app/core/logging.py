"""
Logging utilities for the FastAPI application and operational scripts.

Provides a consistent logging format and quiets chatty third-party request
logging.
"""

import logging
import sys

_QUIET_LOGGERS = ("httpx", "httpcore", "googleapiclient.discovery_cache")


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging with a sensible default format."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )
    # httpx logs every request line at INFO.
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


__all__ = ["configure_logging"]
