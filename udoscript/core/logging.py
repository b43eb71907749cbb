"""Structured logging setup."""

import logging
import os
import sys
from typing import Optional

import structlog


VERBOSITY_LEVELS = {
    0: logging.WARNING,
    1: logging.INFO,
    2: logging.DEBUG,
}


def configure_logging(verbosity: int = 0, log_format: Optional[str] = None) -> None:
    """Configure structlog on top of the standard library logger.

    Log output goes to stderr so that `echo` output on stdout stays clean.
    """
    if log_format is None:
        log_format = os.getenv("LOG_FORMAT", "console")
    level = VERBOSITY_LEVELS.get(verbosity, logging.DEBUG)

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level, force=True)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if log_format == "json"
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
