"""
Logging configuration for authcycle.

Configures structlog on top of stdlib logging. Console output for
interactive use, JSON lines for services.
"""

from __future__ import annotations

import logging
import sys

import structlog

# Third-party loggers that are too chatty at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "asyncio")


def configure_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """
    Configure structured logging.

    Args:
        level: Minimum level name (DEBUG, INFO, WARNING, ERROR).
        json_logs: Render JSON lines instead of console output.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        stream=sys.stderr,
    )
    logging.getLogger("authcycle").setLevel(log_level)
    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(max(log_level, logging.WARNING))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
