"""Logging setup.

Modules log through structlog.get_logger(__name__); the host
application calls configure_logging() once at startup.
"""

import logging

import structlog


def configure_logging(level: str = "INFO") -> None:
    """
    Configure structlog with ISO timestamps and console rendering.

    Args:
        level: Minimum level name (DEBUG, INFO, WARNING, ...)
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        cache_logger_on_first_use=False,
    )
