"""structlog configuration."""

import logging

import structlog

_LEVELS = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


def resolve_level(level: str) -> int:
    """Translate a level name (case-insensitive) to a logging level.

    Raises:
        ValueError: If the level name is unknown
    """
    try:
        return _LEVELS[level.strip().lower()]
    except KeyError:
        raise ValueError(
            f"Invalid log level: {level}. Must be one of: {', '.join(_LEVELS)}"
        ) from None


def configure_logging(level: str = "info") -> None:
    """Configure structlog with a level filter and console rendering."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(resolve_level(level)),
        cache_logger_on_first_use=True,
    )
