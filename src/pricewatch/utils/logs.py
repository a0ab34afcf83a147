from __future__ import annotations

import logging
import sys

import structlog

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}

def parse_level(name: str) -> int:
    try:
        return _LEVELS[name.strip().upper()]
    except KeyError:
        raise ValueError(f"unknown log level: {name!r}") from None

def configure_logging(level: str = "INFO", colors: bool = True) -> None:
    """
    Console logging for the bot: ISO timestamps, level filter, key=value context.
    Alerts stand out through the renderer's level colors.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=colors and sys.stderr.isatty()),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(parse_level(level)),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
