"""
OnChange Structured Logging Module.

Provides consistent, structured logging throughout the application.
Log output goes to stderr; stdout belongs to the watched command.
Requires Python 3.11+.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import Processor

from onchange.utils.config import get_settings


def _add_app_context(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Add application context to all log entries."""
    event_dict["app"] = get_settings().app_name
    return event_dict


def configure_logging(level: str | None = None, log_format: str | None = None) -> None:
    """
    Configure structured logging for the application.

    Call this once at application startup.

    Args:
        level: Level name overriding the configured one (e.g. from --verbose)
        log_format: "console" or "json", overriding the configured format
    """
    if level is None or log_format is None:
        configured = get_settings().logging
        level = level or configured.level
        log_format = log_format or configured.format
    level_name = level.upper()
    fmt = log_format

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if fmt == "json":
        processors: list[Processor] = [
            *shared_processors,
            _add_app_context,
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(
                colors=sys.stderr.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            ),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level_name)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level_name),
    )

    # Suppress noisy loggers
    logging.getLogger("watchdog").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


class LoggerMixin:
    """
    Mixin class to add logging capability to any class.

    Usage:
        class MyClass(LoggerMixin):
            def my_method(self):
                self.log.info("doing something", key="value")
    """

    @property
    def log(self) -> structlog.stdlib.BoundLogger:
        """Get logger bound to this class name."""
        if not hasattr(self, "_logger"):
            self._logger = get_logger(self.__class__.__name__)
        return self._logger
