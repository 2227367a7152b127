"""
OnChange Utilities Package.

Configuration, logging and error types shared by all modules.
Requires Python 3.11+.
"""

from onchange.utils.config import Settings, get_settings
from onchange.utils.errors import (
    ConfigurationError,
    OnChangeError,
    RunnerBusyError,
    WatcherError,
)
from onchange.utils.logger import LoggerMixin, configure_logging, get_logger

__all__ = [
    "Settings",
    "get_settings",
    "configure_logging",
    "get_logger",
    "LoggerMixin",
    "OnChangeError",
    "ConfigurationError",
    "WatcherError",
    "RunnerBusyError",
]
