"""
OnChange Errors.

Exception hierarchy shared by the watch engine and the CLI.
Requires Python 3.11+.
"""


class OnChangeError(Exception):
    """Base class for every error raised by onchange."""


class ConfigurationError(OnChangeError):
    """Invalid user configuration: bad glob, missing command, bad timings."""


class WatcherError(OnChangeError):
    """The filesystem watcher could not watch any of the requested paths."""


class RunnerBusyError(OnChangeError):
    """A command was started while another one is still running."""

    def __init__(self, command: str) -> None:
        super().__init__(f"cannot start {command!r}: a command is already running")
        self.command = command
