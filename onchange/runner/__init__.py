"""
OnChange Runner Package.

Command templating and process execution.
Requires Python 3.11+.
"""

from onchange.runner.process_runner import (
    SPAWN_FAILURE_EXIT_CODE,
    ProcessRunner,
    RunHandle,
    RunResult,
)
from onchange.runner.templater import CommandSpec, render_command

__all__ = [
    "CommandSpec",
    "render_command",
    "ProcessRunner",
    "RunHandle",
    "RunResult",
    "SPAWN_FAILURE_EXIT_CODE",
]
