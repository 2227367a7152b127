"""
OnChange Process Runner.

Runs the watched command through the host shell, one at a time.
Requires Python 3.11+.
"""

import asyncio
import os
import signal
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from onchange.utils.errors import RunnerBusyError
from onchange.utils.logger import LoggerMixin

# Exit status reported when the shell itself could not be spawned,
# matching the shell's own "command not found" status.
SPAWN_FAILURE_EXIT_CODE = 127

# Each command gets its own session (and process group) so it can be killed as a unit
_NEW_SESSION = os.name == "posix"


@dataclass(frozen=True)
class RunResult:
    """Outcome of one command run."""

    command: str
    exit_code: int
    signal: int | None = None
    error: str | None = None
    duration: float = 0.0

    @property
    def succeeded(self) -> bool:
        """True when the command exited normally with status 0."""
        return self.exit_code == 0 and self.signal is None and self.error is None


class RunHandle:
    """Tracks one spawned command."""

    def __init__(self, command: str) -> None:
        self.command = command
        self._process: asyncio.subprocess.Process | None = None
        self._task: asyncio.Task[RunResult] | None = None

    @property
    def pid(self) -> int | None:
        """Process id of the shell, None until it has been spawned."""
        return self._process.pid if self._process is not None else None

    def kill(self) -> None:
        """
        Force the command to exit.

        On POSIX the whole process group is sent SIGKILL, so children the
        shell started (pipelines, background jobs) go down with it.
        """
        process = self._process
        if process is None or process.returncode is not None:
            return
        try:
            if _NEW_SESSION:
                os.killpg(process.pid, signal.SIGKILL)
            else:
                process.kill()
        except ProcessLookupError:
            pass

    async def wait(self) -> RunResult:
        """
        Wait for the command to finish.

        Cancelling the waiter does not cancel the run.
        """
        if self._task is None:
            raise RuntimeError(f"command not started: {self.command!r}")
        return await asyncio.shield(self._task)


class ProcessRunner(LoggerMixin):
    """
    Spawns shell commands and reports their completion.

    Only one command may run at a time: ``start`` raises
    ``RunnerBusyError`` while ``is_busy`` is true. Completion, whether a
    normal exit, a signal or a failure to spawn, is reported once through
    ``on_complete`` after ``is_busy`` has gone back to False.
    """

    def __init__(
        self,
        on_complete: Callable[[RunResult], Any] | None = None,
        shell: str | None = None,
    ) -> None:
        """
        Initialize the runner.

        Args:
            on_complete: Called with the RunResult of each finished command
            shell: Shell executable, defaults to the platform shell
        """
        self._on_complete = on_complete
        self._shell = shell
        self._current: RunHandle | None = None

    def set_callback(self, callback: Callable[[RunResult], Any]) -> None:
        """Set or update the completion callback."""
        self._on_complete = callback

    @property
    def is_busy(self) -> bool:
        """True between ``start`` and the completion notification."""
        return self._current is not None

    def start(self, command: str) -> RunHandle:
        """
        Run ``command`` through the shell.

        Must be called from the event loop thread.

        Args:
            command: Literal command line

        Returns:
            Handle of the new run

        Raises:
            RunnerBusyError: If a command is still running
        """
        if self.is_busy:
            raise RunnerBusyError(command)

        handle = RunHandle(command)
        self._current = handle
        handle._task = asyncio.get_running_loop().create_task(self._run(handle))
        return handle

    async def shutdown(self, grace_period: float) -> RunResult | None:
        """
        Let the running command finish, killing it after ``grace_period``.

        Args:
            grace_period: Seconds to wait before killing the process

        Returns:
            The result of the command that was running, if any
        """
        handle = self._current
        if handle is None:
            return None

        try:
            return await asyncio.wait_for(handle.wait(), timeout=grace_period)
        except TimeoutError:
            self.log.warning(
                "command_killed",
                command=handle.command,
                pid=handle.pid,
                grace_period=grace_period,
            )
            handle.kill()
            return await handle.wait()

    async def _run(self, handle: RunHandle) -> RunResult:
        try:
            result = await self._execute(handle)
        finally:
            if self._current is handle:
                self._current = None

        if self._on_complete is not None:
            try:
                self._on_complete(result)
            except Exception as e:
                self.log.exception("complete_callback_failed", command=handle.command, error=str(e))
        return result

    async def _execute(self, handle: RunHandle) -> RunResult:
        started = time.monotonic()
        kwargs: dict[str, Any] = {}
        if self._shell is not None:
            kwargs["executable"] = self._shell
        if _NEW_SESSION:
            kwargs["start_new_session"] = True

        try:
            process = await asyncio.create_subprocess_shell(handle.command, **kwargs)
        except OSError as e:
            self.log.error("command_spawn_failed", command=handle.command, error=str(e))
            return RunResult(
                command=handle.command,
                exit_code=SPAWN_FAILURE_EXIT_CODE,
                error=str(e),
                duration=time.monotonic() - started,
            )

        handle._process = process
        self.log.debug("command_started", command=handle.command, pid=process.pid)

        try:
            returncode = await process.wait()
        except asyncio.CancelledError:
            handle.kill()
            raise

        duration = time.monotonic() - started
        if returncode < 0:
            # Killed by a signal: report it the way a shell would.
            return RunResult(
                command=handle.command,
                exit_code=128 - returncode,
                signal=-returncode,
                duration=duration,
            )
        return RunResult(command=handle.command, exit_code=returncode, duration=duration)
