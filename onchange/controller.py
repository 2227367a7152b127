"""
OnChange Watch Controller.

Wires the event source, the coalescer and the process runner into one
watch session running on a single asyncio event loop.
Requires Python 3.11+.
"""

import asyncio
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol

from onchange.runner.process_runner import ProcessRunner, RunResult
from onchange.runner.templater import CommandSpec
from onchange.utils.logger import LoggerMixin
from onchange.watcher.coalescer import Coalescer
from onchange.watcher.events import RawEvent
from onchange.watcher.timers import Scheduler


class EventSource(Protocol):
    """What the controller needs from a watcher (FileWatcher in production)."""

    def subscribe(
        self,
        on_event: Callable[[RawEvent], Any],
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None: ...

    def unsubscribe(self) -> None: ...

    def scan(self) -> Iterable[RawEvent]: ...


class SessionState(StrEnum):
    """Watch session states."""

    IDLE = "idle"
    COALESCING = "coalescing"
    DISPATCHING = "dispatching"
    TERMINAL = "terminal"


@dataclass
class RunState:
    """Whether the command is running, and the fire waiting behind it."""

    is_running: bool = False
    queued_event: RawEvent | None = None


class WatchController(LoggerMixin):
    """
    Runs one watch session.

    Raw events go to the coalescer; each fire either starts the command
    or, while it is still running, replaces the queued event. When the
    command completes the queued event, if any, is dispatched at once.
    All of this happens on the event loop thread, so no locking is needed.

    Stopping cancels pending timers and drops the queued event, then
    gives a running command ``grace_period`` seconds to finish before it
    is killed.
    """

    def __init__(
        self,
        source: EventSource,
        command: CommandSpec,
        debounce_ms: int = 400,
        throttle_ms: int = 0,
        initial: bool = False,
        grace_period: float = 5.0,
        runner: ProcessRunner | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        """
        Initialize the controller.

        Args:
            source: Event source to subscribe to
            command: Command template to run on each fire
            debounce_ms: Debounce window in milliseconds
            throttle_ms: Throttle window in milliseconds
            initial: Feed the existing watched paths in as ``add`` events at start
            grace_period: Seconds a running command gets on stop before it is killed
            runner: Process runner, created if not given
            scheduler: Timer source, defaults to the running event loop
        """
        self._source = source
        self._command = command
        self._debounce_ms = debounce_ms
        self._throttle_ms = throttle_ms
        self._initial = initial
        self._grace_period = grace_period
        self._runner = runner or ProcessRunner()
        self._runner.set_callback(self.on_complete)
        self._scheduler = scheduler

        self._coalescer: Coalescer | None = None
        self._run_state = RunState()
        self._stopped = asyncio.Event()
        self._terminal = False
        self._run_count = 0

        if scheduler is not None:
            self._coalescer = self._make_coalescer(scheduler)

    @property
    def state(self) -> SessionState:
        """Current state, derived from the components."""
        if self._terminal:
            return SessionState.TERMINAL
        if self._runner.is_busy:
            return SessionState.DISPATCHING
        if self._coalescer is not None and self._coalescer.is_active:
            return SessionState.COALESCING
        return SessionState.IDLE

    @property
    def run_state(self) -> RunState:
        return self._run_state

    @property
    def run_count(self) -> int:
        """Number of command runs started in this session."""
        return self._run_count

    @property
    def coalescer(self) -> Coalescer:
        if self._coalescer is None:
            raise RuntimeError("session not started")
        return self._coalescer

    async def start(self) -> None:
        """
        Subscribe to the event source and begin coalescing.

        Raises:
            WatcherError: If the source cannot watch anything
        """
        loop = asyncio.get_running_loop()
        if self._coalescer is None:
            self._coalescer = self._make_coalescer(self._scheduler or loop)

        self._source.subscribe(self.on_raw_event, loop)
        self.log.info(
            "watch_started",
            command=self._command.template,
            debounce_ms=self._debounce_ms,
            throttle_ms=self._throttle_ms,
        )

        if self._initial:
            for event in self._source.scan():
                self.on_raw_event(event)

    async def run(self) -> None:
        """Start the session and serve it until ``request_stop`` is called."""
        await self.start()
        try:
            await self._stopped.wait()
        finally:
            await self.stop()

    def request_stop(self) -> None:
        """Ask ``run`` to shut the session down. Safe to call repeatedly."""
        self._stopped.set()

    async def stop(self) -> RunResult | None:
        """
        End the session.

        Returns:
            Result of the command that was still running, if any
        """
        if self._terminal:
            return None

        self._terminal = True
        self._stopped.set()
        if self._coalescer is not None:
            self._coalescer.cancel()
        self._run_state.queued_event = None
        self._source.unsubscribe()

        result = await self._runner.shutdown(self._grace_period)
        self.log.info("watch_stopped", runs=self._run_count)
        return result

    def on_raw_event(self, event: RawEvent) -> None:
        """Entry point for events from the source."""
        if self._terminal:
            return
        self.coalescer.push(event)

    def on_fire(self, event: RawEvent) -> None:
        """Handle a fire decision from the coalescer."""
        if self._terminal:
            return

        if self._runner.is_busy:
            if self._run_state.queued_event is not None:
                self.log.debug("queued_event_replaced", path=event.path)
            self._run_state.queued_event = event
            return

        self._dispatch(event)

    def on_complete(self, result: RunResult) -> None:
        """Handle completion of the running command."""
        self._run_state.is_running = False

        if result.error is not None:
            self.log.error(
                "command_failed",
                command=result.command,
                exit_code=result.exit_code,
                error=result.error,
            )
        elif result.signal is not None:
            self.log.warning(
                "command_killed_by_signal",
                command=result.command,
                signal=result.signal,
            )
        elif result.exit_code != 0:
            self.log.warning(
                "command_exited_nonzero",
                command=result.command,
                exit_code=result.exit_code,
            )
        else:
            self.log.debug(
                "command_finished",
                command=result.command,
                duration=round(result.duration, 3),
            )

        queued, self._run_state.queued_event = self._run_state.queued_event, None
        if queued is not None and not self._terminal:
            self.on_fire(queued)

    def _dispatch(self, event: RawEvent) -> None:
        command = self._command.render(event)
        self._run_state.is_running = True
        self._run_count += 1
        self.log.info("command_dispatched", command=command, kind=event.kind, path=event.path)
        self._runner.start(command)

    def _make_coalescer(self, scheduler: Scheduler) -> Coalescer:
        return Coalescer(
            scheduler,
            self.on_fire,
            debounce_ms=self._debounce_ms,
            throttle_ms=self._throttle_ms,
        )
