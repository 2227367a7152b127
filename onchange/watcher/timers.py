"""
OnChange Timers.

Cancellable, re-armable timers on top of a pluggable scheduler.
The asyncio event loop is the production scheduler; FakeScheduler
drives the same timers from a manual clock.
Requires Python 3.11+.
"""

import heapq
import itertools
from collections.abc import Callable
from typing import Any, Protocol


class Cancellable(Protocol):
    """Handle returned by ``Scheduler.call_later``."""

    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """The subset of ``asyncio.AbstractEventLoop`` the timers rely on."""

    def time(self) -> float: ...

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> Cancellable: ...


class Timer:
    """
    A single-shot timer that can be re-armed and cancelled.

    Arming an armed timer replaces the pending expiry.
    """

    def __init__(self, scheduler: Scheduler, callback: Callable[[], None]) -> None:
        self._scheduler = scheduler
        self._callback = callback
        self._handle: Cancellable | None = None
        self._deadline: float | None = None

    def arm(self, delay_ms: int) -> None:
        """Schedule the callback ``delay_ms`` milliseconds from now."""
        self.cancel()
        delay = delay_ms / 1000.0
        self._deadline = self._scheduler.time() + delay
        self._handle = self._scheduler.call_later(delay, self._expire)

    def cancel(self) -> None:
        """Disarm the timer. Does nothing if it is not armed."""
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._deadline = None

    @property
    def armed(self) -> bool:
        return self._handle is not None

    @property
    def deadline(self) -> float | None:
        """Scheduler time at which the timer expires, None when disarmed."""
        return self._deadline

    def _expire(self) -> None:
        self._handle = None
        self._deadline = None
        self._callback()


class _FakeHandle:
    def __init__(self) -> None:
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """
    Manually advanced clock implementing the Scheduler protocol.

    ``advance()`` runs every callback due at or before the new time, in
    deadline order, before returning. Events pushed by the caller after
    ``advance()`` therefore land after any timer expiring at the same instant.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._queue: list[tuple[float, int, _FakeHandle, Callable[..., Any], tuple[Any, ...]]] = []
        self._seq = itertools.count()

    def time(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> _FakeHandle:
        handle = _FakeHandle()
        heapq.heappush(self._queue, (self._now + delay, next(self._seq), handle, callback, args))
        return handle

    def advance(self, ms: float) -> None:
        """Move the clock forward by ``ms`` milliseconds, firing due callbacks."""
        target = self._now + ms / 1000.0
        while self._queue and self._queue[0][0] <= target + 1e-9:
            when, _, handle, callback, args = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = max(self._now, when)
            callback(*args)
        self._now = target

    @property
    def pending(self) -> int:
        """Number of scheduled callbacks that have not been cancelled."""
        return sum(1 for entry in self._queue if not entry[2].cancelled)
