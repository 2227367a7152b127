"""
OnChange Coalescer.

Turns a burst of raw change events into fire decisions.
Requires Python 3.11+.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from onchange.utils.errors import ConfigurationError
from onchange.utils.logger import LoggerMixin
from onchange.watcher.events import RawEvent
from onchange.watcher.timers import Scheduler, Timer


@dataclass
class PendingBatch:
    """Events seen in the current debounce window."""

    first_event_time: float
    last_event_time: float
    representative_event: RawEvent
    timer: Timer
    event_count: int = 1


class Coalescer(LoggerMixin):
    """
    Debounces and throttles raw events before firing.

    Events pass through debounce first: each event re-arms a
    ``debounce_ms`` timer and becomes the representative event, and the
    window fires when the timer elapses. With ``debounce_ms == 0`` every
    event goes straight through.

    The debounced output then passes through throttle: the first fire
    goes out immediately and opens a ``throttle_ms`` window. Anything
    arriving during the window is held (last one wins) and fired when the
    window closes, which opens a new window. With ``throttle_ms == 0``
    there is no throttling.

    A window is closed when its timer callback runs. An event handled
    after that callback opens a new window, even if it carries the same
    timestamp as the expiry.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        on_fire: Callable[[RawEvent], Any],
        debounce_ms: int = 400,
        throttle_ms: int = 0,
    ) -> None:
        """
        Initialize the coalescer.

        Args:
            scheduler: Clock and timer source (the asyncio loop in production)
            on_fire: Called with the representative event of each fire
            debounce_ms: Quiet period required before firing
            throttle_ms: Minimum spacing between fires
        """
        if debounce_ms < 0 or throttle_ms < 0:
            raise ConfigurationError("debounce and throttle must not be negative")

        self._scheduler = scheduler
        self._on_fire = on_fire
        self._debounce_ms = debounce_ms
        self._throttle_ms = throttle_ms

        self._batch: PendingBatch | None = None
        self._debounce_timer = Timer(scheduler, self._debounce_elapsed)
        self._throttle_timer = Timer(scheduler, self._throttle_elapsed)
        self._trailing_event: RawEvent | None = None
        self._fire_count = 0

    def push(self, event: RawEvent) -> bool:
        """
        Feed a raw event into the coalescer.

        Args:
            event: Event from the watcher

        Returns:
            False if the event was dropped because its kind is unknown
        """
        if event.event_kind is None:
            self.log.warning("event_dropped", kind=event.kind, path=event.path)
            return False

        if self._debounce_ms == 0:
            self._throttle(event)
            return True

        now = self._scheduler.time()
        if self._batch is None:
            self._batch = PendingBatch(
                first_event_time=now,
                last_event_time=now,
                representative_event=event,
                timer=self._debounce_timer,
            )
        else:
            self._batch.last_event_time = now
            self._batch.representative_event = event
            self._batch.event_count += 1

        self._batch.timer.arm(self._debounce_ms)
        return True

    def cancel(self) -> None:
        """Disarm every timer and discard pending events without firing."""
        self._debounce_timer.cancel()
        self._throttle_timer.cancel()
        self._batch = None
        self._trailing_event = None

    @property
    def is_active(self) -> bool:
        """True while an event is waiting for a window to close."""
        return self._batch is not None or self._trailing_event is not None

    @property
    def pending_batch(self) -> PendingBatch | None:
        return self._batch

    @property
    def fire_count(self) -> int:
        """Number of fires emitted so far."""
        return self._fire_count

    def _debounce_elapsed(self) -> None:
        batch, self._batch = self._batch, None
        if batch is None:
            return

        self.log.debug(
            "debounce_window_closed",
            events=batch.event_count,
            path=batch.representative_event.path,
        )
        self._throttle(batch.representative_event)

    def _throttle(self, event: RawEvent) -> None:
        if self._throttle_ms == 0:
            self._fire(event)
            return

        if self._throttle_timer.armed:
            self._trailing_event = event
            return

        # Open the window before firing so re-entrant pushes see it.
        self._throttle_timer.arm(self._throttle_ms)
        self._fire(event)

    def _throttle_elapsed(self) -> None:
        event, self._trailing_event = self._trailing_event, None
        if event is None:
            return

        self._throttle_timer.arm(self._throttle_ms)
        self._fire(event)

    def _fire(self, event: RawEvent) -> None:
        self._fire_count += 1
        try:
            self._on_fire(event)
        except Exception as e:
            self.log.exception("fire_callback_failed", path=event.path, error=str(e))
