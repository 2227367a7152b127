"""
Tests for the Coalescer and its timers.

Requires Python 3.11+.
"""

import pytest

from onchange.utils.errors import ConfigurationError
from onchange.watcher.coalescer import Coalescer
from onchange.watcher.events import RawEvent
from onchange.watcher.timers import FakeScheduler, Timer


def change(path: str) -> RawEvent:
    return RawEvent(kind="change", path=path)


class TestTimer:
    """Test cases for Timer on the fake clock."""

    def test_rearm_replaces_deadline(self, scheduler: FakeScheduler):
        """Re-arming pushes the expiry back instead of adding a second one."""
        calls: list[float] = []
        timer = Timer(scheduler, lambda: calls.append(scheduler.time()))

        timer.arm(100)
        scheduler.advance(60)
        timer.arm(100)
        scheduler.advance(60)
        assert calls == []
        assert timer.deadline == pytest.approx(0.16)

        scheduler.advance(40)
        assert calls == [pytest.approx(0.16)]
        assert not timer.armed

    def test_cancel(self, scheduler: FakeScheduler):
        """A cancelled timer never fires."""
        calls: list[int] = []
        timer = Timer(scheduler, lambda: calls.append(1))
        timer.arm(10)
        timer.cancel()
        scheduler.advance(100)

        assert calls == []
        assert scheduler.pending == 0


class TestDebounce:
    """Test cases for the debounce policy."""

    def test_single_event_fires_after_window(self, scheduler, fired):
        """debounce=200, one write at t=0 -> fire at t=200, not before."""
        coalescer = Coalescer(scheduler, fired.append, debounce_ms=200)
        coalescer.push(change("dir/a.js"))

        scheduler.advance(199)
        assert fired == []
        assert coalescer.is_active

        scheduler.advance(1)
        assert [e.path for e in fired] == ["dir/a.js"]
        assert not coalescer.is_active

    @pytest.mark.parametrize("count", [1, 2, 5, 50])
    def test_burst_fires_once_with_last_event(self, scheduler, fired, count):
        """N events inside one window produce exactly one fire."""
        coalescer = Coalescer(scheduler, fired.append, debounce_ms=100)
        for i in range(count):
            coalescer.push(change(f"f{i}"))
            scheduler.advance(99)

        scheduler.advance(1)
        assert len(fired) == 1
        assert fired[0].path == f"f{count - 1}"

    def test_batch_tracks_window(self, scheduler, fired):
        """The pending batch records first/last times and the event count."""
        coalescer = Coalescer(scheduler, fired.append, debounce_ms=100)
        coalescer.push(change("a"))
        scheduler.advance(30)
        coalescer.push(change("b"))

        batch = coalescer.pending_batch
        assert batch is not None
        assert batch.first_event_time == pytest.approx(0.0)
        assert batch.last_event_time == pytest.approx(0.03)
        assert batch.representative_event.path == "b"
        assert batch.event_count == 2

    def test_separate_bursts_fire_separately(self, scheduler, fired):
        """Bursts separated by silence each fire."""
        coalescer = Coalescer(scheduler, fired.append, debounce_ms=50)
        coalescer.push(change("a"))
        scheduler.advance(100)
        coalescer.push(change("b"))
        scheduler.advance(100)

        assert [e.path for e in fired] == ["a", "b"]

    def test_zero_debounce_fires_immediately(self, scheduler, fired):
        """debounce=0 fires on every event."""
        coalescer = Coalescer(scheduler, fired.append, debounce_ms=0)
        coalescer.push(change("a"))
        coalescer.push(change("b"))

        assert [e.path for e in fired] == ["a", "b"]

    def test_event_at_expiry_opens_new_window(self, scheduler, fired):
        """An event handled right after the timer expired starts a new window."""
        coalescer = Coalescer(scheduler, fired.append, debounce_ms=100)
        coalescer.push(change("a"))
        scheduler.advance(100)
        coalescer.push(change("b"))

        assert [e.path for e in fired] == ["a"]
        scheduler.advance(100)
        assert [e.path for e in fired] == ["a", "b"]


class TestThrottle:
    """Test cases for the throttle policy."""

    def test_leading_and_trailing_fire(self, scheduler, fired):
        """debounce=0, throttle=300, writes at 0 and 50 -> fires at 0 and 300."""
        coalescer = Coalescer(scheduler, fired.append, debounce_ms=0, throttle_ms=300)
        coalescer.push(change("first"))
        assert [e.path for e in fired] == ["first"]

        scheduler.advance(50)
        coalescer.push(change("second"))
        scheduler.advance(249)
        assert len(fired) == 1

        scheduler.advance(1)
        assert [e.path for e in fired] == ["first", "second"]

    def test_quiet_window_stays_idle(self, scheduler, fired):
        """A window with no events ends without firing."""
        coalescer = Coalescer(scheduler, fired.append, debounce_ms=0, throttle_ms=300)
        coalescer.push(change("only"))
        scheduler.advance(1000)

        assert len(fired) == 1
        assert not coalescer.is_active

    def test_rate_limited_with_latest_event(self, scheduler, fired):
        """Steady events fire at most once per window, each with the newest event."""
        fire_times: list[float] = []

        def record(event: RawEvent) -> None:
            fire_times.append(scheduler.time())
            fired.append(event)

        coalescer = Coalescer(scheduler, record, debounce_ms=0, throttle_ms=100)
        for i in range(100):
            coalescer.push(change(f"e{i}"))
            scheduler.advance(10)
        scheduler.advance(200)

        gaps = [b - a for a, b in zip(fire_times, fire_times[1:])]
        assert all(gap >= 0.1 - 1e-9 for gap in gaps)
        assert fired[-1].path == "e99"
        # Each trailing fire carries the last event pushed before it.
        for time_fired, event in zip(fire_times[1:], fired[1:]):
            index = int(event.path[1:])
            assert index == min(99, round(time_fired * 100) - 1)

    def test_debounce_then_throttle(self, scheduler, fired):
        """Debounce delays the first fire, throttle spaces the next ones."""
        coalescer = Coalescer(scheduler, fired.append, debounce_ms=50, throttle_ms=500)
        coalescer.push(change("a"))
        scheduler.advance(50)
        assert [e.path for e in fired] == ["a"]

        coalescer.push(change("b"))
        scheduler.advance(50)
        assert len(fired) == 1

        scheduler.advance(449)
        assert len(fired) == 1

        scheduler.advance(1)
        assert [e.path for e in fired] == ["a", "b"]


class TestCoalescerEdgeCases:
    """Edge cases of the coalescer."""

    def test_unknown_kind_is_dropped(self, scheduler, fired):
        """Malformed events are dropped, never fatal."""
        coalescer = Coalescer(scheduler, fired.append, debounce_ms=0)
        assert coalescer.push(RawEvent(kind="renamed", path="x")) is False
        assert fired == []

    def test_cancel_discards_pending(self, scheduler, fired):
        """cancel() drops both a debounce window and a trailing event."""
        coalescer = Coalescer(scheduler, fired.append, debounce_ms=0, throttle_ms=100)
        coalescer.push(change("a"))
        coalescer.push(change("b"))
        coalescer.cancel()
        scheduler.advance(500)

        assert [e.path for e in fired] == ["a"]
        assert scheduler.pending == 0

    def test_failing_callback_does_not_break_coalescer(self, scheduler):
        """An exception in on_fire is logged and later fires still happen."""
        calls: list[str] = []

        def explode(event: RawEvent) -> None:
            calls.append(event.path)
            raise RuntimeError("boom")

        coalescer = Coalescer(scheduler, explode, debounce_ms=10)
        coalescer.push(change("a"))
        scheduler.advance(10)
        coalescer.push(change("b"))
        scheduler.advance(10)

        assert calls == ["a", "b"]
        assert coalescer.fire_count == 2

    def test_negative_timings_rejected(self, scheduler, fired):
        with pytest.raises(ConfigurationError):
            Coalescer(scheduler, fired.append, debounce_ms=-1)
