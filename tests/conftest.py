"""
OnChange Test Configuration.

Pytest fixtures and configuration.
Requires Python 3.11+.
"""

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from onchange.runner.process_runner import RunHandle, RunResult
from onchange.watcher.events import RawEvent
from onchange.watcher.timers import FakeScheduler


class FakeSource:
    """In-memory event source standing in for FileWatcher."""

    def __init__(self, initial: list[RawEvent] | None = None) -> None:
        self.on_event: Callable[[RawEvent], Any] | None = None
        self.subscribed = False
        self.unsubscribed = False
        self._initial = initial or []

    def subscribe(self, on_event: Callable[[RawEvent], Any], loop: Any = None) -> None:
        self.on_event = on_event
        self.subscribed = True

    def unsubscribe(self) -> None:
        self.unsubscribed = True

    def scan(self) -> list[RawEvent]:
        return list(self._initial)

    def emit(self, kind: str, path: str) -> None:
        assert self.on_event is not None
        self.on_event(RawEvent(kind=kind, path=path))


class FakeRunner:
    """Process runner that records commands and completes on demand."""

    def __init__(self) -> None:
        self.started: list[str] = []
        self._running: str | None = None
        self._on_complete: Callable[[RunResult], Any] | None = None
        self.shutdown_calls: list[float] = []

    def set_callback(self, callback: Callable[[RunResult], Any]) -> None:
        self._on_complete = callback

    @property
    def is_busy(self) -> bool:
        return self._running is not None

    def start(self, command: str) -> RunHandle:
        assert self._running is None, "overlapping start"
        self._running = command
        self.started.append(command)
        return RunHandle(command)

    def finish(self, exit_code: int = 0) -> None:
        command, self._running = self._running, None
        assert command is not None
        assert self._on_complete is not None
        self._on_complete(RunResult(command=command, exit_code=exit_code))

    async def shutdown(self, grace_period: float) -> RunResult | None:
        self.shutdown_calls.append(grace_period)
        return None


@pytest.fixture
def scheduler() -> FakeScheduler:
    """Manual clock starting at zero."""
    return FakeScheduler()


@pytest.fixture
def fired() -> list[RawEvent]:
    """Collects the representative event of every fire."""
    return []


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def watched_tree(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """A small directory tree, made the working directory."""
    (tmp_path / "dir" / "subdir").mkdir(parents=True)
    (tmp_path / "dir" / "a.js").write_text("a")
    (tmp_path / "dir" / "b.less").write_text("b")
    (tmp_path / "dir" / "subdir" / "c.less").write_text("c")
    (tmp_path / "node_modules").mkdir()
    (tmp_path / "node_modules" / "x.less").write_text("x")
    monkeypatch.chdir(tmp_path)
    return tmp_path
