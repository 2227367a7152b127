"""
OnChange File Watcher.

Cross-platform file system monitoring using watchdog.
Requires Python 3.11+.
"""

import asyncio
import os
from collections.abc import Callable, Iterator
from typing import Any

from watchdog.events import (
    DirCreatedEvent,
    DirDeletedEvent,
    DirModifiedEvent,
    DirMovedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver
from watchdog.observers.polling import PollingObserver

from onchange.utils.errors import WatcherError
from onchange.utils.logger import LoggerMixin
from onchange.watcher.events import EventKind, RawEvent
from onchange.watcher.globs import IgnoreMatcher, WatchPattern, compile_pattern


def _decode(path: str | bytes) -> str:
    return os.fsdecode(path)


class ChangeEventHandler(FileSystemEventHandler, LoggerMixin):
    """
    Translates watchdog events into RawEvents.

    Paths are reported relative to the working directory for relative
    patterns and absolute for absolute ones. Only paths matching a watch
    pattern and no ignore pattern are emitted. A move is reported as the
    removal of the source followed by the addition of the destination.
    """

    def __init__(
        self,
        patterns: list[WatchPattern],
        emit: Callable[[RawEvent], None],
        ignore: IgnoreMatcher | None = None,
    ) -> None:
        """
        Initialize the handler.

        Args:
            patterns: Compiled watch patterns
            emit: Receives every accepted event
            ignore: Paths to leave out
        """
        super().__init__()
        self._patterns = patterns
        self._emit = emit
        self._ignore = ignore or IgnoreMatcher()

    def resolve(self, raw_path: str) -> str | None:
        """Return the reported form of a path, or None if it is not watched."""
        absolute = os.path.abspath(raw_path)
        try:
            relative = os.path.relpath(absolute)
        except ValueError:
            # Different drive on Windows
            relative = absolute

        for pattern in self._patterns:
            candidate = absolute if pattern.is_absolute else relative
            if pattern.matches(candidate):
                if self._ignore and self._ignore.is_ignored(candidate):
                    return None
                return candidate
        return None

    def report(self, kind: EventKind, raw_path: str) -> bool:
        """Emit an event for ``raw_path`` if it is watched."""
        path = self.resolve(raw_path)
        if path is None:
            return False
        self.log.debug("raw_event", kind=kind.value, path=path)
        self._emit(RawEvent(kind=kind.value, path=path))
        return True

    def on_created(self, event: FileCreatedEvent | DirCreatedEvent) -> None:
        """Handle file/directory creation."""
        kind = EventKind.ADD_DIR if event.is_directory else EventKind.ADD
        self.report(kind, _decode(event.src_path))

    def on_modified(self, event: FileModifiedEvent | DirModifiedEvent) -> None:
        """Handle file modification. Directory modifications are noise."""
        if event.is_directory:
            return
        self.report(EventKind.CHANGE, _decode(event.src_path))

    def on_deleted(self, event: FileDeletedEvent | DirDeletedEvent) -> None:
        """Handle file/directory deletion."""
        kind = EventKind.UNLINK_DIR if event.is_directory else EventKind.UNLINK
        self.report(kind, _decode(event.src_path))

    def on_moved(self, event: FileMovedEvent | DirMovedEvent) -> None:
        """Handle file/directory move/rename."""
        if event.is_directory:
            self.report(EventKind.UNLINK_DIR, _decode(event.src_path))
            self.report(EventKind.ADD_DIR, _decode(event.dest_path))
        else:
            self.report(EventKind.UNLINK, _decode(event.src_path))
            self.report(EventKind.ADD, _decode(event.dest_path))


class FileWatcher(LoggerMixin):
    """
    Watches glob patterns for changes.

    Uses watchdog's native observer, or its polling observer when asked.
    Events are produced on the observer thread; pass the event loop to
    ``subscribe`` to have them delivered on the loop thread instead.
    """

    def __init__(
        self,
        patterns: list[str],
        ignore_patterns: list[str] | None = None,
        polling: bool = False,
        poll_interval_ms: int = 100,
    ) -> None:
        """
        Initialize the file watcher.

        Args:
            patterns: Glob patterns to watch
            ignore_patterns: Glob patterns to ignore
            polling: Use stat polling instead of OS notifications
            poll_interval_ms: Polling interval in milliseconds

        Raises:
            ConfigurationError: If a pattern is malformed
        """
        self._patterns = [compile_pattern(p) for p in patterns]
        self._ignore = IgnoreMatcher(ignore_patterns)
        self._polling = polling
        self._poll_interval_ms = poll_interval_ms
        self._observer: BaseObserver | None = None
        self._handler: ChangeEventHandler | None = None

    @property
    def is_running(self) -> bool:
        """Check if the watcher is running."""
        return self._observer is not None

    def watch_roots(self) -> dict[str, bool]:
        """
        Directories to observe, mapped to whether to observe recursively.

        A base directory that does not exist yet is replaced by its
        nearest existing ancestor, watched recursively.
        """
        roots: dict[str, bool] = {}
        for pattern in self._patterns:
            base, recursive = pattern.base, pattern.recursive
            while not os.path.isdir(base):
                parent = os.path.dirname(os.path.abspath(base))
                if parent == os.path.abspath(base):
                    break
                base, recursive = parent, True
            roots[base] = roots.get(base, False) or recursive
        return roots

    def subscribe(
        self,
        on_event: Callable[[RawEvent], Any],
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        """
        Start watching.

        Args:
            on_event: Receives each RawEvent
            loop: If given, events are delivered on this loop's thread

        Raises:
            WatcherError: If none of the paths could be watched
        """
        if self._observer is not None:
            return

        emit = on_event if loop is None else self._threadsafe(on_event, loop)
        self._handler = ChangeEventHandler(self._patterns, emit, self._ignore)

        if self._polling:
            observer: BaseObserver = PollingObserver(timeout=self._poll_interval_ms / 1000.0)
        else:
            observer = Observer()

        # Started first so that each schedule() starts its emitter right
        # away and a failing path can be skipped on its own.
        observer.start()
        watched = 0
        for root, recursive in self.watch_roots().items():
            try:
                observer.schedule(self._handler, root, recursive=recursive)
            except OSError as e:
                self.log.error("watch_path_failed", path=root, error=str(e))
                continue
            watched += 1

        if not watched:
            observer.stop()
            observer.join(timeout=5.0)
            raise WatcherError("none of the watched paths could be observed")

        self._observer = observer
        self.log.info(
            "file_watcher_started",
            patterns=[p.pattern for p in self._patterns],
            polling=self._polling,
        )

    def unsubscribe(self) -> None:
        """Stop watching for file changes."""
        if self._observer is None:
            return

        self._observer.stop()
        self._observer.join(timeout=5.0)
        self._observer = None
        self.log.info("file_watcher_stopped")

    def scan(self) -> Iterator[RawEvent]:
        """
        Yield an ``add``/``addDir`` event for every existing watched path.

        Used for the initial run.
        """
        handler = self._handler or ChangeEventHandler(self._patterns, lambda _: None, self._ignore)
        seen: set[str] = set()
        for root, recursive in self.watch_roots().items():
            for raw_path, is_dir in self._walk(root, recursive):
                path = handler.resolve(raw_path)
                if path is None or path in seen:
                    continue
                seen.add(path)
                kind = EventKind.ADD_DIR if is_dir else EventKind.ADD
                yield RawEvent(kind=kind.value, path=path)

    @staticmethod
    def _walk(root: str, recursive: bool) -> Iterator[tuple[str, bool]]:
        if not recursive:
            try:
                entries = list(os.scandir(root))
            except OSError:
                return
            for entry in entries:
                yield entry.path, entry.is_dir()
            return

        for dirpath, dirnames, filenames in os.walk(root):
            for name in dirnames:
                yield os.path.join(dirpath, name), True
            for name in filenames:
                yield os.path.join(dirpath, name), False

    def _threadsafe(
        self, on_event: Callable[[RawEvent], Any], loop: asyncio.AbstractEventLoop
    ) -> Callable[[RawEvent], None]:
        def emit(event: RawEvent) -> None:
            try:
                loop.call_soon_threadsafe(on_event, event)
            except RuntimeError:
                # Loop already closed during shutdown
                self.log.debug("event_after_shutdown", path=event.path)

        return emit
