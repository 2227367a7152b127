"""
OnChange Watcher Package.

Filesystem events, glob matching, and the debounce/throttle coalescer.
Requires Python 3.11+.
"""

from onchange.watcher.coalescer import Coalescer, PendingBatch
from onchange.watcher.events import EventKind, RawEvent
from onchange.watcher.file_watcher import ChangeEventHandler, FileWatcher
from onchange.watcher.globs import IgnoreMatcher, WatchPattern, compile_pattern
from onchange.watcher.timers import FakeScheduler, Scheduler, Timer

__all__ = [
    "Coalescer",
    "PendingBatch",
    "EventKind",
    "RawEvent",
    "ChangeEventHandler",
    "FileWatcher",
    "IgnoreMatcher",
    "WatchPattern",
    "compile_pattern",
    "FakeScheduler",
    "Scheduler",
    "Timer",
]
