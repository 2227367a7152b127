"""
OnChange Watcher Events.

Raw change events as produced by the filesystem watcher.
Requires Python 3.11+.
"""

import time
from dataclasses import dataclass, field
from enum import StrEnum


class EventKind(StrEnum):
    """Recognized change kinds. The value is the name used by ``{event}``."""

    ADD = "add"
    CHANGE = "change"
    UNLINK = "unlink"
    ADD_DIR = "addDir"
    UNLINK_DIR = "unlinkDir"

    @classmethod
    def parse(cls, value: str) -> "EventKind | None":
        """Return the kind named by ``value``, or None if it is not recognized."""
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass(frozen=True)
class RawEvent:
    """A single filesystem change notification."""

    kind: str
    path: str
    timestamp: float = field(default_factory=time.monotonic)

    @property
    def event_kind(self) -> EventKind | None:
        """The parsed kind, None for an unrecognized one."""
        return EventKind.parse(self.kind)
