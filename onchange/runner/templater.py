"""
OnChange Command Templater.

Fills ``{path}`` and ``{event}`` placeholders in the command template.
Requires Python 3.11+.
"""

import re
from dataclasses import dataclass

from onchange.watcher.events import RawEvent

_PLACEHOLDER_RE = re.compile(r"\{(path|event)\}")


def render_command(template: str, event: RawEvent | None) -> str:
    """
    Substitute the event into a command template.

    Every occurrence of ``{path}`` and ``{event}`` is replaced in a single
    pass, so a path that itself contains ``{event}`` is inserted as is. Any
    other ``{...}`` token is left untouched. The path is not quoted.

    Args:
        template: Command template
        event: Representative event of the fire

    Returns:
        The command string to hand to the shell
    """
    if event is None:
        return template

    kind = event.event_kind
    values = {
        "path": event.path,
        "event": kind.value if kind is not None else event.kind,
    }
    return _PLACEHOLDER_RE.sub(lambda m: values[m.group(1)], template)


@dataclass(frozen=True)
class CommandSpec:
    """The configured command template."""

    template: str

    def render(self, event: RawEvent | None) -> str:
        return render_command(self.template, event)
