"""
Tests for the Command Templater.

Requires Python 3.11+.
"""

import pytest

from onchange.runner.templater import CommandSpec, render_command
from onchange.watcher.events import RawEvent


class TestRenderCommand:
    """Test cases for placeholder substitution."""

    def test_event_and_path(self):
        """Event name and path are both substituted."""
        event = RawEvent(kind="change", path="dir/a.js")
        assert render_command("echo {event}:{path}", event) == "echo change:dir/a.js"

    def test_all_occurrences_replaced(self):
        event = RawEvent(kind="add", path="x.txt")
        assert render_command("cp {path} {path}.bak && echo {event} {event}", event) == (
            "cp x.txt x.txt.bak && echo add add"
        )

    @pytest.mark.parametrize("kind", ["add", "change", "unlink", "addDir", "unlinkDir"])
    def test_event_names(self, kind: str):
        assert render_command("{event}", RawEvent(kind=kind, path="p")) == kind

    def test_unknown_placeholders_pass_through(self):
        event = RawEvent(kind="change", path="a")
        assert render_command("echo {file} {} {PATH} ${path}", event) == "echo {file} {} {PATH} $a"

    def test_path_containing_placeholder_is_literal(self):
        """Substitution is a single pass over the template."""
        event = RawEvent(kind="unlink", path="odd{event}name")
        assert render_command("rm {path}", event) == "rm odd{event}name"

    def test_no_event_returns_template(self):
        assert render_command("make {path}", None) == "make {path}"


class TestCommandSpec:
    """Test cases for CommandSpec."""

    def test_render(self):
        command = CommandSpec("touch {path}")
        assert command.render(RawEvent(kind="add", path="new")) == "touch new"

    def test_immutable(self):
        command = CommandSpec("true")
        with pytest.raises(AttributeError):
            command.template = "false"  # type: ignore[misc]
