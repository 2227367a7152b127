"""
OnChange Glob Patterns.

Compiles watch and ignore globs into matchers and works out which
directories have to be observed for each pattern.

Matching uses gitignore-style wildmatch from pathspec: ``*`` and ``?``
never cross ``/``, ``**`` spans directories and ``[abc]`` / ``[!abc]``
are character classes. ``{a,b}`` alternatives are expanded into separate
patterns first.
Requires Python 3.11+.
"""

import os
import posixpath
from dataclasses import dataclass

from pathspec import PathSpec

from onchange.utils.errors import ConfigurationError

_MAGIC_CHARS = frozenset("*?[{")


def has_magic(segment: str) -> bool:
    """Check if a pattern segment contains glob syntax."""
    return any(c in _MAGIC_CHARS for c in segment)


def to_posix(path: str) -> str:
    """Use forward slashes so patterns and paths compare alike."""
    return path.replace(os.sep, "/") if os.sep != "/" else path


def _split_alternatives(body: str) -> list[str]:
    alternatives: list[str] = []
    depth = 0
    start = 0
    for i, c in enumerate(body):
        if c == "{":
            depth += 1
        elif c == "}":
            depth -= 1
        elif c == "," and depth == 0:
            alternatives.append(body[start:i])
            start = i + 1
    alternatives.append(body[start:])
    return alternatives


def expand_braces(pattern: str) -> list[str]:
    """
    Expand ``{a,b}`` alternatives, nested ones included.

    Args:
        pattern: Glob that may contain brace groups

    Returns:
        One pattern per combination of alternatives, in order

    Raises:
        ConfigurationError: On an unclosed ``{``
    """
    open_at = pattern.find("{")
    if open_at == -1:
        return [pattern]

    depth = 0
    for close_at in range(open_at, len(pattern)):
        if pattern[close_at] == "{":
            depth += 1
        elif pattern[close_at] == "}":
            depth -= 1
            if depth == 0:
                break
    else:
        raise ConfigurationError(f"unclosed '{{' in pattern {pattern!r}")

    head, tail = pattern[:open_at], pattern[close_at + 1 :]
    expanded: list[str] = []
    for alternative in _split_alternatives(pattern[open_at + 1 : close_at]):
        expanded.extend(expand_braces(head + alternative + tail))
    return expanded


def build_spec(lines: list[str], pattern: str) -> PathSpec:
    """Build a wildmatch PathSpec, reporting bad syntax as a configuration error."""
    try:
        return PathSpec.from_lines("gitwildmatch", lines)
    except ValueError as e:
        raise ConfigurationError(f"invalid pattern {pattern!r}: {e}") from e


def _normalize(pattern: str) -> str:
    if not pattern or not pattern.strip():
        raise ConfigurationError("empty glob pattern")
    return posixpath.normpath(to_posix(pattern))


@dataclass(frozen=True)
class WatchPattern:
    """
    A compiled watch glob and the directory observing it.

    Paths are matched relative to ``root``. Without a ``spec`` the root
    itself and everything below it match.
    """

    pattern: str
    base: str
    recursive: bool
    root: str
    spec: PathSpec | None = None
    matches_root: bool = True

    @property
    def is_absolute(self) -> bool:
        return posixpath.isabs(self.pattern)

    def matches(self, path: str) -> bool:
        """Check a path, relative or absolute the same way as the pattern."""
        relative = posixpath.relpath(posixpath.normpath(to_posix(path)), self.root)
        if relative == ".." or relative.startswith("../"):
            return False
        if relative == ".":
            return self.matches_root
        if self.spec is None:
            return True
        return self.spec.match_file(relative)


def compile_pattern(pattern: str) -> WatchPattern:
    """
    Compile a watch glob.

    A pattern without glob syntax names a file or directory; a directory
    matches itself and everything below it. ``dir/**`` also matches
    ``dir`` itself.

    Args:
        pattern: Glob as given on the command line

    Returns:
        The compiled pattern

    Raises:
        ConfigurationError: If the pattern is empty or malformed
    """
    normalized = _normalize(pattern)
    segments = normalized.split("/")

    magic_at = next((i for i, seg in enumerate(segments) if has_magic(seg)), None)

    if magic_at is None:
        if os.path.isdir(normalized):
            return WatchPattern(normalized, normalized, True, root=normalized)
        base = posixpath.dirname(normalized) or "."
        return WatchPattern(normalized, base, False, root=normalized)

    prefix = segments[:magic_at]
    rest = "/".join(segments[magic_at:])
    if prefix == [""]:
        base = "/"
    else:
        base = "/".join(prefix) or "."

    # Leading "/" anchors each line at the base instead of any depth
    spec = build_spec(["/" + line for line in expand_braces(rest)], pattern)
    recursive = len(segments) - magic_at > 1 or "**" in rest
    return WatchPattern(
        normalized,
        base,
        recursive,
        root=base,
        spec=spec,
        matches_root=rest == "**",
    )


class IgnoreMatcher:
    """
    Matches paths against ignore globs with gitignore rules.

    A pattern without ``/`` is tested against every path component, so
    ``node_modules`` or ``*.tmp`` work at any depth. A pattern with ``/``
    is anchored at the working directory. Either way everything below a
    matching directory is ignored too.
    """

    def __init__(self, patterns: list[str] | None = None) -> None:
        lines: list[str] = []
        for pattern in patterns or []:
            normalized = _normalize(pattern)
            lines.extend(expand_braces(normalized))
        self._spec = build_spec(lines, ", ".join(patterns or []))
        self._count = len(lines)

    def __bool__(self) -> bool:
        return self._count > 0

    def is_ignored(self, path: str) -> bool:
        posix = to_posix(path)
        if posixpath.isabs(posix):
            cwd = to_posix(os.getcwd())
            if posix == cwd or posix.startswith(cwd.rstrip("/") + "/"):
                posix = posixpath.relpath(posix, cwd)
        return self._spec.match_file(posix)
