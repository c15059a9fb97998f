"""Glob compilation and matching for repository-relative paths.

Supports ``**``, ``*``, ``?`` and a leading ``!`` for exclusion. Patterns are
anchored at both ends and always matched against forward-slash paths.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

@dataclass(frozen=True)
class GlobSet:
    """Compiled include and exclude patterns."""

    include: tuple[re.Pattern, ...] = ()
    exclude: tuple[re.Pattern, ...] = ()


def glob_to_regex(pattern: str) -> re.Pattern:
    """Translate a single glob pattern into an anchored regex.

    Args:
        pattern: A glob like ``src/**``, ``**/*.py`` or ``docs/?.md``.

    Returns:
        Compiled regex matching whole paths.
    """
    parts = ["^"]
    i = 0
    n = len(pattern)
    while i < n:
        c = pattern[i]
        if c == "*":
            if i + 1 < n and pattern[i + 1] == "*":
                # Collapse runs of stars
                while i + 1 < n and pattern[i + 1] == "*":
                    i += 1
                if i + 1 < n and pattern[i + 1] == "/":
                    # "**/" spans zero or more whole segments
                    i += 1
                    parts.append("(?:.*/)?")
                else:
                    parts.append(".*")
            else:
                parts.append("[^/]*")
        elif c == "?":
            parts.append("[^/]")
        else:
            parts.append(re.escape(c))
        i += 1
    parts.append(r"\Z")
    return re.compile("".join(parts))


def compile_globs(patterns: Iterable[str]) -> GlobSet:
    """Compile patterns into a GlobSet. Patterns starting with ``!`` exclude."""
    include = []
    exclude = []
    for pattern in patterns:
        if not pattern:
            continue
        if pattern.startswith("!"):
            exclude.append(glob_to_regex(pattern[1:]))
        else:
            include.append(glob_to_regex(pattern))
    return GlobSet(include=tuple(include), exclude=tuple(exclude))


def normalize_path(path: str) -> str:
    """Return ``path`` with forward slashes."""
    return path.replace("\\", "/")


def matches(path: str, globset: GlobSet) -> bool:
    """Check whether a path is included and not excluded by ``globset``."""
    p = normalize_path(path)
    if not any(r.match(p) for r in globset.include):
        return False
    return not any(r.match(p) for r in globset.exclude)


def filter_matching(paths: Iterable[str], globset: GlobSet) -> list[str]:
    """Return the normalized paths that match, preserving input order."""
    return [normalize_path(p) for p in paths if matches(p, globset)]


def any_match(paths: Iterable[str], globset: GlobSet) -> bool:
    return any(matches(p, globset) for p in paths)
