"""
Wildcard room matching capability.

Exposed as ``adapter.wildcard`` so hosts that route by room patterns
(``"chat:*"``) can resolve them against the room list returned by
``adapter.get()``. Matching is delegated to ``fnmatch`` glob semantics.
"""

from __future__ import annotations

from fnmatch import fnmatchcase
from typing import Iterable

_GLOB_CHARS = frozenset("*?[")


class WildcardMatcher:
    """Glob-style matcher for room names."""

    def is_pattern(self, name: str) -> bool:
        """Whether ``name`` contains glob metacharacters."""
        return any(ch in _GLOB_CHARS for ch in name)

    def match(self, pattern: str, name: str) -> bool:
        return fnmatchcase(name, pattern)

    def filter(self, pattern: str, names: Iterable[str]) -> list[str]:
        """Return the names that match ``pattern``, keeping input order."""
        return [name for name in names if fnmatchcase(name, pattern)]
