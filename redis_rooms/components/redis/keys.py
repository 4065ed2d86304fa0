"""
Redis key layout for the rooms adapter.

Two symmetric sets per namespace:

    <namespace>:sparks:<conn_id>  -> room names the connection belongs to
    <namespace>:rooms:<room>      -> connection ids currently in the room

Usage:
    keys = KeyNamespace("bumblebee")
    keys.sparks("abc")          # "bumblebee:sparks:abc"
    keys.rooms_pattern()        # "bumblebee:rooms:*"
    keys.strip_room("bumblebee:rooms:lobby")   # "lobby"
"""

from __future__ import annotations

from redis_rooms.components.core.exceptions import AdapterConfigurationError
from redis_rooms.config.constants import AdapterConstants


def as_str(value: str | bytes) -> str:
    """Normalize a Redis reply item, whatever ``decode_responses`` is set to."""
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


def validate_namespace(namespace: str) -> str:
    """
    Reject namespaces that cannot be used safely.

    The namespace is embedded in SCAN MATCH patterns and in Lua string
    literals, so glob metacharacters, quotes and line breaks are refused.
    """
    if not isinstance(namespace, str):
        raise AdapterConfigurationError(
            "namespace must be a string",
            namespace_type=type(namespace).__name__,
        )
    bad = sorted(set(namespace) & AdapterConstants.FORBIDDEN_NAMESPACE_CHARS)
    if bad:
        raise AdapterConfigurationError(
            f"namespace contains forbidden characters: {''.join(bad)!r}",
            namespace=namespace,
        )
    return namespace


class KeyNamespace:
    """Deterministic (entity, id) -> key mapping under one namespace."""

    __slots__ = ("namespace", "prefix", "_sparks_prefix", "_rooms_prefix")

    def __init__(self, namespace: str = AdapterConstants.DEFAULT_NAMESPACE) -> None:
        self.namespace = validate_namespace(namespace)
        self.prefix = f"{namespace}{AdapterConstants.KEY_SEPARATOR}"
        self._sparks_prefix = self.prefix + AdapterConstants.SPARKS_SEGMENT
        self._rooms_prefix = self.prefix + AdapterConstants.ROOMS_SEGMENT

    def __repr__(self) -> str:
        return f"KeyNamespace({self.namespace!r})"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, KeyNamespace) and other.namespace == self.namespace

    def __hash__(self) -> int:
        return hash(self.namespace)

    @property
    def sparks_prefix(self) -> str:
        return self._sparks_prefix

    @property
    def rooms_prefix(self) -> str:
        return self._rooms_prefix

    def sparks(self, conn_id: str) -> str:
        """Key of the room set for a connection."""
        return self._sparks_prefix + conn_id

    def rooms(self, room: str) -> str:
        """Key of the connection set for a room."""
        return self._rooms_prefix + room

    def all_pattern(self) -> str:
        return self.prefix + "*"

    def sparks_pattern(self) -> str:
        return self._sparks_prefix + "*"

    def rooms_pattern(self) -> str:
        return self._rooms_prefix + "*"

    def strip_sparks(self, key: str | bytes) -> str:
        """Connection id from a ``sparks:`` key."""
        return as_str(key)[len(self._sparks_prefix):]

    def strip_room(self, key: str | bytes) -> str:
        """Room name from a ``rooms:`` key."""
        return as_str(key)[len(self._rooms_prefix):]
