"""
Adapter Constants.

Key segments, defaults and the shutdown trigger set shared by the
membership store, the broadcast resolver and the lifecycle reconciler.
"""

from typing import Final

__all__ = [
    "AdapterConstants",
    "BroadcastMethod",
]


class BroadcastMethod:
    """Names of the local delivery primitives a connection may expose."""

    WRITE: Final[str] = "write"
    SEND: Final[str] = "send"

    ALL: Final[frozenset[str]] = frozenset({WRITE, SEND})


class AdapterConstants:
    """
    Adapter operational constants.

    Values that operators may want to change (namespace, relay mode,
    scan batch size) are also exposed through settings; settings take
    precedence at runtime.
    """

    # ==========================================================================
    # Key layout
    # ==========================================================================

    # Namespace used when none is configured. Yields the "bumblebee:" prefix.
    DEFAULT_NAMESPACE: Final[str] = "bumblebee"

    # Separator between namespace and entity segment.
    KEY_SEPARATOR: Final[str] = ":"

    # connection id -> set of room names
    SPARKS_SEGMENT: Final[str] = "sparks:"

    # room name -> set of connection ids
    ROOMS_SEGMENT: Final[str] = "rooms:"

    # Characters rejected in a namespace. The namespace ends up in SCAN MATCH
    # patterns and inside Lua string literals.
    FORBIDDEN_NAMESPACE_CHARS: Final[frozenset[str]] = frozenset("*?[]\\'\"\n\r")

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    # Termination signals that trigger reconciliation. Names that the
    # platform lacks (SIGQUIT on Windows) are skipped at install time.
    SHUTDOWN_SIGNALS: Final[tuple[str, ...]] = ("SIGINT", "SIGTERM", "SIGQUIT")
