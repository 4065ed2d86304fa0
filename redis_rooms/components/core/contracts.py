"""
Adapter contract and collaborator protocols.

The rooms adapter is consumed through a fixed method surface (the same one
an in-memory rooms adapter would offer) plus a wildcard capability object.
``RoomsAdapterContract`` spells that surface out; ``RedisRoomsAdapter``
satisfies it by composition rather than by inheriting an in-memory base.

Collaborators supplied by the host framework are described structurally:

- ``LocalConnection``: a connection held by this process, with ``write``
  (and optionally ``send``) and, in relay mode, a ``relay`` handle.
- ``Relay``: cross-process forwarder that routes ids to their owning process.
- ``HostServer``: the host framework instance, closed during shutdown.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterable, Mapping, Protocol

from redis_rooms.config.constants import AdapterConstants

if TYPE_CHECKING:
    import redis

    from redis_rooms.components.core.wildcard import WildcardMatcher
    from redis_rooms.config.settings import Settings

__all__ = [
    "AdapterConfig",
    "ClientEnumerator",
    "HostServer",
    "LocalConnection",
    "Relay",
    "RoomsAdapterContract",
]


ClientEnumerator = Callable[[], Iterable[str]]


class Relay(Protocol):
    """Cross-process forwarding path used in relay mode."""

    def forward(self, ids: list[str], payload: Any) -> Any:
        """Deliver ``payload`` to every id, wherever it is connected."""
        ...


class LocalConnection(Protocol):
    """A connection handle owned by the calling process."""

    relay: Relay

    def write(self, payload: Any) -> Any:
        ...


class HostServer(Protocol):
    """Host framework instance torn down before the store is closed."""

    def close(self) -> Any:
        ...


class RoomsAdapterContract(Protocol):
    """Method surface every rooms adapter exposes to the host framework."""

    wildcard: "WildcardMatcher"

    def add(self, conn_id: str, room: str, **kwargs: Any) -> Awaitable[Any]: ...

    def set(self, conn_id: str, room: str, **kwargs: Any) -> Awaitable[Any]: ...

    def get(self, conn_id: str | None = None, **kwargs: Any) -> Awaitable[Any]: ...

    def delete(self, conn_id: str, room: str | None = None, **kwargs: Any) -> Awaitable[Any]: ...

    def broadcast(
        self,
        data: Any,
        options: Any = None,
        clients: Mapping[str, LocalConnection] | None = None,
    ) -> Awaitable[Any]: ...

    def clients(self, room: str, **kwargs: Any) -> Awaitable[Any]: ...

    def empty(self, room: str | Iterable[str], **kwargs: Any) -> Awaitable[Any]: ...

    def is_empty(self, room: str, **kwargs: Any) -> Awaitable[Any]: ...

    def clear(self, **kwargs: Any) -> Awaitable[Any]: ...

    def config(self, **changes: Any) -> "AdapterConfig": ...


@dataclass(frozen=True)
class AdapterConfig:
    """
    Adapter configuration record.

    The adapter holds one instance and swaps it on ``config()``; fields are
    never mutated in place.

    Attributes:
        namespace: Key namespace; keys are prefixed with ``"<namespace>:"``.
        relay_mode: Hand broadcasts to the cross-process relay instead of
            writing to local connections only.
        get_clients: Zero-argument callable returning this process's
            connection ids. Without it, shutdown reconciliation wipes the
            whole namespace.
        reconcile_on_exit: Install shutdown reconciliation hooks.
        host: Host framework instance closed by ``shutdown()`` before the
            store connection.
        on_shutdown: ``(error, result)`` completion for ``shutdown()``.
        sync_redis: Synchronous client used for exit-time reconciliation,
            when no event loop is available anymore.
    """

    namespace: str = AdapterConstants.DEFAULT_NAMESPACE
    relay_mode: bool = False
    get_clients: ClientEnumerator | None = None
    reconcile_on_exit: bool = False
    host: HostServer | None = None
    on_shutdown: Callable[[BaseException | None, Any], Any] | None = None
    sync_redis: "redis.Redis | None" = None

    @property
    def prefix(self) -> str:
        return f"{self.namespace}{AdapterConstants.KEY_SEPARATOR}"

    def merge(self, **changes: Any) -> "AdapterConfig":
        """
        Return a new config with ``changes`` applied.

        ``None`` values leave the current field untouched, so callers can
        forward optional arguments without clobbering earlier settings.
        """
        applied = {key: value for key, value in changes.items() if value is not None}
        return replace(self, **applied)

    @classmethod
    def from_settings(cls, settings: "Settings", **overrides: Any) -> "AdapterConfig":
        """Build a config seeded from environment settings."""
        base = cls(namespace=settings.namespace, relay_mode=settings.relay_mode)
        return base.merge(**overrides)
