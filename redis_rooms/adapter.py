"""
Redis rooms adapter.

Facade the host framework talks to. Composes the membership store, the
broadcast resolver and the lifecycle reconciler around one async Redis
client and one ``AdapterConfig``.

Usage:
    client = redis.asyncio.Redis.from_url("redis://localhost:6379", decode_responses=True)
    adapter = RedisRoomsAdapter(client, namespace="chat")
    adapter.config(get_clients=lambda: list(server.connections), reconcile_on_exit=True)

    await adapter.add("abc", "lobby")
    await adapter.broadcast({"msg": "hi"}, {"rooms": ["lobby"]}, server.connections)
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping

import redis.asyncio as redis

from redis_rooms.components.core.completion import with_completion
from redis_rooms.components.core.contracts import AdapterConfig, LocalConnection
from redis_rooms.components.core.exceptions import AdapterConfigurationError
from redis_rooms.components.core.wildcard import WildcardMatcher
from redis_rooms.components.redis.keys import KeyNamespace
from redis_rooms.components.redis.lua_scripts import ScriptRegistry
from redis_rooms.components.redis.pool import get_redis_pool
from redis_rooms.config.logging import get_logger
from redis_rooms.config.settings import settings
from redis_rooms.core.broadcaster import BroadcastOptions, BroadcastResolver
from redis_rooms.core.lifecycle import LifecycleReconciler
from redis_rooms.core.membership import MembershipStore

logger = get_logger(__name__)


class RedisRoomsAdapter:
    """
    Rooms adapter with membership stored in Redis.

    Implements ``RoomsAdapterContract``. Redis is authoritative: the adapter
    keeps no in-process room or connection mirrors.

    Every store-facing coroutine accepts an optional keyword-only
    ``callback(error, result)``; see ``with_completion``.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        config: AdapterConfig | None = None,
        **options: Any,
    ) -> None:
        """
        Args:
            redis_client: ``redis.asyncio.Redis`` instance. Anything else is
                a fatal setup error.
            config: Starting configuration. Defaults to ``AdapterConfig()``.
            **options: Field overrides applied on top of ``config``
                (``namespace``, ``relay_mode``, ...).
        """
        if not isinstance(redis_client, redis.Redis):
            raise AdapterConfigurationError(
                "redis object is not an instance of redis.asyncio.Redis",
                client_type=type(redis_client).__name__,
            )

        self.redis = redis_client
        self._config = _apply(config or AdapterConfig(), options)
        self._registry = ScriptRegistry()
        self._store = MembershipStore(redis_client, KeyNamespace(self._config.namespace), self._registry)
        self._resolver = BroadcastResolver(self._store, relay_mode=self._config.relay_mode)
        self._reconciler = LifecycleReconciler(
            self._store,
            redis_client,
            self._registry,
            config_provider=lambda: self._config,
        )
        self.wildcard = WildcardMatcher()

        logger.info(
            "Redis rooms adapter created",
            namespace=self._config.namespace,
            relay_mode=self._config.relay_mode,
        )
        self._maybe_install()

    @classmethod
    async def from_settings(cls, **options: Any) -> "RedisRoomsAdapter":
        """
        Build an adapter on the pooled client configured by ``ROOMS_*``
        environment settings.
        """
        client = await get_redis_pool()
        return cls(client, AdapterConfig.from_settings(settings), **options)

    # =========================================================================
    # Configuration
    # =========================================================================

    @property
    def configuration(self) -> AdapterConfig:
        """The configuration currently in effect."""
        return self._config

    @property
    def namespace(self) -> str:
        return self._store.keys.prefix

    @property
    def store(self) -> MembershipStore:
        return self._store

    @property
    def reconciler(self) -> LifecycleReconciler:
        return self._reconciler

    def config(self, **changes: Any) -> AdapterConfig:
        """
        Replace the held configuration with ``changes`` applied.

        Fields left out (or passed as ``None``) keep their value. A new
        namespace re-registers the Lua scripts. ``reconcile_on_exit=True``
        installs the shutdown triggers once.
        """
        new_config = _apply(self._config, changes)

        if new_config.namespace != self._config.namespace:
            self._store.rebind(KeyNamespace(new_config.namespace))
        self._resolver.set_relay_mode(new_config.relay_mode)
        self._config = new_config

        logger.debug("Adapter reconfigured", changed=sorted(changes))
        self._maybe_install()
        return new_config

    def _maybe_install(self) -> None:
        if self._config.reconcile_on_exit:
            self._reconciler.install()

    # =========================================================================
    # Membership
    # =========================================================================

    @with_completion
    async def add(self, conn_id: str, room: str) -> list[Any]:
        """Add a connection to a room."""
        return await self._store.add(conn_id, room)

    set = add

    @with_completion
    async def get(self, conn_id: str | None = None) -> list[str]:
        """Rooms of a connection, or every room when ``conn_id`` is omitted."""
        return await self._store.get(conn_id)

    @with_completion
    async def delete(self, conn_id: str, room: str | None = None) -> list[Any]:
        """
        Remove a connection from one room, or from all rooms.

        The all-rooms form is two round trips; a join racing it may survive.
        """
        return await self._store.delete(conn_id, room)

    @with_completion
    async def clients(self, room: str) -> list[str]:
        """Connection ids in a room."""
        return await self._store.clients(room)

    @with_completion
    async def empty(self, room: str | Iterable[str]) -> list[int]:
        """Remove every connection from one or more rooms."""
        return await self._store.empty(room)

    @with_completion
    async def is_empty(self, room: str) -> bool:
        return await self._store.is_empty(room)

    @with_completion
    async def clear(self) -> int:
        """
        Reset the store.

        Removes everything under the namespace, including the connections of
        every other process sharing it.
        """
        return await self._store.clear()

    # =========================================================================
    # Broadcast
    # =========================================================================

    async def broadcast(
        self,
        data: Any,
        options: BroadcastOptions | Mapping[str, Any] | None = None,
        clients: Mapping[str, LocalConnection] | None = None,
    ) -> list[str]:
        """
        Broadcast ``data`` to the connections of ``options.rooms``.

        Args:
            data: Payload, passed through ``options.transformer`` once.
            options: ``BroadcastOptions`` or a mapping with ``rooms``,
                ``except``, ``method`` and ``transformer``.
            clients: Connections held by this process, by id.
        """
        return await self._resolver.broadcast(data, options, clients)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @with_completion
    async def remove_clients(self) -> list[int] | int:
        """
        Remove this process's connections from Redis.

        Falls back to ``clear()`` when no ``get_clients`` enumerator is
        configured. Connections of other processes are untouched otherwise.
        """
        return await self._reconciler.reconcile()

    async def shutdown(self) -> list[int] | int | None:
        """Close the host, reconcile, close Redis, then notify ``on_shutdown``."""
        return await self._reconciler.shutdown()


def _apply(config: AdapterConfig, changes: Mapping[str, Any]) -> AdapterConfig:
    try:
        return config.merge(**changes)
    except TypeError as e:
        raise AdapterConfigurationError(
            f"Unknown adapter option: {e}",
            options=sorted(changes),
        ) from e
