"""
Membership Store.

CRUD over the dual membership index kept in Redis:

    sparks:<conn_id> -> {room, ...}
    rooms:<room>     -> {conn_id, ...}

Every compound write touches both sides inside one MULTI/EXEC, or goes
through a server-side script, so ``room in get(c)`` and ``c in clients(room)``
always agree for a third-party reader. Nothing is mirrored in process: Redis
is the only source of truth.

Known race: ``delete(conn_id)`` without a room reads the connection's rooms
and removes them in a second round trip. A join by the same connection that
lands between the two survives the removal.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable

from redis_rooms.components.redis.keys import KeyNamespace, as_str
from redis_rooms.components.redis.lua_scripts import MembershipScripts, ScriptRegistry
from redis_rooms.config.logging import get_logger
from redis_rooms.config.settings import settings

if TYPE_CHECKING:
    import redis.asyncio as redis

logger = get_logger(__name__)


class MembershipStore:
    """
    Room membership backed by Redis sets.

    Responsibilities:
    - Join/leave (both index sides, atomically)
    - Room and connection lookups
    - Room emptying through the room-removal script
    - Namespace-wide reset

    Transport errors from Redis propagate unchanged; nothing is retried.
    """

    def __init__(
        self,
        redis_client: "redis.Redis",
        keys: KeyNamespace,
        registry: ScriptRegistry | None = None,
        scan_count: int | None = None,
    ) -> None:
        self._redis = redis_client
        self._registry = registry or ScriptRegistry()
        self._scan_count = scan_count or settings.scan_count
        self._keys = keys
        self._scripts = self._registry.register(redis_client, keys)

    @property
    def keys(self) -> KeyNamespace:
        return self._keys

    @property
    def scripts(self) -> MembershipScripts:
        return self._scripts

    def rebind(self, keys: KeyNamespace) -> None:
        """Switch to another namespace, registering scripts for its prefix."""
        if keys == self._keys:
            return
        logger.info(
            "Membership store namespace changed",
            old=self._keys.namespace,
            new=keys.namespace,
        )
        self._keys = keys
        self._scripts = self._registry.register(self._redis, keys)

    # =========================================================================
    # Mutations
    # =========================================================================

    async def add(self, conn_id: str, room: str) -> list[Any]:
        """Put ``conn_id`` in ``room``. Re-joining is a no-op."""
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.sadd(self._keys.sparks(conn_id), room)
            pipe.sadd(self._keys.rooms(room), conn_id)
            result = await pipe.execute()
        logger.debug("Connection joined room", conn_id=conn_id, room=room)
        return result

    async def delete(self, conn_id: str, room: str | None = None) -> list[Any]:
        """
        Remove ``conn_id`` from ``room``, or from every room when ``room`` is
        empty or omitted.
        """
        if room:
            rooms = [room]
        else:
            members = await self._redis.smembers(self._keys.sparks(conn_id))
            rooms = [as_str(member) for member in members]

        if not rooms:
            return []

        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.srem(self._keys.sparks(conn_id), *rooms)
            for name in rooms:
                pipe.srem(self._keys.rooms(name), conn_id)
            result = await pipe.execute()
        logger.debug("Connection left rooms", conn_id=conn_id, rooms=rooms)
        return result

    async def empty(self, room: str | Iterable[str]) -> list[int]:
        """
        Remove every member from each given room.

        One room-removal script call per room, all in one transaction.
        Returns the number of members removed per room.
        """
        rooms = [room] if isinstance(room, str) else list(room)
        if not rooms:
            return []

        async with self._redis.pipeline(transaction=True) as pipe:
            for name in rooms:
                await self._scripts.remove_room(
                    keys=[self._keys.rooms(name)],
                    args=[name],
                    client=pipe,
                )
            result = await pipe.execute()
        logger.info("Rooms emptied", rooms=rooms, removed=result)
        return [int(count) for count in result]

    async def remove_clients(self, conn_ids: Iterable[str]) -> list[int]:
        """
        Remove each connection from all of its rooms.

        One connection-removal script call per id, all in one transaction.
        Returns the number of rooms each connection left.
        """
        ids = list(conn_ids)
        if not ids:
            return []

        async with self._redis.pipeline(transaction=True) as pipe:
            for conn_id in ids:
                await self._scripts.remove_client(
                    keys=[self._keys.sparks(conn_id)],
                    args=[conn_id],
                    client=pipe,
                )
            result = await pipe.execute()
        logger.info("Connections removed", count=len(ids))
        return [int(count) for count in result]

    async def clear(self) -> int:
        """
        Delete every key under the namespace.

        This wipes the state of every process sharing the namespace.
        """
        keys = [key async for key in self._scan(self._keys.all_pattern())]
        if not keys:
            return 0
        deleted = await self._redis.delete(*keys)
        logger.warning(
            "Namespace cleared",
            namespace=self._keys.namespace,
            deleted=deleted,
        )
        return int(deleted)

    # =========================================================================
    # Lookups
    # =========================================================================

    async def get(self, conn_id: str | None = None) -> list[str]:
        """
        Rooms of ``conn_id``, or every room name in the namespace.

        The no-argument form scans the ``rooms:`` keys and is O(rooms).
        """
        if conn_id:
            members = await self._redis.smembers(self._keys.sparks(conn_id))
            return sorted(as_str(member) for member in members)

        # SCAN may return a key more than once
        return sorted(
            {self._keys.strip_room(key) async for key in self._scan(self._keys.rooms_pattern())}
        )

    async def clients(self, room: str) -> list[str]:
        """Connection ids currently in ``room``."""
        members = await self._redis.smembers(self._keys.rooms(room))
        return sorted(as_str(member) for member in members)

    async def clients_in(self, rooms: Iterable[str]) -> set[str]:
        """Union of the members of several rooms, read in one transaction."""
        names = list(rooms)
        if not names:
            return set()

        async with self._redis.pipeline(transaction=True) as pipe:
            for name in names:
                pipe.smembers(self._keys.rooms(name))
            replies = await pipe.execute()

        ids: set[str] = set()
        for members in replies:
            ids.update(as_str(member) for member in members)
        return ids

    async def all_clients(self) -> list[str]:
        """Every connection id with membership in the namespace (key scan)."""
        return sorted(
            {self._keys.strip_sparks(key) async for key in self._scan(self._keys.sparks_pattern())}
        )

    async def is_empty(self, room: str) -> bool:
        count = await self._redis.scard(self._keys.rooms(room))
        return not count

    async def _scan(self, pattern: str):
        async for key in self._redis.scan_iter(match=pattern, count=self._scan_count):
            yield key
