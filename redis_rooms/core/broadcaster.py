"""
Broadcast Resolver.

Turns a list of room names into the set of connection ids to reach, across
every process sharing the namespace, and dispatches the payload:

1. no rooms       -> every connection id in the namespace (key scan)
2. rooms          -> union of the room members, read in one transaction
3. ``except_ids`` -> removed exactly
4. transformer    -> applied once, not per recipient
5. dispatch       -> relay (one call with all ids) or local writes only

Without relay mode, ids that are not connected to this process are dropped:
they belong to another process and are unreachable from here. A local
connection whose write fails is logged and skipped; the others still
receive the payload.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Iterable, Mapping

from redis_rooms.components.core.exceptions import AdapterConfigurationError
from redis_rooms.config.constants import BroadcastMethod
from redis_rooms.config.logging import get_logger

if TYPE_CHECKING:
    from redis_rooms.components.core.contracts import LocalConnection
    from redis_rooms.core.membership import MembershipStore

logger = get_logger(__name__)


def _identity(data: Any) -> Any:
    return data


@dataclass(frozen=True)
class BroadcastOptions:
    """
    Options for one broadcast.

    Attributes:
        rooms: Target rooms. Empty means every connection in the namespace.
        except_ids: Connection ids that must not receive the payload.
        method: Local delivery primitive, ``"write"`` or ``"send"``.
        transformer: Applied once to the payload before delivery.
    """

    rooms: tuple[str, ...] = ()
    except_ids: frozenset[str] = field(default_factory=frozenset)
    method: str = BroadcastMethod.WRITE
    transformer: Callable[[Any], Any] = _identity

    def __post_init__(self) -> None:
        if self.method not in BroadcastMethod.ALL:
            raise AdapterConfigurationError(
                f"Unknown broadcast method: {self.method!r}",
                method=self.method,
            )

    @classmethod
    def coerce(cls, options: "BroadcastOptions | Mapping[str, Any] | None") -> "BroadcastOptions":
        """
        Accept a ``BroadcastOptions``, ``None`` or a plain mapping.

        Mappings may use the host framework's keys: ``rooms``, ``except``,
        ``method`` and ``transformer``.
        """
        if options is None:
            return cls()
        if isinstance(options, cls):
            return options

        rooms = options.get("rooms") or ()
        if isinstance(rooms, str):
            rooms = (rooms,)
        except_ids = options.get("except_ids", options.get("except")) or ()
        if isinstance(except_ids, str):
            except_ids = (except_ids,)
        return cls(
            rooms=tuple(rooms),
            except_ids=frozenset(except_ids),
            method=options.get("method") or BroadcastMethod.WRITE,
            transformer=options.get("transformer") or _identity,
        )


class BroadcastResolver:
    """
    Resolves broadcast targets from Redis and delivers to them.

    Relay handle discovery reads the ``relay`` attribute of an arbitrary
    local connection; when there is none, relay dispatch is skipped.
    """

    def __init__(self, store: "MembershipStore", relay_mode: bool = False) -> None:
        self._store = store
        self._relay_mode = relay_mode

    @property
    def relay_mode(self) -> bool:
        return self._relay_mode

    def set_relay_mode(self, enabled: bool) -> None:
        self._relay_mode = enabled

    async def resolve(self, rooms: Iterable[str], except_ids: Iterable[str] = ()) -> list[str]:
        """Target ids for ``rooms`` minus ``except_ids``."""
        names = list(rooms)
        if names:
            ids = await self._store.clients_in(names)
        else:
            try:
                ids = set(await self._store.all_clients())
            except Exception as e:
                # A failed namespace scan degrades to "send nothing".
                logger.error(
                    "Broadcast scan failed, nothing sent",
                    namespace=self._store.keys.namespace,
                    error=str(e),
                    exc_info=True,
                )
                ids = set()

        return sorted(ids.difference(except_ids))

    async def broadcast(
        self,
        data: Any,
        options: BroadcastOptions | Mapping[str, Any] | None = None,
        clients: Mapping[str, "LocalConnection"] | None = None,
    ) -> list[str]:
        """
        Deliver ``data`` to the resolved targets.

        Args:
            data: Payload before transformation.
            options: Rooms, exclusions, delivery method and transformer.
            clients: This process's connections, by id.

        Returns:
            The resolved target ids (after exclusions), whether or not each
            one was reachable from this process.
        """
        opts = BroadcastOptions.coerce(options)
        clients = clients or {}

        ids = await self.resolve(opts.rooms, opts.except_ids)
        if not ids:
            logger.debug("Broadcast resolved no targets", rooms=list(opts.rooms))
            return ids

        payload = opts.transformer(data)

        if self._relay_mode:
            await self._forward(ids, payload, clients)
        else:
            await self._write_local(ids, payload, opts.method, clients)
        return ids

    async def _forward(
        self,
        ids: list[str],
        payload: Any,
        clients: Mapping[str, "LocalConnection"],
    ) -> None:
        connection = next(iter(clients.values()), None)
        if connection is None:
            logger.debug("Relay mode without local connections, broadcast skipped", targets=len(ids))
            return

        outcome = connection.relay.forward(ids, payload)
        if inspect.isawaitable(outcome):
            await outcome
        logger.debug("Broadcast forwarded through relay", targets=len(ids))

    async def _write_local(
        self,
        ids: list[str],
        payload: Any,
        method: str,
        clients: Mapping[str, "LocalConnection"],
    ) -> None:
        delivered = 0
        failed = 0
        for conn_id in ids:
            connection = clients.get(conn_id)
            if connection is None:
                continue
            try:
                outcome = getattr(connection, method)(payload)
                if inspect.isawaitable(outcome):
                    await outcome
                delivered += 1
            except Exception as e:
                failed += 1
                logger.debug("Local send error", conn_id=conn_id, method=method, error=str(e))
        logger.debug(
            "Broadcast delivered locally",
            targets=len(ids),
            delivered=delivered,
            failed=failed,
            method=method,
        )
