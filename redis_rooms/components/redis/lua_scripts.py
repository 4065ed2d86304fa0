"""
Redis Lua Scripts for Atomic Membership Removal.

Both scripts walk one side of the membership index and strip the other side
in a single server-side step, so a concurrent join can never observe (or
survive in) a half-removed state:

- room removal:        rooms:<room>    -> SREM room from every sparks:<id>
- connection removal:  sparks:<id>     -> SREM id from every rooms:<room>

The member keys are derived inside the script, so the namespace prefix is
substituted into the script text when it is registered. Changing the
namespace therefore means registering new scripts.

Usage:
    registry = ScriptRegistry()
    scripts = registry.register(redis_client, keys)
    async with redis_client.pipeline(transaction=True) as pipe:
        await scripts.remove_room(keys=[keys.rooms("lobby")], args=["lobby"], client=pipe)
        results = await pipe.execute()
"""

from __future__ import annotations

from dataclasses import dataclass
from string import Template
from typing import TYPE_CHECKING, Any

from redis_rooms.config.logging import get_logger

if TYPE_CHECKING:
    from redis_rooms.components.redis.keys import KeyNamespace

logger = get_logger(__name__)


# =============================================================================
# Script templates
# =============================================================================

REMOVE_ROOM_SCRIPT = Template("""
-- Empty one room and drop it from each member's room set
-- KEYS[1] = room key (e.g. "bumblebee:rooms:lobby")
-- ARGV[1] = room name (e.g. "lobby")
-- Returns: number of connections removed from the room

local room = ARGV[1]
local ids = redis.call('SMEMBERS', KEYS[1])

for _, id in ipairs(ids) do
    redis.call('SREM', '${prefix}sparks:' .. id, room)
end

redis.call('DEL', KEYS[1])
return #ids
""")

REMOVE_CLIENT_SCRIPT = Template("""
-- Remove one connection from every room it belongs to
-- KEYS[1] = connection key (e.g. "bumblebee:sparks:abc")
-- ARGV[1] = connection id (e.g. "abc")
-- Returns: number of rooms the connection was removed from

local id = ARGV[1]
local rooms = redis.call('SMEMBERS', KEYS[1])

for _, room in ipairs(rooms) do
    redis.call('SREM', '${prefix}rooms:' .. room, id)
end

redis.call('DEL', KEYS[1])
return #rooms
""")


def render_script(template: Template, prefix: str) -> str:
    """Substitute the namespace prefix into a script template."""
    return template.substitute(prefix=prefix)


# =============================================================================
# Registration
# =============================================================================


@dataclass(frozen=True)
class MembershipScripts:
    """Registered script handles for one client and one namespace."""

    prefix: str
    remove_room: Any
    remove_client: Any


class ScriptRegistry:
    """
    Registers the membership scripts on a client, once per namespace.

    ``register_script`` returns handles that run through EVALSHA and fall
    back to SCRIPT LOAD when the server does not know the script yet, also
    when queued on a pipeline. Handles are cached per client; asking again
    with the same namespace returns the cached handles, asking with a new
    namespace registers new ones.
    """

    def __init__(self) -> None:
        self._scripts: dict[int, MembershipScripts] = {}

    def register(self, client: Any, keys: "KeyNamespace") -> MembershipScripts:
        cache_key = id(client)
        current = self._scripts.get(cache_key)
        if current is not None and current.prefix == keys.prefix:
            return current

        scripts = MembershipScripts(
            prefix=keys.prefix,
            remove_room=client.register_script(render_script(REMOVE_ROOM_SCRIPT, keys.prefix)),
            remove_client=client.register_script(render_script(REMOVE_CLIENT_SCRIPT, keys.prefix)),
        )
        self._scripts[cache_key] = scripts
        logger.debug(
            "Membership scripts registered",
            namespace=keys.namespace,
            remove_room_sha=scripts.remove_room.sha[:8],
            remove_client_sha=scripts.remove_client.sha[:8],
            previous_prefix=current.prefix if current else None,
        )
        return scripts

    def get(self, client: Any) -> MembershipScripts | None:
        return self._scripts.get(id(client))

    def forget(self, client: Any) -> None:
        self._scripts.pop(id(client), None)
