"""
Redis layer for the rooms adapter: key layout, Lua scripts, client factories.
"""

from redis_rooms.components.redis.keys import KeyNamespace, as_str, validate_namespace
from redis_rooms.components.redis.lua_scripts import (
    REMOVE_CLIENT_SCRIPT,
    REMOVE_ROOM_SCRIPT,
    MembershipScripts,
    ScriptRegistry,
    render_script,
)
from redis_rooms.components.redis.pool import (
    close_redis_client,
    close_redis_pool,
    get_redis_pool,
    sync_client_for,
)

__all__ = [
    "KeyNamespace",
    "as_str",
    "validate_namespace",
    "REMOVE_CLIENT_SCRIPT",
    "REMOVE_ROOM_SCRIPT",
    "MembershipScripts",
    "ScriptRegistry",
    "render_script",
    "close_redis_client",
    "close_redis_pool",
    "get_redis_pool",
    "sync_client_for",
]
