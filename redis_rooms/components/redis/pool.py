"""
Redis Client Management.

Settings-driven factory for the async client the adapter runs on, and the
blocking twin of a client used for exit-time reconciliation.
"""

from __future__ import annotations

import asyncio
import threading
from typing import TYPE_CHECKING

import redis.asyncio as redis

from redis_rooms.config.settings import settings
from redis_rooms.config.logging import get_logger

if TYPE_CHECKING:
    import redis as redis_sync

logger = get_logger(__name__)


# =============================================================================
# Async Redis Pool
# =============================================================================

# Global Redis connection pool singleton (async)
_redis_pool: redis.Redis | None = None
_redis_pool_lock: asyncio.Lock | None = None
_pool_lock_init = threading.Lock()


def _get_pool_lock() -> asyncio.Lock:
    """
    Get or create the pool lock (lazy initialization for event loop safety).

    Uses threading.Lock with double-check pattern so concurrent first calls
    cannot create different asyncio.Lock instances.
    """
    global _redis_pool_lock
    if _redis_pool_lock is None:
        with _pool_lock_init:
            if _redis_pool_lock is None:
                _redis_pool_lock = asyncio.Lock()
    return _redis_pool_lock


async def get_redis_pool() -> redis.Redis:
    """Get or create the async Redis client singleton."""
    global _redis_pool

    # Fast path: pool already initialized
    if _redis_pool is not None:
        return _redis_pool

    async with _get_pool_lock():
        # Double-check after acquiring lock
        if _redis_pool is None:
            _redis_pool = redis.from_url(
                settings.redis_url,
                max_connections=settings.redis_pool_max_connections,
                decode_responses=True,
                socket_connect_timeout=settings.redis_socket_timeout,
                socket_timeout=settings.redis_socket_timeout,
                health_check_interval=30,
            )
            logger.info(
                "Redis async pool initialized",
                max_connections=settings.redis_pool_max_connections,
                timeout=settings.redis_socket_timeout,
            )
    return _redis_pool


# =============================================================================
# Sync Redis Client (exit-time reconciliation)
# =============================================================================

# Connection settings that mean the same thing to the async and sync clients.
_PORTABLE_CONNECTION_KWARGS = (
    "host",
    "port",
    "path",
    "db",
    "username",
    "password",
    "socket_timeout",
    "socket_connect_timeout",
    "encoding",
    "encoding_errors",
    "decode_responses",
    "client_name",
    "protocol",
)


def sync_client_for(client: redis.Redis) -> "redis_sync.Redis":
    """
    Blocking client pointed at the same server as ``client``.

    Exit-time reconciliation runs with no event loop, so it cannot reuse the
    async client. The sync client copies the connection settings of the async
    pool instead of reading ``ROOMS_REDIS_URL``.
    """
    import redis as redis_sync
    from redis.asyncio.connection import SSLConnection, UnixDomainSocketConnection

    source = client.connection_pool
    kwargs = {
        key: value
        for key, value in source.connection_kwargs.items()
        if key in _PORTABLE_CONNECTION_KWARGS or key.startswith("ssl_")
    }

    if issubclass(source.connection_class, UnixDomainSocketConnection):
        kwargs["connection_class"] = redis_sync.UnixDomainSocketConnection
        kwargs.pop("host", None)
        kwargs.pop("port", None)
    elif issubclass(source.connection_class, SSLConnection):
        kwargs["connection_class"] = redis_sync.SSLConnection
    else:
        kwargs.pop("path", None)

    return redis_sync.Redis(connection_pool=redis_sync.ConnectionPool(**kwargs))


# =============================================================================
# Cleanup functions
# =============================================================================


async def close_redis_pool() -> None:
    """Close all pooled Redis connections on shutdown."""
    global _redis_pool, _redis_pool_lock

    if _redis_pool is not None:
        await _redis_pool.aclose()
        _redis_pool = None
        logger.info("Redis async pool closed")
    _redis_pool_lock = None


async def close_redis_client(client: redis.Redis) -> None:
    """
    Close ``client``. The pooled singleton is closed through
    ``close_redis_pool`` so the next ``get_redis_pool`` builds a fresh one.
    """
    if client is _redis_pool:
        await close_redis_pool()
    else:
        await client.aclose()
