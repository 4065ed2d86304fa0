"""
Redis-backed rooms adapter.

Shares room membership between any number of server processes through
Redis, and broadcasts to room members across processes.
"""

from redis_rooms.adapter import RedisRoomsAdapter
from redis_rooms.components.core.contracts import AdapterConfig, RoomsAdapterContract
from redis_rooms.components.core.exceptions import AdapterConfigurationError, AdapterError
from redis_rooms.core.broadcaster import BroadcastOptions

__all__ = [
    "RedisRoomsAdapter",
    "AdapterConfig",
    "RoomsAdapterContract",
    "AdapterConfigurationError",
    "AdapterError",
    "BroadcastOptions",
]

__version__ = "1.0.0"
