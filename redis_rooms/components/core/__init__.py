"""
Foundational components: contracts, configuration record, completion
callbacks, exceptions and the wildcard capability.
"""

from redis_rooms.components.core.completion import Completion, schedule_completion, with_completion
from redis_rooms.components.core.contracts import (
    AdapterConfig,
    ClientEnumerator,
    HostServer,
    LocalConnection,
    Relay,
    RoomsAdapterContract,
)
from redis_rooms.components.core.exceptions import AdapterConfigurationError, AdapterError
from redis_rooms.components.core.wildcard import WildcardMatcher

__all__ = [
    "Completion",
    "schedule_completion",
    "with_completion",
    "AdapterConfig",
    "ClientEnumerator",
    "HostServer",
    "LocalConnection",
    "Relay",
    "RoomsAdapterContract",
    "AdapterConfigurationError",
    "AdapterError",
    "WildcardMatcher",
]
