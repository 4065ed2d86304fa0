"""
Membership engine: store, broadcast resolver, lifecycle reconciler.
"""

from redis_rooms.core.broadcaster import BroadcastOptions, BroadcastResolver
from redis_rooms.core.lifecycle import LifecycleReconciler
from redis_rooms.core.membership import MembershipStore

__all__ = [
    "BroadcastOptions",
    "BroadcastResolver",
    "LifecycleReconciler",
    "MembershipStore",
]
