"""
Configuration module: Settings, logging, constants.
"""

from redis_rooms.config.settings import settings, get_settings, Settings
from redis_rooms.config.logging import get_logger, setup_logging
from redis_rooms.config.constants import AdapterConstants, BroadcastMethod

__all__ = [
    # settings
    "settings",
    "get_settings",
    "Settings",
    # logging
    "get_logger",
    "setup_logging",
    # constants
    "AdapterConstants",
    "BroadcastMethod",
]
