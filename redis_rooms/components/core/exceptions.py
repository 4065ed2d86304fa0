"""
Adapter exceptions with automatic logging.

Redis transport errors are never wrapped: they reach callers as the
``redis.exceptions.RedisError`` subclass the client raised. The classes here
cover failures that originate in the adapter itself.

Usage:
    from redis_rooms.components.core.exceptions import AdapterConfigurationError

    raise AdapterConfigurationError("namespace contains '*'", namespace=ns)
"""

from typing import Any

from redis_rooms.config.logging import get_logger

logger = get_logger(__name__)


class AdapterError(Exception):
    """
    Base exception with automatic logging.

    All adapter exceptions inherit from this class so that every raise
    leaves a log line with its context.
    """

    def __init__(self, detail: str, log_level: str = "warning", **log_context: Any):
        log_fn = getattr(logger, log_level, logger.warning)
        log_fn(detail, **log_context)

        super().__init__(detail)
        self.detail = detail
        self.context = log_context


class AdapterConfigurationError(AdapterError):
    """
    Fatal setup error.

    Raised at construction or on ``config()``: wrong client type, unusable
    namespace, unknown broadcast method. Not recoverable at runtime.

    Usage:
        raise AdapterConfigurationError("redis object is not a redis.asyncio.Redis instance")
    """

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(detail, log_level="error", **log_context)
