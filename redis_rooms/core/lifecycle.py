"""
Lifecycle Reconciler.

Keeps shared membership from outliving the local connections it describes.
On process termination this process's connections are removed from Redis
so other processes stop targeting dead sockets.

Two modes, picked by whether a connection enumerator is configured:

- With ``get_clients``: run the connection-removal script for every local
  id, in one transaction. Other processes' entries are untouched.
- Without it: fall back to ``clear()``, which wipes the whole namespace.
  Only safe when no other process shares the namespace.

Triggers (installed once per reconciler):

- termination signals (SIGINT, SIGTERM, SIGQUIT): inside a running loop the
  async client is used and the signal is re-raised afterwards; outside a
  loop a blocking client on the same server is used
- normal interpreter exit (``atexit``) and uncaught exceptions
  (``sys.excepthook``): the loop is gone by then, so a blocking client on
  the same server is used

Whatever fires first reconciles; later triggers find the work done. A failed
attempt leaves the next trigger free to try again.
"""

from __future__ import annotations

import asyncio
import atexit
import inspect
import signal
import sys
from typing import TYPE_CHECKING, Any, Callable

from redis_rooms.components.core.completion import schedule_completion
from redis_rooms.config.constants import AdapterConstants
from redis_rooms.config.logging import get_logger
from redis_rooms.config.settings import settings
from redis_rooms.components.redis.pool import close_redis_client, sync_client_for

if TYPE_CHECKING:
    import redis
    import redis.asyncio as redis_async

    from redis_rooms.components.core.contracts import AdapterConfig
    from redis_rooms.components.redis.lua_scripts import ScriptRegistry
    from redis_rooms.core.membership import MembershipStore

logger = get_logger(__name__)


class LifecycleReconciler:
    """
    Removes this process's membership from Redis on shutdown.

    The configuration is read through ``config_provider`` at trigger time,
    so ``config()`` changes made after installation are honoured.
    """

    def __init__(
        self,
        store: "MembershipStore",
        redis_client: "redis_async.Redis",
        registry: "ScriptRegistry",
        config_provider: Callable[[], "AdapterConfig"],
    ) -> None:
        self._store = store
        self._redis = redis_client
        self._registry = registry
        self._config = config_provider

        self._installed = False
        self._reconciled = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._loop_signals: list[int] = []
        self._previous_handlers: dict[int, Any] = {}
        self._previous_excepthook: Callable[..., Any] | None = None
        self._signal_task: asyncio.Task | None = None

    @property
    def installed(self) -> bool:
        return self._installed

    @property
    def reconciled(self) -> bool:
        return self._reconciled

    # =========================================================================
    # Reconciliation
    # =========================================================================

    async def reconcile(self) -> list[int] | int:
        """
        Remove this process's connections (or the whole namespace).

        Returns the per-connection room counts, or the number of deleted
        keys when falling back to ``clear()``.
        """
        config = self._config()
        if config.get_clients is None:
            logger.warning(
                "No connection enumerator configured, clearing namespace",
                namespace=self._store.keys.namespace,
            )
            return await self._store.clear()

        ids = list(config.get_clients())
        return await self._store.remove_clients(ids)

    def reconcile_sync(self) -> list[int] | int:
        """
        Blocking reconciliation for when no event loop is available.

        Uses ``sync_redis`` when configured, otherwise a temporary blocking
        client on the same server as the adapter's own client.
        """
        config = self._config()
        if config.sync_redis is not None:
            return self._reconcile_with(config.sync_redis, config)

        client = sync_client_for(self._redis)
        try:
            return self._reconcile_with(client, config)
        finally:
            self._registry.forget(client)
            client.close()
            client.connection_pool.disconnect()

    def _reconcile_with(self, client: "redis.Redis", config: "AdapterConfig") -> list[int] | int:
        keys = self._store.keys

        if config.get_clients is None:
            found = list(client.scan_iter(match=keys.all_pattern(), count=settings.scan_count))
            if not found:
                return 0
            return int(client.delete(*found))

        ids = list(config.get_clients())
        if not ids:
            return []
        scripts = self._registry.register(client, keys)
        with client.pipeline(transaction=True) as pipe:
            for conn_id in ids:
                scripts.remove_client(keys=[keys.sparks(conn_id)], args=[conn_id], client=pipe)
            result = pipe.execute()
        return [int(count) for count in result]

    async def shutdown(self) -> list[int] | int | None:
        """
        Full clean-shutdown sequence.

        1. snapshot local connection ids
        2. close the host framework so no new joins arrive
        3. remove the snapshot (or clear the namespace)
        4. close the Redis client
        5. deliver ``(error, result)`` to ``on_shutdown``

        Without ``on_shutdown``, errors are raised.
        """
        config = self._config()
        error: Exception | None = None
        result: list[int] | int | None = None

        try:
            ids = list(config.get_clients()) if config.get_clients is not None else None

            if config.host is not None:
                outcome = config.host.close()
                if inspect.isawaitable(outcome):
                    await outcome
                logger.info("Host server closed")

            if ids is None:
                result = await self._store.clear()
            else:
                result = await self._store.remove_clients(ids)
            self._reconciled = True

            await close_redis_client(self._redis)
            logger.info("Adapter shut down", namespace=self._store.keys.namespace)
        except Exception as e:
            logger.error("Adapter shutdown failed", error=str(e), exc_info=True)
            error = e

        if config.on_shutdown is not None:
            schedule_completion(config.on_shutdown, error, result)
        elif error is not None:
            raise error
        return result

    # =========================================================================
    # Trigger installation
    # =========================================================================

    def install(self) -> bool:
        """
        Register the shutdown triggers. Returns False when already installed.
        """
        if self._installed:
            return False
        self._installed = True

        atexit.register(self._on_exit)

        self._previous_excepthook = sys.excepthook
        sys.excepthook = self._on_uncaught

        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None

        for name in AdapterConstants.SHUTDOWN_SIGNALS:
            signum = getattr(signal, name, None)
            if signum is None:
                continue
            self._install_signal(signum)

        logger.info(
            "Shutdown reconciliation installed",
            namespace=self._store.keys.namespace,
            scoped=self._config().get_clients is not None,
        )
        return True

    def uninstall(self) -> None:
        """Remove every trigger registered by ``install()``."""
        if not self._installed:
            return

        atexit.unregister(self._on_exit)

        if sys.excepthook == self._on_uncaught and self._previous_excepthook is not None:
            sys.excepthook = self._previous_excepthook
        self._previous_excepthook = None

        if self._loop is not None and not self._loop.is_closed():
            for signum in self._loop_signals:
                self._loop.remove_signal_handler(signum)
        self._loop_signals.clear()
        self._loop = None

        for signum, previous in self._previous_handlers.items():
            signal.signal(signum, previous)
        self._previous_handlers.clear()

        self._installed = False

    def _install_signal(self, signum: int) -> None:
        if self._loop is not None:
            try:
                self._loop.add_signal_handler(signum, self._on_loop_signal, signum)
                self._loop_signals.append(signum)
                return
            except (NotImplementedError, RuntimeError, ValueError) as e:
                logger.debug("Loop signal handler unavailable", signal=signum, error=str(e))

        try:
            self._previous_handlers[signum] = signal.signal(signum, self._on_sync_signal)
        except ValueError as e:
            # Only the main thread may install signal handlers.
            logger.warning("Cannot install signal handler", signal=signum, error=str(e))

    # =========================================================================
    # Trigger handlers
    # =========================================================================

    def _on_loop_signal(self, signum: int) -> None:
        logger.info("Termination signal received", signal=signum)
        self._signal_task = self._loop.create_task(self._reconcile_and_reraise(signum))

    async def _reconcile_and_reraise(self, signum: int) -> None:
        if not self._reconciled:
            try:
                if self._config().host is not None:
                    await self.shutdown()
                else:
                    await self.reconcile()
                    self._reconciled = True
            except Exception as e:
                logger.error("Reconciliation on signal failed", signal=signum, error=str(e), exc_info=True)

        if self._loop is not None and signum in self._loop_signals:
            self._loop.remove_signal_handler(signum)
            self._loop_signals.remove(signum)
        signal.raise_signal(signum)

    def _on_sync_signal(self, signum: int, frame: Any) -> None:
        logger.info("Termination signal received", signal=signum)
        self._reconcile_blocking("signal")

        previous = self._previous_handlers.pop(signum, signal.SIG_DFL)
        signal.signal(signum, previous if previous is not None else signal.SIG_DFL)
        signal.raise_signal(signum)

    def _on_exit(self) -> None:
        self._reconcile_blocking("exit")

    def _on_uncaught(self, exc_type: type[BaseException], exc: BaseException, tb: Any) -> None:
        self._reconcile_blocking("uncaught exception")
        hook = self._previous_excepthook or sys.__excepthook__
        hook(exc_type, exc, tb)

    def _reconcile_blocking(self, trigger: str) -> None:
        if self._reconciled:
            return
        try:
            result = self.reconcile_sync()
            self._reconciled = True
            logger.info("Membership reconciled", trigger=trigger, result=result)
        except Exception as e:
            # Never mask the original exit reason.
            logger.error("Reconciliation failed", trigger=trigger, error=str(e), exc_info=True)
