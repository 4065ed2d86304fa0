"""
Tests for shutdown reconciliation.

Tests verify:
- Scoped removal with a connection enumerator, namespace wipe without one
- Exit-time (blocking) reconciliation on a sync client, on the adapter's server
- A failed exit-time attempt does not block later triggers
- The clean-shutdown sequence and its completion callback
- Trigger installation is idempotent
"""

import asyncio
import signal
import sys
from unittest.mock import MagicMock

import fakeredis
import pytest

from redis_rooms.core import lifecycle


class TestReconcile:
    """Async reconciliation."""

    @pytest.mark.asyncio
    async def test_enumerator_scopes_removal_to_local_ids(self, make_adapter):
        proc_a = make_adapter()
        proc_b = make_adapter()
        await proc_a.add("c1", "lobby")
        await proc_a.add("c1", "games")
        await proc_b.add("c2", "lobby")

        proc_a.config(get_clients=lambda: ["c1"])
        result = await proc_a.remove_clients()

        assert result == [2]
        assert await proc_b.get("c1") == []
        assert await proc_b.clients("lobby") == ["c2"]
        assert await proc_b.get("c2") == ["lobby"]
        assert await proc_b.is_empty("games") is True

    @pytest.mark.asyncio
    async def test_without_enumerator_clears_namespace(self, make_adapter):
        proc_a = make_adapter()
        proc_b = make_adapter()
        await proc_a.add("c1", "lobby")
        await proc_b.add("c2", "lobby")

        await proc_a.remove_clients()

        assert await proc_b.get() == []
        assert await proc_b.get("c2") == []

    @pytest.mark.asyncio
    async def test_empty_enumerator_removes_nothing(self, make_adapter):
        proc = make_adapter(get_clients=lambda: [])
        await proc.add("c1", "lobby")

        assert await proc.remove_clients() == []
        assert await proc.clients("lobby") == ["c1"]


class TestReconcileSync:
    """Blocking reconciliation used once the event loop is gone."""

    @pytest.mark.asyncio
    async def test_sync_removal_uses_sync_client(self, make_adapter, sync_redis):
        proc = make_adapter(get_clients=lambda: ["c1"], sync_redis=sync_redis)
        await proc.add("c1", "lobby")
        await proc.add("c2", "lobby")

        result = proc.reconciler.reconcile_sync()

        assert result == [1]
        assert sync_redis.smembers("bumblebee:rooms:lobby") == {"c2"}
        assert sync_redis.exists("bumblebee:sparks:c1") == 0

    @pytest.mark.asyncio
    async def test_sync_fallback_clears_namespace(self, make_adapter, sync_redis):
        proc = make_adapter(namespace="chat", sync_redis=sync_redis)
        await proc.add("c1", "lobby")
        sync_redis.sadd("other:rooms:lobby", "c9")

        assert proc.reconciler.reconcile_sync() == 2
        assert sync_redis.keys("chat:*") == []
        assert sync_redis.smembers("other:rooms:lobby") == {"c9"}

    def test_uncaught_exception_reconciles_then_chains(self, make_adapter, sync_redis, monkeypatch):
        previous = MagicMock()
        monkeypatch.setattr(sys, "excepthook", previous)
        monkeypatch.setattr(lifecycle.atexit, "register", MagicMock())
        monkeypatch.setattr(lifecycle.atexit, "unregister", MagicMock())
        monkeypatch.setattr(lifecycle.signal, "signal", MagicMock(side_effect=lambda signum, handler: signal.getsignal(signum)))
        proc = make_adapter(get_clients=lambda: ["c1"], sync_redis=sync_redis)
        sync_redis.sadd("bumblebee:sparks:c1", "lobby")
        sync_redis.sadd("bumblebee:rooms:lobby", "c1")
        proc.config(reconcile_on_exit=True)

        error = RuntimeError("boom")
        sys.excepthook(RuntimeError, error, None)

        previous.assert_called_once_with(RuntimeError, error, None)
        assert sync_redis.scard("bumblebee:rooms:lobby") == 0
        assert proc.reconciler.reconciled is True

    def test_reconciliation_failure_is_logged_not_raised(self, make_adapter):
        broken = MagicMock()
        broken.scan_iter.side_effect = ConnectionError("down")
        proc = make_adapter(sync_redis=broken)

        proc.reconciler._on_exit()

        assert proc.reconciler.reconciled is False

    def test_failed_attempt_leaves_next_trigger_free(self, make_adapter, sync_redis):
        broken = MagicMock()
        broken.scan_iter.side_effect = ConnectionError("down")
        proc = make_adapter(namespace="chat", sync_redis=broken)
        sync_redis.sadd("chat:rooms:lobby", "c1")

        proc.reconciler._on_exit()
        proc.config(sync_redis=sync_redis)
        proc.reconciler._on_exit()

        assert proc.reconciler.reconciled is True
        assert sync_redis.keys("chat:*") == []

    def test_exit_without_sync_client_uses_adapter_server(
        self, make_adapter, fake_server, sync_redis, monkeypatch
    ):
        built = []

        def sync_client_for(client):
            built.append(client)
            return fakeredis.FakeRedis(server=fake_server, decode_responses=True)

        monkeypatch.setattr(lifecycle, "sync_client_for", sync_client_for)
        proc = make_adapter(get_clients=lambda: ["c1"])
        sync_redis.sadd("bumblebee:sparks:c1", "lobby")
        sync_redis.sadd("bumblebee:rooms:lobby", "c1", "c2")

        proc.reconciler._on_exit()

        assert built == [proc.redis]
        assert proc.reconciler.reconciled is True
        assert sync_redis.smembers("bumblebee:rooms:lobby") == {"c2"}
        assert sync_redis.exists("bumblebee:sparks:c1") == 0


class TestShutdown:
    """Clean-shutdown sequence."""

    @pytest.mark.asyncio
    async def test_host_closed_before_removal_then_callback(self, make_adapter, sync_redis):
        seen_during_close = []
        host = MagicMock()
        host.close.side_effect = lambda: seen_during_close.append(
            sync_redis.sismember("bumblebee:rooms:lobby", "c1")
        )
        outcomes = []
        proc = make_adapter(
            get_clients=lambda: ["c1"],
            host=host,
            on_shutdown=lambda error, result: outcomes.append((error, result)),
        )
        await proc.add("c1", "lobby")
        await proc.add("c2", "lobby")

        result = await proc.shutdown()

        assert seen_during_close == [True]
        assert result == [1]
        assert outcomes == []
        await asyncio.sleep(0)
        assert outcomes == [(None, [1])]
        assert sync_redis.smembers("bumblebee:rooms:lobby") == {"c2"}

    @pytest.mark.asyncio
    async def test_async_host_close_is_awaited(self, make_adapter):
        closed = []

        class Host:
            async def close(self):
                closed.append(True)

        proc = make_adapter(get_clients=lambda: [], host=Host())

        await proc.shutdown()

        assert closed == [True]

    @pytest.mark.asyncio
    async def test_failure_goes_to_callback(self, make_adapter):
        host = MagicMock()
        host.close.side_effect = RuntimeError("host stuck")
        outcomes = []
        proc = make_adapter(host=host, on_shutdown=lambda error, result: outcomes.append((error, result)))

        await proc.shutdown()
        await asyncio.sleep(0)

        assert len(outcomes) == 1
        assert isinstance(outcomes[0][0], RuntimeError)
        assert outcomes[0][1] is None

    @pytest.mark.asyncio
    async def test_failure_raises_without_callback(self, make_adapter):
        host = MagicMock()
        host.close.side_effect = RuntimeError("host stuck")
        proc = make_adapter(host=host)

        with pytest.raises(RuntimeError):
            await proc.shutdown()


class TestInstall:
    """Trigger registration."""

    @pytest.fixture
    def hooks(self, monkeypatch):
        registered = MagicMock()
        installed_signals = MagicMock(side_effect=lambda signum, handler: signal.getsignal(signum))
        monkeypatch.setattr(lifecycle.atexit, "register", registered)
        monkeypatch.setattr(lifecycle.atexit, "unregister", MagicMock())
        monkeypatch.setattr(lifecycle.signal, "signal", installed_signals)
        monkeypatch.setattr(sys, "excepthook", sys.excepthook)
        return registered, installed_signals

    def test_install_registers_once(self, make_adapter, hooks):
        registered, installed_signals = hooks
        proc = make_adapter(get_clients=lambda: ["c1"])

        proc.config(reconcile_on_exit=True)
        proc.config(reconcile_on_exit=True)
        assert proc.reconciler.install() is False

        registered.assert_called_once()
        expected = [name for name in ("SIGINT", "SIGTERM", "SIGQUIT") if hasattr(signal, name)]
        assert installed_signals.call_count == len(expected)
        assert sys.excepthook == proc.reconciler._on_uncaught

    def test_not_installed_by_default(self, make_adapter, hooks):
        registered, _ = hooks
        proc = make_adapter()

        proc.config(get_clients=lambda: ["c1"])

        assert proc.reconciler.installed is False
        registered.assert_not_called()

    def test_uninstall_restores_hooks(self, make_adapter, hooks):
        original = sys.excepthook
        proc = make_adapter(reconcile_on_exit=True)

        proc.reconciler.uninstall()

        assert proc.reconciler.installed is False
        assert sys.excepthook == original

    def test_sync_signal_reconciles_once_and_reraises(self, make_adapter, hooks, monkeypatch, sync_redis):
        raised = MagicMock()
        monkeypatch.setattr(lifecycle.signal, "raise_signal", raised)
        proc = make_adapter(sync_redis=sync_redis, reconcile_on_exit=True)
        sync_redis.sadd("bumblebee:rooms:lobby", "c1")

        proc.reconciler._on_sync_signal(signal.SIGTERM, None)
        sync_redis.sadd("bumblebee:rooms:lobby", "c2")
        proc.reconciler._on_exit()

        raised.assert_called_once_with(signal.SIGTERM)
        assert sync_redis.smembers("bumblebee:rooms:lobby") == {"c2"}


class TestLoopSignal:
    """Signal handling inside a running loop."""

    @pytest.mark.asyncio
    async def test_reconciles_then_reraises(self, make_adapter, monkeypatch):
        raised = MagicMock()
        monkeypatch.setattr(lifecycle.signal, "raise_signal", raised)
        proc = make_adapter(get_clients=lambda: ["c1"])
        await proc.add("c1", "lobby")

        await proc.reconciler._reconcile_and_reraise(signal.SIGTERM)

        raised.assert_called_once_with(signal.SIGTERM)
        assert proc.reconciler.reconciled is True
        assert await proc.is_empty("lobby") is True
