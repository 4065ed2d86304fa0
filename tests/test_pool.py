"""
Tests for settings-driven Redis clients.
"""

import fakeredis
import pytest
import redis
import redis.asyncio as aioredis

from redis_rooms import RedisRoomsAdapter
from redis_rooms.components.redis import pool


@pytest.fixture
def fake_from_url(monkeypatch, fake_server):
    calls = []

    def from_url(url, **kwargs):
        calls.append((url, kwargs))
        return fakeredis.FakeAsyncRedis(server=fake_server, decode_responses=True)

    monkeypatch.setattr(pool.redis, "from_url", from_url)
    return calls


@pytest.mark.asyncio
async def test_pool_is_created_once(fake_from_url):
    first = await pool.get_redis_pool()
    second = await pool.get_redis_pool()

    assert first is second
    assert len(fake_from_url) == 1
    assert fake_from_url[0][1]["decode_responses"] is True

    await pool.close_redis_pool()


@pytest.mark.asyncio
async def test_adapter_from_settings(fake_from_url):
    adapter = await RedisRoomsAdapter.from_settings(relay_mode=True)

    await adapter.add("c1", "lobby")

    assert adapter.namespace == "bumblebee:"
    assert adapter.configuration.relay_mode is True
    assert await adapter.clients("lobby") == ["c1"]

    await pool.close_redis_pool()


@pytest.mark.asyncio
async def test_shutdown_releases_pooled_client(fake_from_url):
    adapter = await RedisRoomsAdapter.from_settings()
    await adapter.add("c1", "lobby")

    await adapter.shutdown()

    assert pool._redis_pool is None
    replacement = await pool.get_redis_pool()
    assert replacement is not adapter.redis
    assert len(fake_from_url) == 2

    await pool.close_redis_pool()


class TestSyncClientFor:
    """Blocking twin of an async client."""

    def test_copies_server_and_decoding(self):
        source = aioredis.Redis(host="cache.internal", port=6380, db=2, password="pw", decode_responses=True)

        client = pool.sync_client_for(source)
        kwargs = client.connection_pool.connection_kwargs

        assert isinstance(client, redis.Redis)
        assert not isinstance(client, aioredis.Redis)
        assert client.connection_pool.connection_class is redis.Connection
        assert kwargs["host"] == "cache.internal"
        assert kwargs["port"] == 6380
        assert kwargs["db"] == 2
        assert kwargs["password"] == "pw"
        assert kwargs["decode_responses"] is True
        assert "retry" not in kwargs

    def test_unix_socket(self):
        source = aioredis.Redis(unix_socket_path="/tmp/redis.sock")

        client = pool.sync_client_for(source)

        assert client.connection_pool.connection_class is redis.UnixDomainSocketConnection
        assert client.connection_pool.connection_kwargs["path"] == "/tmp/redis.sock"
        assert "host" not in client.connection_pool.connection_kwargs
