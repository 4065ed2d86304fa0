"""
Pytest configuration and fixtures for adapter tests.

Redis is replaced by fakeredis with Lua support, so the membership
scripts run with real command semantics. Each test gets its own fake
server; adapters built on the same server behave like separate processes
sharing one Redis.
"""

import fakeredis
import pytest

from redis_rooms import RedisRoomsAdapter


class FakeRelay:
    """Records relay forwards."""

    def __init__(self):
        self.forwards = []

    def forward(self, ids, payload):
        self.forwards.append((list(ids), payload))


class FakeConnection:
    """Local connection double recording writes and sends."""

    def __init__(self, conn_id, relay=None):
        self.id = conn_id
        self.relay = relay
        self.written = []
        self.sent = []

    def write(self, payload):
        self.written.append(payload)

    def send(self, payload):
        self.sent.append(payload)


@pytest.fixture
def fake_server():
    """One shared fake Redis server per test."""
    return fakeredis.FakeServer()


@pytest.fixture
def redis_client(fake_server):
    return fakeredis.FakeAsyncRedis(server=fake_server, decode_responses=True)


@pytest.fixture
def sync_redis(fake_server):
    """Blocking client on the same fake server, for exit-time paths and assertions."""
    return fakeredis.FakeRedis(server=fake_server, decode_responses=True)


@pytest.fixture
def make_adapter(fake_server):
    """
    Factory for adapters on the shared server.

    Installed shutdown triggers are removed after the test.
    """
    created = []

    def factory(**options):
        client = fakeredis.FakeAsyncRedis(server=fake_server, decode_responses=True)
        adapter = RedisRoomsAdapter(client, **options)
        created.append(adapter)
        return adapter

    yield factory

    for adapter in created:
        adapter.reconciler.uninstall()


@pytest.fixture
def adapter(make_adapter):
    return make_adapter()


@pytest.fixture
def relay():
    return FakeRelay()


@pytest.fixture
def connections(relay):
    """Three local connections sharing one relay handle."""
    return {conn_id: FakeConnection(conn_id, relay) for conn_id in ("c1", "c2", "c3")}
