import pytest
from fakeredis import FakeAsyncRedis, FakeServer
from redis.exceptions import ConnectionError

from backend import RoomStore
from registry import RoomRegistry
from session import RoomSessionProtocol
from signaling import SignalingRelay


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class RecordingTransport:
    """Stands in for ConnectionManager and keeps every delivery."""

    def __init__(self):
        self.sent = []

    async def send(self, connection_id, event, data=None):
        self.sent.append((connection_id, event, data))

    async def send_many(self, connection_ids, event, data=None):
        for connection_id in list(connection_ids):
            await self.send(connection_id, event, data)

    def events_for(self, connection_id):
        return [(event, data) for cid, event, data in self.sent if cid == connection_id]

    def event_names_for(self, connection_id):
        return [event for event, _ in self.events_for(connection_id)]

    def clear(self):
        self.sent.clear()


class UnreachableRedis:
    """Every call fails the way a dead Redis connection does."""

    def pipeline(self, *args, **kwargs):
        raise ConnectionError("Error 111 connecting to localhost:6379. Connection refused.")

    async def zrangebyscore(self, *args, **kwargs):
        raise ConnectionError("Error 111 connecting to localhost:6379. Connection refused.")


@pytest.fixture
def take_redis_down(store):
    def down():
        store.redis_client = UnreachableRedis()
    return down


@pytest.fixture
def fake_server():
    return FakeServer()


@pytest.fixture
def redis_client(fake_server):
    return FakeAsyncRedis(server=fake_server, decode_responses=True)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(redis_client, clock):
    return RoomStore(redis_client, clock=clock)


@pytest.fixture
def registry():
    return RoomRegistry()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def relay(registry, transport):
    return SignalingRelay(registry, transport)


@pytest.fixture
def protocol(registry, store, transport, relay):
    return RoomSessionProtocol(registry, store, transport, relay)
