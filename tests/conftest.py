import pytest

from backend import RoomStore
from errors import StoreError
from routers.rooms import RoomManager


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class MemoryRoomStore(RoomStore):
    """In-process stand-in for Redis lists with key expiry."""

    def __init__(self, clock=None):
        self.clock = clock or FakeClock()
        self.lists = {}
        self.expires = {}

    def _live(self, room_id):
        deadline = self.expires.get(room_id)
        if deadline is not None and self.clock() >= deadline:
            self.lists.pop(room_id, None)
            self.expires.pop(room_id, None)
        return self.lists.get(room_id, [])

    async def append(self, room_id, entry):
        self._live(room_id)
        entries = self.lists.setdefault(room_id, [])
        entries.append(entry)
        return len(entries)

    async def length(self, room_id):
        return len(self._live(room_id))

    async def read_at(self, room_id, index):
        entries = self._live(room_id)
        if 0 <= index < len(entries):
            return entries[index]
        return None

    async def set_expiry(self, room_id, seconds):
        if self._live(room_id):
            self.expires[room_id] = self.clock() + seconds


class FailingRoomStore(RoomStore):
    async def append(self, room_id, entry):
        raise StoreError("connection refused")

    async def length(self, room_id):
        raise StoreError("connection refused")

    async def read_at(self, room_id, index):
        raise StoreError("connection refused")

    async def set_expiry(self, room_id, seconds):
        raise StoreError("connection refused")

    async def ping(self):
        return False


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return MemoryRoomStore(clock)


@pytest.fixture
def rooms(store):
    return RoomManager(store, ttl=300)


@pytest.fixture
def sent():
    """Datagrams handed to the transport, as (bytes, (ip, port)) pairs."""
    return []


@pytest.fixture
def sendto(sent):
    def _sendto(data, addr):
        sent.append((data, addr))
    return _sendto
