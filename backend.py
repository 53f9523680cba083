import asyncio
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from constants import REDIS_HOST, REDIS_PORT, REDIS_PASSWORD
from errors import StoreError
from logging_config import get_logger
from redis_keys import REDIS_MEMBERS_KEY

logger = get_logger(__name__)


class RoomStore:
    """List-with-TTL contract the room manager is written against.

    Each room is an append-ordered list of string entries. Implementations
    raise StoreError for any failure of the underlying storage.
    """

    async def append(self, room_id: str, entry: str) -> int:
        raise NotImplementedError

    async def length(self, room_id: str) -> int:
        raise NotImplementedError

    async def read_at(self, room_id: str, index: int) -> Optional[str]:
        raise NotImplementedError

    async def set_expiry(self, room_id: str, seconds: int) -> None:
        raise NotImplementedError

    async def read_all(self, room_id: str) -> list:
        """Materialize the whole member list: length, then one read per index."""
        count = await self.length(room_id)
        if not count:
            return []
        results = await asyncio.gather(*(self.read_at(room_id, i) for i in range(count)))
        return [entry for entry in results if entry is not None]

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        pass


class RedisRoomStore(RoomStore):
    def __init__(self, client: redis.Redis):
        self.redis_client = client

    @classmethod
    def from_settings(cls, host: str = REDIS_HOST, port: int = REDIS_PORT, password: Optional[str] = REDIS_PASSWORD):
        logger.info(f"Initializing RedisRoomStore with connection to {host}:{port}")
        client = redis.Redis(host=host, port=port, password=password, decode_responses=True)
        return cls(client)

    def _key(self, room_id: str) -> str:
        return REDIS_MEMBERS_KEY.format(slug=room_id)

    async def append(self, room_id: str, entry: str) -> int:
        try:
            size = await self.redis_client.rpush(self._key(room_id), entry)
        except (RedisError, OSError) as e:
            raise StoreError(f"append to room {room_id} failed: {e}") from e
        logger.debug(f"Appended entry to room {room_id}, list size now {size}")
        return size

    async def length(self, room_id: str) -> int:
        try:
            return await self.redis_client.llen(self._key(room_id))
        except (RedisError, OSError) as e:
            raise StoreError(f"length of room {room_id} failed: {e}") from e

    async def read_at(self, room_id: str, index: int) -> Optional[str]:
        try:
            return await self.redis_client.lindex(self._key(room_id), index)
        except (RedisError, OSError) as e:
            raise StoreError(f"read of room {room_id} at {index} failed: {e}") from e

    async def set_expiry(self, room_id: str, seconds: int) -> None:
        try:
            await self.redis_client.expire(self._key(room_id), seconds)
        except (RedisError, OSError) as e:
            raise StoreError(f"expire of room {room_id} failed: {e}") from e
        logger.debug(f"Room {room_id} expiry refreshed to {seconds} seconds")

    async def read_all(self, room_id: str) -> list:
        # LRANGE reads the list in one round trip instead of LLEN + N x LINDEX
        try:
            return await self.redis_client.lrange(self._key(room_id), 0, -1)
        except (RedisError, OSError) as e:
            raise StoreError(f"read of room {room_id} failed: {e}") from e

    async def ping(self) -> bool:
        try:
            return bool(await self.redis_client.ping())
        except (RedisError, OSError) as e:
            logger.warning(f"Redis ping failed: {e}")
            return False

    async def close(self) -> None:
        await self.redis_client.aclose()
        logger.info("Redis connection closed")
