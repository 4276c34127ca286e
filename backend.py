import asyncio
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, Tuple

import redis.asyncio as redis
from pydantic import ValidationError as PydanticValidationError
from redis.exceptions import RedisError

from constants import REDIS_CONNECT_TIMEOUT, REDIS_URL, ROOM_TTL_SECONDS
from errors import StoreUnavailable
from logging_config import get_logger
from redis_keys import REDIS_ROOM_KEY
from schemas.state import RoomState

logger = get_logger(__name__)


class RoomStore(ABC):
    """Key-value persistence for room snapshots, keyed by room id."""

    name = "store"

    def __init__(self, ttl: int = ROOM_TTL_SECONDS):
        self.ttl = ttl

    @abstractmethod
    async def get(self, room_id: str) -> Optional[RoomState]:
        ...

    @abstractmethod
    async def put(self, room_id: str, state: RoomState) -> bool:
        """Persist *state* and refresh its TTL. Never raises; returns the outcome."""

    @abstractmethod
    async def exists(self, room_id: str) -> bool:
        ...

    async def close(self):
        pass


class RedisBackend(RoomStore):
    name = "redis"

    def __init__(self, redis_client: redis.Redis, ttl: int = ROOM_TTL_SECONDS):
        super().__init__(ttl)
        self.redis_client = redis_client
        logger.info(f"Initializing RedisBackend with TTL {ttl} seconds")

    @classmethod
    async def connect(cls, url: str = REDIS_URL, ttl: int = ROOM_TTL_SECONDS,
                      timeout: float = REDIS_CONNECT_TIMEOUT) -> "RedisBackend":
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=timeout,
            socket_timeout=timeout,
        )
        try:
            await asyncio.wait_for(client.ping(), timeout)
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            await client.aclose()
            raise StoreUnavailable(f"Failed to connect to Redis at {url}: {e}") from e
        logger.info(f"Redis client connected successfully to {url}")
        return cls(client, ttl=ttl)

    @staticmethod
    def get_key(room_id: str) -> str:
        return REDIS_ROOM_KEY.format(slug=room_id)

    async def get(self, room_id: str) -> Optional[RoomState]:
        logger.debug(f"Fetching room {room_id}")
        try:
            data = await self.redis_client.get(self.get_key(room_id))
        except RedisError as e:
            logger.error(f"Failed to read room {room_id} from Redis: {e}", exc_info=True)
            return None
        if not data:
            logger.debug(f"Room {room_id} not found in Redis")
            return None
        try:
            return RoomState.model_validate_json(data)
        except PydanticValidationError as e:
            logger.error(f"Stored snapshot for room {room_id} is corrupt: {e}")
            return None

    async def put(self, room_id: str, state: RoomState) -> bool:
        key = self.get_key(room_id)
        try:
            # SET with EX writes the value and refreshes the TTL atomically
            await self.redis_client.set(key, state.model_dump_json(by_alias=True), ex=self.ttl)
        except RedisError as e:
            logger.error(f"Failed to save room {room_id} to Redis: {e}", exc_info=True)
            return False
        logger.debug(f"Room {room_id} saved with TTL {self.ttl} seconds")
        return True

    async def exists(self, room_id: str) -> bool:
        try:
            return await self.redis_client.exists(self.get_key(room_id)) == 1
        except RedisError as e:
            logger.error(f"Failed to check room {room_id} in Redis: {e}", exc_info=True)
            return False

    async def close(self):
        await self.redis_client.aclose()
        logger.info("Redis client closed")


class MemoryBackend(RoomStore):
    """In-process fallback. Expired rooms are evicted lazily when read."""

    name = "memory"

    def __init__(self, ttl: int = ROOM_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        super().__init__(ttl)
        self.clock = clock
        # room_id -> (serialized snapshot, expiry instant)
        self.rooms: Dict[str, Tuple[str, float]] = {}

    def _entry(self, room_id: str) -> Optional[str]:
        entry = self.rooms.get(room_id)
        if entry is None:
            return None
        data, expires_at = entry
        if self.clock() > expires_at:
            logger.debug(f"Room {room_id} expired, evicting from memory")
            del self.rooms[room_id]
            return None
        return data

    async def get(self, room_id: str) -> Optional[RoomState]:
        data = self._entry(room_id)
        if data is None:
            return None
        return RoomState.model_validate_json(data)

    async def put(self, room_id: str, state: RoomState) -> bool:
        self.rooms[room_id] = (state.model_dump_json(by_alias=True), self.clock() + self.ttl)
        return True

    async def exists(self, room_id: str) -> bool:
        return self._entry(room_id) is not None


async def connect_store(url: str = REDIS_URL, ttl: int = ROOM_TTL_SECONDS) -> RoomStore:
    """Pick the backend once for the life of the process."""
    try:
        return await RedisBackend.connect(url, ttl=ttl)
    except StoreUnavailable as e:
        logger.warning(f"{e}; switching to in-memory store")
        return MemoryBackend(ttl=ttl)
