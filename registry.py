import asyncio
import uuid
from typing import Optional, Tuple

import bcrypt

from backend import RoomStore
from constants import BCRYPT_ROUNDS, ROOM_ID_LENGTH
from logging_config import get_logger
from schemas.state import RoomState

logger = get_logger(__name__)


def generate_room_id(length: int = ROOM_ID_LENGTH) -> str:
    # no collision check: 8 hex chars of a uuid4 is unique enough for live rooms
    return uuid.uuid4().hex[:length]


def hash_password(password: str) -> str:
    """Return a bcrypt hash of *password*."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password: Optional[str], password_hash: str) -> bool:
    """Verify *password* against a bcrypt *password_hash*."""
    if password is None:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # over-long secret or malformed hash
        return False


async def hash_password_async(password: str) -> str:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, hash_password, password)


async def verify_password_async(password: Optional[str], password_hash: str) -> bool:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, verify_password, password, password_hash)


async def create_room(store: RoomStore, password: Optional[str] = None,
                      gm_id: Optional[str] = None) -> Tuple[str, str]:
    room_id = generate_room_id()
    gm_id = gm_id or str(uuid.uuid4())
    password_hash = await hash_password_async(password) if password else None

    state = RoomState.new(room_id, gm_id, password_hash)
    if not await store.put(room_id, state):
        logger.warning(f"Room {room_id} was created but could not be persisted")
    logger.info(f"Room {room_id} created (gm={gm_id}, password={'yes' if password_hash else 'no'})")
    return room_id, gm_id


async def room_exists(store: RoomStore, room_id: str) -> bool:
    return await store.exists(room_id)
