"""Connection lifecycle: joining a room and leaving it.

A session moves DISCONNECTED -> JOINING -> JOINED -> DISCONNECTED.  Presence
entries are written through the room coordinator so they never race with
state patches for the same room.
"""
import random
from enum import Enum
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from backend import RoomStore
from connections import Connection, ConnectionManager
from coordinator import RoomCoordinator
from errors import NotFoundError, PasswordMismatch, ValidationError
from logging_config import get_logger
from registry import verify_password_async
from schemas.events import JoinRoomPayload, ServerEvent, server_message
from schemas.state import Presence, RoomState

logger = get_logger(__name__)


class SessionState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    JOINING = "JOINING"
    JOINED = "JOINED"


class Session:
    def __init__(self, connection: Connection):
        self.connection = connection
        self.state = SessionState.DISCONNECTED
        self.room_id: Optional[str] = None
        self.guest_id: Optional[str] = None

    @property
    def connection_id(self) -> str:
        return self.connection.connection_id

    @property
    def joined(self) -> bool:
        return self.state == SessionState.JOINED and self.room_id is not None


def random_color() -> str:
    return "#{:06x}".format(random.randint(0, 0xFFFFFF))


class SessionManager:
    def __init__(self, store: RoomStore, coordinator: RoomCoordinator, connections: ConnectionManager):
        self.store = store
        self.coordinator = coordinator
        self.connections = connections

    async def join(self, session: Session, payload: Any) -> RoomState:
        try:
            request = JoinRoomPayload.model_validate(payload)
        except PydanticValidationError as e:
            logger.warning(f"Invalid join request from {session.connection_id}: {e.error_count()} errors")
            raise ValidationError("Invalid join request") from e

        if session.joined:
            await self.disconnect(session)

        session.state = SessionState.JOINING
        try:
            room = await self.store.get(request.room_id)
            if room is None:
                logger.info(f"Join rejected: room {request.room_id} not found")
                raise NotFoundError()
            if room.password_hash and not await verify_password_async(request.password, room.password_hash):
                logger.warning(f"Join rejected: invalid password for room {request.room_id}")
                raise PasswordMismatch()
        except Exception:
            session.state = SessionState.DISCONNECTED
            raise

        presence = Presence(
            id=request.guest_id,
            display_name=request.display_name,
            color=random_color(),
            is_gm=request.guest_id == room.gm_id,
        )

        def add_presence(state: RoomState):
            state.players[presence.id] = presence

        # joining the group and queueing the write happen in one step: a patch queued
        # before add_presence is in the snapshot, one queued after is held for us
        self.connections.hold(session.connection_id)
        self.connections.join_group(session.connection_id, request.room_id)
        try:
            updated = await self.coordinator.update(request.room_id, add_presence)
            if updated is None:
                # expired between the lookup and the write
                raise NotFoundError()
        except Exception:
            self.connections.discard(session.connection_id)
            self.connections.leave_group(session.connection_id, request.room_id)
            session.connection.room_id = None
            session.state = SessionState.DISCONNECTED
            raise

        session.room_id = request.room_id
        session.guest_id = request.guest_id
        session.state = SessionState.JOINED
        session.connection.guest_id = request.guest_id

        await self.connections.release(session.connection_id, server_message(ServerEvent.ROOM_STATE, updated.snapshot()))
        await self.connections.broadcast(
            request.room_id,
            server_message(ServerEvent.PLAYER_JOINED, presence.to_wire()),
            exclude=[session.connection_id],
        )
        logger.info(f"Guest {presence.id} ({presence.display_name}) joined room {request.room_id} (gm={presence.is_gm})")
        return updated

    async def disconnect(self, session: Session):
        room_id, guest_id = session.room_id, session.guest_id
        was_joined = session.joined
        session.state = SessionState.DISCONNECTED
        session.room_id = None
        session.guest_id = None
        if not was_joined or guest_id is None:
            return

        self.connections.leave_group(session.connection_id, room_id)
        session.connection.room_id = None

        def mark_offline(state: RoomState):
            player = state.players.get(guest_id)
            if player is not None:
                player.connected = False

        updated = await self.coordinator.update(room_id, mark_offline)
        if updated is None or guest_id not in updated.players:
            return
        await self.connections.broadcast(room_id, server_message(ServerEvent.PLAYER_LEFT, {"id": guest_id}))
        logger.info(f"Guest {guest_id} left room {room_id}")
