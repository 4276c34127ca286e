"""The websocket side of the server: one loop per connection, one handler per event."""
import json
from typing import Any, Awaitable, Callable, Dict

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PydanticValidationError

from backend import RoomStore
from connections import ConnectionManager
from constants import MAX_MESSAGE_BYTES
from coordinator import RoomCoordinator
from errors import ValidationError, VTTError
from logging_config import get_logger
from relay import PatchRelay
from schemas.events import ClientEvent, ClientMessage, ServerEvent, server_message
from sessions import Session, SessionManager
from signaling import SignalingRelay

logger = get_logger(__name__)

Handler = Callable[[Session, Any], Awaitable[Any]]

# events that need no joined room
ROOMLESS_EVENTS = {ClientEvent.JOIN_ROOM, ClientEvent.SIGNAL_AUDIO}


class RealtimeServer:
    def __init__(self, store: RoomStore):
        self.store = store
        self.connections = ConnectionManager()
        self.coordinator = RoomCoordinator(store)
        self.sessions = SessionManager(store, self.coordinator, self.connections)
        self.relay = PatchRelay(self.connections, self.coordinator)
        self.signaling = SignalingRelay(self.connections)

        self.handlers: Dict[ClientEvent, Handler] = {
            ClientEvent.JOIN_ROOM: self.sessions.join,
            ClientEvent.UPDATE_TOKEN: lambda s, d: self.relay.update_token(s.room_id, d),
            ClientEvent.DELETE_TOKEN: lambda s, d: self.relay.delete_token(s.room_id, d),
            ClientEvent.UPDATE_DRAWING: lambda s, d: self.relay.update_drawing(s.room_id, d),
            ClientEvent.DELETE_DRAWING: lambda s, d: self.relay.delete_drawing(s.room_id, d),
            ClientEvent.UPDATE_FOG: lambda s, d: self.relay.update_fog(s.room_id, d),
            ClientEvent.UPDATE_MAP: lambda s, d: self.relay.update_map(s.room_id, d),
            ClientEvent.UPDATE_CONFIG: lambda s, d: self.relay.update_config(s.room_id, d),
            ClientEvent.UPDATE_TIMER: lambda s, d: self.relay.update_timer(s.room_id, d),
            ClientEvent.PATCH_STATE: lambda s, d: self.relay.patch(s.room_id, d),
            ClientEvent.POINTER_MOVE: lambda s, d: self.relay.pointer_move(s.room_id, s.connection_id, s.guest_id, d),
            ClientEvent.ROLL_DICE: lambda s, d: self.relay.roll_dice(s.room_id, s.guest_id, d),
            ClientEvent.SIGNAL_AUDIO: self.signaling.relay,
            ClientEvent.AUDIO_STARTED: lambda s, d: self.signaling.broadcast_started(s),
            ClientEvent.AUDIO_STOPPED: lambda s, d: self.signaling.broadcast_stopped(s),
            ClientEvent.JOIN_AUDIO_REQUEST: lambda s, d: self.signaling.request_join(s, d),
        }
        missing = set(ClientEvent) - set(self.handlers)
        if missing:
            raise RuntimeError(f"No handler for client events: {sorted(e.value for e in missing)}")

    async def send_error(self, session: Session, message: str):
        await self.connections.send(session.connection_id, server_message(ServerEvent.ERROR, {"message": message}))

    def parse(self, text: str) -> ClientMessage:
        if len(text.encode("utf-8")) > MAX_MESSAGE_BYTES:
            raise ValidationError("Message too large")
        try:
            return ClientMessage.model_validate(json.loads(text))
        except json.JSONDecodeError as e:
            raise ValidationError("Message is not valid JSON") from e
        except PydanticValidationError as e:
            raise ValidationError("Unknown message type") from e

    async def dispatch(self, session: Session, message: ClientMessage):
        if message.type not in ROOMLESS_EVENTS and not session.joined:
            logger.debug(f"Ignoring {message.type.value} from {session.connection_id}: not in a room")
            return
        await self.handlers[message.type](session, message.data)

    async def handle_text(self, session: Session, text: str):
        try:
            await self.dispatch(session, self.parse(text))
        except VTTError as e:
            logger.debug(f"Rejected message from {session.connection_id}: {e.message}")
            await self.send_error(session, e.message)

    async def serve(self, websocket: WebSocket):
        await websocket.accept()
        connection = self.connections.register(websocket)
        session = Session(connection)
        logger.info(f"WebSocket connection accepted: {connection.connection_id}")
        try:
            await self.connections.send(
                connection.connection_id,
                server_message(ServerEvent.CONNECTED, {"connectionId": connection.connection_id}),
            )
            while True:
                text = await websocket.receive_text()
                await self.handle_text(session, text)
        except WebSocketDisconnect:
            logger.info(f"WebSocket disconnected normally for connection {connection.connection_id}")
        except Exception as e:
            logger.error(f"WebSocket error for connection {connection.connection_id}: {e}", exc_info=True)
        finally:
            try:
                await self.sessions.disconnect(session)
            finally:
                self.connections.unregister(connection.connection_id)

    async def shutdown(self):
        await self.coordinator.drain()
