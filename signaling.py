"""Opaque forwarding for peer-to-peer audio negotiation.

Nothing here touches room state: offers, answers and ICE candidates are passed
through untouched, and undeliverable messages are dropped without notice.
"""
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from connections import ConnectionManager
from errors import ValidationError
from logging_config import get_logger
from schemas.events import ServerEvent, SignalPayload, server_message
from sessions import Session

logger = get_logger(__name__)


class SignalingRelay:
    def __init__(self, connections: ConnectionManager):
        self.connections = connections

    def _sender(self, session: Session) -> dict:
        return {"from": session.guest_id, "connectionId": session.connection_id}

    async def relay(self, session: Session, data: Any) -> bool:
        try:
            payload = SignalPayload.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError("Invalid signal") from e
        message = server_message(ServerEvent.SIGNAL_AUDIO, {
            "from": session.guest_id,
            "fromConnection": session.connection_id,
            "signal": payload.signal,
        })
        delivered = await self.connections.send(payload.target, message)
        logger.debug(f"Signal from {session.connection_id} to {payload.target}: delivered={delivered}")
        return delivered

    async def _to_room(self, session: Session, event: ServerEvent, data: Any = None):
        if not session.joined:
            return
        payload = dict(data) if isinstance(data, dict) else {}
        payload.update(self._sender(session))
        await self.connections.broadcast(
            session.room_id, server_message(event, payload), exclude=[session.connection_id]
        )

    async def broadcast_started(self, session: Session):
        await self._to_room(session, ServerEvent.AUDIO_STARTED)

    async def broadcast_stopped(self, session: Session):
        await self._to_room(session, ServerEvent.AUDIO_STOPPED)

    async def request_join(self, session: Session, data: Any = None):
        # listeners ask to join; whoever is broadcasting answers with a signal
        await self._to_room(session, ServerEvent.JOIN_AUDIO_REQUEST, data)
