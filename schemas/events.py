"""The complete websocket protocol.

Frames are JSON objects ``{"type": <event>, "data": <payload>}`` in both
directions.  Every event the server understands or emits is listed here.
"""
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from schemas.state import CamelModel


class ClientEvent(str, Enum):
    JOIN_ROOM = "JOIN_ROOM"
    UPDATE_TOKEN = "UPDATE_TOKEN"
    DELETE_TOKEN = "DELETE_TOKEN"
    UPDATE_DRAWING = "UPDATE_DRAWING"
    DELETE_DRAWING = "DELETE_DRAWING"
    UPDATE_FOG = "UPDATE_FOG"
    UPDATE_MAP = "UPDATE_MAP"
    UPDATE_CONFIG = "UPDATE_CONFIG"
    UPDATE_TIMER = "UPDATE_TIMER"
    PATCH_STATE = "PATCH_STATE"
    POINTER_MOVE = "POINTER_MOVE"
    ROLL_DICE = "ROLL_DICE"
    SIGNAL_AUDIO = "SIGNAL_AUDIO"
    AUDIO_STARTED = "AUDIO_STARTED"
    AUDIO_STOPPED = "AUDIO_STOPPED"
    JOIN_AUDIO_REQUEST = "JOIN_AUDIO_REQUEST"


class ServerEvent(str, Enum):
    CONNECTED = "CONNECTED"
    ROOM_STATE = "ROOM_STATE"  # full sync
    PATCH_STATE = "PATCH_STATE"  # delta update
    PLAYER_JOINED = "PLAYER_JOINED"
    PLAYER_LEFT = "PLAYER_LEFT"
    EVENT_POINTER = "EVENT_POINTER"
    EVENT_DICE = "EVENT_DICE"
    SIGNAL_AUDIO = "SIGNAL_AUDIO"
    AUDIO_STARTED = "AUDIO_STARTED"
    AUDIO_STOPPED = "AUDIO_STOPPED"
    JOIN_AUDIO_REQUEST = "JOIN_AUDIO_REQUEST"
    ERROR = "ERROR"


class PatchOperation(str, Enum):
    ADD = "add"
    UPDATE = "update"
    REMOVE = "remove"


def server_message(event: ServerEvent, data: Any = None) -> dict:
    return {"type": event.value, "data": data}


class ClientMessage(BaseModel):
    type: ClientEvent
    data: Any = None


class JoinRoomPayload(CamelModel):
    room_id: str
    password: Optional[str] = None
    display_name: str
    guest_id: str  # stable id kept in the browser's local storage


class PatchPayload(CamelModel):
    operation: PatchOperation = Field(default=PatchOperation.UPDATE, alias="op")
    path: List[str] = Field(min_length=1)
    value: Any = None


class EntityRef(BaseModel):
    id: str


class PointerPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    x: float
    y: float


class DiceRollPayload(BaseModel):
    roll: Any


class SignalPayload(BaseModel):
    target: str
    signal: Any = None
