"""Propagation of state mutations to room members.

Every mutation is validated, queued on the room coordinator (which re-reads
the snapshot, applies the patch and writes it back) and broadcast as a patch
descriptor to the whole room, sender included, so clients render
server-confirmed state.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from connections import ConnectionManager
from coordinator import RoomCoordinator
from errors import ValidationError
from logging_config import get_logger
from schemas.events import (
    DiceRollPayload,
    EntityRef,
    PatchOperation,
    PatchPayload,
    PointerPayload,
    ServerEvent,
    server_message,
)
from schemas.state import Drawing, FogShape, MapConfig, RoomConfig, RoomState, Timer, Token

logger = get_logger(__name__)

ENTITY_TYPES = {
    "tokens": Token,
    "drawings": Drawing,
}

ROOT_TYPES = {
    "map": TypeAdapter(Optional[MapConfig]),
    "config": TypeAdapter(RoomConfig),
    "timer": TypeAdapter(Optional[Timer]),
    "fog": TypeAdapter(List[FogShape]),
    "tokens": TypeAdapter(Dict[str, Token]),
    "drawings": TypeAdapter(Dict[str, Drawing]),
}

# roots that fall back to an empty value instead of null on remove
EMPTY_ON_REMOVE = {
    "fog": list,
    "tokens": dict,
    "drawings": dict,
}


def _dump(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, dict):
        return {key: _dump(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_dump(item) for item in value]
    return value


@dataclass(frozen=True)
class Patch:
    """A validated mutation of one subtree of the room state."""

    operation: PatchOperation
    path: Tuple[str, ...]
    value: Any = None

    def to_wire(self) -> dict:
        return {"operation": self.operation.value, "path": list(self.path), "value": _dump(self.value)}


def validate_patch(payload: PatchPayload) -> Patch:
    """Check *payload*'s path and coerce its value into the typed model for that path."""
    operation, path = payload.operation, tuple(payload.path)
    root = path[0]
    try:
        if len(path) == 2 and root in ENTITY_TYPES:
            if operation == PatchOperation.REMOVE:
                return Patch(operation, path)
            entity = ENTITY_TYPES[root].model_validate(payload.value)
            if entity.id != path[1]:
                raise ValidationError(f"Entity id {entity.id!r} does not match path")
            return Patch(operation, path, entity)

        if len(path) != 1 or root not in ROOT_TYPES:
            raise ValidationError(f"Unsupported patch path {list(path)}")

        if operation == PatchOperation.REMOVE:
            if root == "config":
                raise ValidationError("Room config cannot be removed")
            return Patch(operation, path)
        if operation == PatchOperation.ADD:
            if root != "fog":
                raise ValidationError(f"Cannot add to {root}")
            return Patch(operation, path, FogShape.model_validate(payload.value))

        value = ROOT_TYPES[root].validate_python(payload.value)
        if root in ENTITY_TYPES and any(key != entity.id for key, entity in value.items()):
            raise ValidationError(f"{root} keys must match entity ids")
        return Patch(operation, path, value)
    except PydanticValidationError as e:
        logger.warning(f"Rejected patch for {list(path)}: {e.error_count()} validation errors")
        raise ValidationError(f"Invalid value for {'/'.join(path)}") from e


def apply_patch(state: RoomState, patch: Patch) -> RoomState:
    """Apply *patch* to *state* in place. The addressed subtree is replaced wholesale."""
    root = patch.path[0]
    if len(patch.path) == 2:
        entities = getattr(state, root)
        if patch.operation == PatchOperation.REMOVE:
            entities.pop(patch.path[1], None)
        else:
            entities[patch.path[1]] = patch.value.model_copy(deep=True)
        return state

    if patch.operation == PatchOperation.REMOVE:
        empty = EMPTY_ON_REMOVE.get(root)
        setattr(state, root, empty() if empty else None)
    elif patch.operation == PatchOperation.ADD:
        state.fog.append(patch.value.model_copy(deep=True))
    else:
        setattr(state, root, ROOT_TYPES[root].validate_python(_dump(patch.value)))
    return state


class PatchRelay:
    def __init__(self, connections: ConnectionManager, coordinator: RoomCoordinator):
        self.connections = connections
        self.coordinator = coordinator

    async def relay(self, room_id: str, patch: Patch) -> Patch:
        # queue before broadcasting so a concurrent join sees the patch in exactly one place
        self.coordinator.fire(room_id, lambda state: apply_patch(state, patch))
        await self.connections.broadcast(room_id, server_message(ServerEvent.PATCH_STATE, patch.to_wire()))
        logger.debug(f"Relayed {patch.operation.value} {list(patch.path)} in room {room_id}")
        return patch

    async def patch(self, room_id: str, data: Any) -> Patch:
        """Generic path-based patch, e.g. ``{"op": "update", "path": ["timer"], "value": {...}}``."""
        try:
            payload = PatchPayload.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError("Invalid patch") from e
        return await self.relay(room_id, validate_patch(payload))

    async def _update(self, room_id: str, path: List[str], value: Any,
                      operation: PatchOperation = PatchOperation.UPDATE) -> Patch:
        payload = PatchPayload(operation=operation, path=path, value=value)
        return await self.relay(room_id, validate_patch(payload))

    def _entity_id(self, data: Any) -> str:
        try:
            return EntityRef.model_validate(data).id
        except PydanticValidationError as e:
            raise ValidationError("Entity payload needs an id") from e

    async def update_token(self, room_id: str, data: Any) -> Patch:
        return await self._update(room_id, ["tokens", self._entity_id(data)], data)

    async def delete_token(self, room_id: str, data: Any) -> Patch:
        return await self._update(room_id, ["tokens", self._entity_id(data)], None, PatchOperation.REMOVE)

    async def update_drawing(self, room_id: str, data: Any) -> Patch:
        return await self._update(room_id, ["drawings", self._entity_id(data)], data)

    async def delete_drawing(self, room_id: str, data: Any) -> Patch:
        return await self._update(room_id, ["drawings", self._entity_id(data)], None, PatchOperation.REMOVE)

    async def update_map(self, room_id: str, data: Any) -> Patch:
        return await self._update(room_id, ["map"], data)

    async def update_fog(self, room_id: str, data: Any) -> Patch:
        return await self._update(room_id, ["fog"], data)

    async def update_config(self, room_id: str, data: Any) -> Patch:
        return await self._update(room_id, ["config"], data)

    async def update_timer(self, room_id: str, data: Any) -> Patch:
        return await self._update(room_id, ["timer"], data)

    # ephemeral events, never persisted

    async def pointer_move(self, room_id: str, sender_id: str, guest_id: Optional[str], data: Any):
        try:
            pointer = PointerPayload.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError("Invalid pointer event") from e
        message = pointer.model_dump()
        message["guestId"] = guest_id
        await self.connections.broadcast(room_id, server_message(ServerEvent.EVENT_POINTER, message), exclude=[sender_id])

    async def roll_dice(self, room_id: str, guest_id: Optional[str], data: Any):
        try:
            dice = DiceRollPayload.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError("Invalid dice roll") from e
        await self.connections.broadcast(room_id, server_message(ServerEvent.EVENT_DICE, {"guestId": guest_id, "roll": dice.roll}))
