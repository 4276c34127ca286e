from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from backend import RoomStore
from logging_config import get_logger
from registry import create_room, room_exists
from schemas.rooms import CreateRoomRequest, CreateRoomResponse, RoomDetailsResponse

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])


def get_store(request: Request) -> RoomStore:
    return request.app.state.store


@rooms_router.post("", response_model=CreateRoomResponse)
async def create_room_endpoint(request: Request, room: Optional[CreateRoomRequest] = None,
                               store: RoomStore = Depends(get_store)):
    # POST /rooms Body: { "password": "optional", "gmId": "optional" }
    # Response 200: { "roomId": "a1b2c3d4", "gmId": "..." }
    room = room or CreateRoomRequest()
    client_host = request.client.host if request.client else "unknown"
    logger.info(f"Room creation request from {client_host}")
    try:
        room_id, gm_id = await create_room(store, password=room.password, gm_id=room.gm_id)
    except Exception as e:
        logger.error(f"Error creating room: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create room")
    return CreateRoomResponse(room_id=room_id, gm_id=gm_id)


@rooms_router.get("/{room_id}", response_model=RoomDetailsResponse)
async def get_room_details(room_id: str, store: RoomStore = Depends(get_store)):
    """
    Get room details without joining it.

    Returns:
    - roomId: Unique room identifier
    - hasPassword: Whether joining requires a password
    - playerCount: Everyone who has ever joined the room
    - connectedCount: Players currently connected
    """
    if not await room_exists(store, room_id):
        logger.warning(f"Room details failed: Room {room_id} not found")
        raise HTTPException(status_code=404, detail="Room not found")

    room = await store.get(room_id)
    if room is None:
        raise HTTPException(status_code=404, detail="Room not found")

    connected = sum(1 for player in room.players.values() if player.connected)
    logger.info(f"Room details retrieved for {room_id}: {connected}/{len(room.players)} players connected")
    return RoomDetailsResponse(
        room_id=room_id,
        has_password=room.password_hash is not None,
        player_count=len(room.players),
        connected_count=connected,
    )
