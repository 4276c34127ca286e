import asyncio
import json
import uuid
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set

from fastapi import WebSocket

from logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class Connection:
    connection_id: str
    websocket: WebSocket
    room_id: Optional[str] = None
    guest_id: Optional[str] = None
    # messages parked while the connection waits for its first ROOM_STATE
    pending: Optional[List[dict]] = None


class ConnectionManager:
    """Tracks live websockets and the broadcast group (room) each one belongs to.

    This is intentionally in-memory per process: a room's members are the
    connections this instance accepted.
    """

    def __init__(self):
        # {connection_id: Connection}
        self.connections: Dict[str, Connection] = {}
        # {room_id: {connection_id, ...}}
        self.groups: Dict[str, Set[str]] = {}

    def register(self, websocket: WebSocket) -> Connection:
        connection = Connection(connection_id=str(uuid.uuid4()), websocket=websocket)
        self.connections[connection.connection_id] = connection
        logger.debug(f"Registered connection {connection.connection_id} ({len(self.connections)} total)")
        return connection

    def unregister(self, connection_id: str):
        connection = self.connections.pop(connection_id, None)
        if connection and connection.room_id:
            self.leave_group(connection_id, connection.room_id)

    def join_group(self, connection_id: str, room_id: str):
        connection = self.connections.get(connection_id)
        if connection is None:
            return
        if connection.room_id and connection.room_id != room_id:
            self.leave_group(connection_id, connection.room_id)
        connection.room_id = room_id
        self.groups.setdefault(room_id, set()).add(connection_id)
        logger.debug(f"Connection {connection_id} joined group {room_id} ({len(self.groups[room_id])} members)")

    def leave_group(self, connection_id: str, room_id: str):
        members = self.groups.get(room_id)
        if members is None:
            return
        members.discard(connection_id)
        if not members:
            del self.groups[room_id]
            logger.debug(f"No more local connections in room {room_id}")

    def members(self, room_id: str) -> Set[str]:
        return set(self.groups.get(room_id, ()))

    async def send(self, connection_id: str, message: dict) -> bool:
        """Deliver *message* to one connection. Unknown or closed targets are ignored."""
        connection = self.connections.get(connection_id)
        if connection is None:
            logger.debug(f"Dropping message for unknown connection {connection_id}")
            return False
        if connection.pending is not None:
            connection.pending.append(message)
            return True
        try:
            await connection.websocket.send_text(json.dumps(message))
        except Exception as e:
            logger.warning(f"Error sending to connection {connection_id}: {e}")
            return False
        return True

    async def broadcast(self, room_id: str, message: dict, exclude: Optional[Iterable[str]] = None) -> int:
        """Send *message* to every member of *room_id* except *exclude*; returns deliveries."""
        skip = set(exclude or ())
        targets = [conn_id for conn_id in self.members(room_id) if conn_id not in skip]
        if not targets:
            return 0
        results = await asyncio.gather(*(self.send(conn_id, message) for conn_id in targets))
        delivered = sum(1 for ok in results if ok)
        logger.debug(f"Broadcast {message.get('type')} to {delivered}/{len(targets)} connections in room {room_id}")
        return delivered

    def hold(self, connection_id: str):
        """Park messages for *connection_id* until :meth:`release`."""
        connection = self.connections.get(connection_id)
        if connection is not None and connection.pending is None:
            connection.pending = []

    async def release(self, connection_id: str, first: Optional[dict] = None):
        """Deliver *first*, then everything parked since :meth:`hold`, in order."""
        connection = self.connections.get(connection_id)
        if connection is None:
            return
        if connection.pending is None:
            connection.pending = []
        # sends that arrive while flushing queue up behind the backlog
        pending = connection.pending
        if first is not None:
            pending.insert(0, first)
        while pending:
            message = pending.pop(0)
            try:
                await connection.websocket.send_text(json.dumps(message))
            except Exception as e:
                logger.warning(f"Error sending to connection {connection_id}: {e}")
        connection.pending = None
        logger.debug(f"Released connection {connection_id}")

    def discard(self, connection_id: str):
        """Drop anything parked for *connection_id* and stop holding."""
        connection = self.connections.get(connection_id)
        if connection is None:
            return
        if connection.pending:
            logger.debug(f"Discarding {len(connection.pending)} held messages for {connection_id}")
        connection.pending = None
