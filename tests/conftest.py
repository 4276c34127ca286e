import json
import os

# cheap hashes for tests; must be set before constants is imported
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest

from backend import MemoryBackend
from realtime import RealtimeServer
from sessions import Session


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeWebSocket:
    """Records what the server sends; enough for ConnectionManager."""

    def __init__(self):
        self.sent = []

    async def send_text(self, text: str):
        self.sent.append(json.loads(text))

    def of_type(self, event: str):
        return [message for message in self.sent if message["type"] == event]

    def types(self):
        return [message["type"] for message in self.sent]

    def clear(self):
        self.sent.clear()


class ClosedWebSocket(FakeWebSocket):
    async def send_text(self, text: str):
        raise RuntimeError("websocket is closed")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return MemoryBackend(ttl=60, clock=clock)


@pytest.fixture
def server(store):
    return RealtimeServer(store)


def open_session(server: RealtimeServer, websocket=None) -> Session:
    connection = server.connections.register(websocket or FakeWebSocket())
    return Session(connection)


async def send(server: RealtimeServer, session: Session, event: str, data=None):
    await server.handle_text(session, json.dumps({"type": event, "data": data}))


async def join(server: RealtimeServer, session: Session, room_id: str, guest_id: str,
               display_name: str = None, password: str = None):
    payload = {"roomId": room_id, "guestId": guest_id, "displayName": display_name or guest_id}
    if password is not None:
        payload["password"] = password
    await send(server, session, "JOIN_ROOM", payload)


def make_token(token_id: str = "t-1", **overrides) -> dict:
    token = {
        "id": token_id,
        "type": "CHARACTER",
        "x": 100.0,
        "y": 150.0,
        "rotation": 0.0,
        "scale": 1.0,
        "layer": "TOKEN",
        "ownerId": None,
        "src": "http://localhost:4000/uploads/knight.png",
        "label": "Knight",
        "visible": True,
        "statusRings": ["#ff0000"],
        "locked": False,
        "attachedToId": None,
    }
    token.update(overrides)
    return token


def make_drawing(drawing_id: str = "d-1", **overrides) -> dict:
    drawing = {
        "id": drawing_id,
        "type": "line",
        "points": [0.0, 0.0, 50.0, 50.0],
        "color": "#333333",
        "width": 3.0,
        "fill": None,
        "text": None,
        "layer": "DRAWING",
    }
    drawing.update(overrides)
    return drawing
