import asyncio

from conftest import join, open_session, send
from registry import create_room


def test_signal_forwarded_to_target_connection(server):
    async def scenario():
        room_id, _ = await create_room(server.store)
        caller, callee = open_session(server), open_session(server)
        await join(server, caller, room_id, "g-1")
        callee.connection.websocket.clear()

        offer = {"type": "offer", "sdp": "v=0..."}
        await send(server, caller, "SIGNAL_AUDIO", {"target": callee.connection_id, "signal": offer})

        assert callee.connection.websocket.sent == [{
            "type": "SIGNAL_AUDIO",
            "data": {"from": "g-1", "fromConnection": caller.connection_id, "signal": offer},
        }]

    asyncio.run(scenario())


def test_signal_to_unknown_target_is_dropped(server):
    async def scenario():
        caller = open_session(server)
        await send(server, caller, "SIGNAL_AUDIO", {"target": "nobody", "signal": {}})
        assert caller.connection.websocket.sent == []

    asyncio.run(scenario())


def test_audio_notifications_reach_other_members(server):
    async def scenario():
        room_id, _ = await create_room(server.store)
        host, listener = open_session(server), open_session(server)
        await join(server, host, room_id, "gm")
        await join(server, listener, room_id, "g-1")
        host.connection.websocket.clear()
        listener.connection.websocket.clear()

        await send(server, host, "AUDIO_STARTED")
        await send(server, listener, "JOIN_AUDIO_REQUEST", {"from": "spoofed", "wantsVideo": False})
        await send(server, host, "AUDIO_STOPPED")

        assert listener.connection.websocket.types() == ["AUDIO_STARTED", "AUDIO_STOPPED"]
        assert host.connection.websocket.sent == [{
            "type": "JOIN_AUDIO_REQUEST",
            "data": {"from": "g-1", "wantsVideo": False, "connectionId": listener.connection_id},
        }]

    asyncio.run(scenario())


def test_audio_notifications_need_a_room(server):
    async def scenario():
        loner = open_session(server)
        await server.signaling.broadcast_started(loner)
        assert loner.connection.websocket.sent == []

    asyncio.run(scenario())
