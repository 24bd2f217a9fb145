import asyncio
import json

import pytest

from core.errors import ServiceUnavailable
from models.models import UserRole
from services.realtime_service import EventRegistry, QueueSink, event_stream, format_sse


def test_format_sse():
    assert format_sse("excel:save_all", {"rows": 2}) == 'event: excel:save_all\ndata: {"rows": 2}\n\n'


def test_registry_is_bounded():
    async def scenario():
        registry = EventRegistry(max_clients=1)
        loop = asyncio.get_running_loop()
        first = QueueSink(loop)
        registry.add(first)
        with pytest.raises(ServiceUnavailable):
            registry.add(QueueSink(loop))
        registry.remove(first.id)
        registry.add(QueueSink(loop))
        assert registry.count == 1

    asyncio.run(scenario())


def test_stream_emits_connected_events_and_pings():
    async def scenario():
        registry = EventRegistry(max_clients=5)
        sink = QueueSink(asyncio.get_running_loop())
        registry.add(sink)
        stream = event_stream(registry, sink, ping_interval=0.05)

        assert (await stream.__anext__()).startswith("event: connected\n")
        assert registry.broadcast("legal:terms_update", {"updated_by": "owner@example.com"}) == 1
        frame = await stream.__anext__()
        assert frame.startswith("event: legal:terms_update\n")
        assert json.loads(frame.split("data: ", 1)[1]) == {"updated_by": "owner@example.com"}
        assert (await stream.__anext__()).startswith("event: ping\n")

        await stream.aclose()
        assert registry.count == 0

    asyncio.run(scenario())


def test_event_feed_is_privileged(client, make_user, auth_headers):
    response = client.get("/realtime/events", headers=auth_headers(make_user()))
    assert response.status_code == 403


def test_event_feed_full_is_503(client, make_user, auth_headers):
    client.app.state.event_registry.max_clients = 0
    response = client.get("/realtime/events", headers=auth_headers(make_user(role=UserRole.SUPERADMIN.value)))
    assert response.status_code == 503
    assert response.json() == {"error": "Max clients reached"}


def test_room_channel_relays_cell_edits(client):
    with client.websocket_connect("/realtime/rooms") as ws1, client.websocket_connect("/realtime/rooms") as ws2:
        id1 = ws1.receive_json()["data"]["id"]
        id2 = ws2.receive_json()["data"]["id"]

        ws1.send_json({"type": "join", "room": "Sheet1"})
        assert ws1.receive_json()["data"] == {"userId": id1, "status": "joined"}

        ws2.send_json({"type": "join", "room": "Sheet1"})
        assert ws2.receive_json()["data"] == {"userId": id2, "status": "joined"}
        assert ws1.receive_json()["data"] == {"userId": id2, "status": "joined"}

        ws1.send_json({"type": "cell-edit", "room": "Sheet1", "rowIndex": 2, "colIndex": 3, "value": "hi"})
        relayed = ws2.receive_json()
        assert relayed == {
            "type": "cell-edit",
            "room": "Sheet1",
            "data": {"rowIndex": 2, "colIndex": 3, "value": "hi"},
        }

        ws2.send_json({"type": "leave", "room": "Sheet1"})
        assert ws2.receive_json()["data"] == {"userId": id2, "status": "left"}
        assert ws1.receive_json()["data"] == {"userId": id2, "status": "left"}


def test_cell_edits_from_non_members_reach_the_room(client):
    with client.websocket_connect("/realtime/rooms") as member, client.websocket_connect("/realtime/rooms") as outsider:
        member.receive_json()
        outsider.receive_json()
        member.send_json({"type": "join", "room": "Sheet1"})
        member.receive_json()

        outsider.send_json({"type": "cell-edit", "room": "Sheet1", "rowIndex": 0, "colIndex": 0, "value": 5})
        assert member.receive_json()["data"] == {"rowIndex": 0, "colIndex": 0, "value": 5}
