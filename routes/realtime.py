# routes/realtime.py
import asyncio
import logging

from fastapi import APIRouter, Depends, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import StreamingResponse

from core.config import settings
from core.gate import gate
from core.identity import Identity
from services.realtime_service import QueueSink, RoomManager, event_stream, get_event_registry

router = APIRouter(tags=["Realtime"])
logger = logging.getLogger(__name__)


# ==================================================================
#  📡 Server-sent event feed (superadmin / owner)
# ==================================================================
@router.get("/events")
async def stream_events(request: Request, identity: Identity = Depends(gate("realtime:events"))):
    registry = get_event_registry(request)
    sink = QueueSink(asyncio.get_running_loop())
    registry.add(sink)
    logger.info(f"📡 {identity.email} subscribed to the event feed")
    return StreamingResponse(
        event_stream(registry, sink, settings.REALTIME_PING_INTERVAL_SECONDS),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


# ==================================================================
#  🧑‍🤝‍🧑 Room channel for live cell previews
# ==================================================================
@router.websocket("/rooms")
async def room_channel(websocket: WebSocket):
    rooms: RoomManager = websocket.app.state.rooms
    client_id = await rooms.connect(websocket)
    try:
        while True:
            message = await websocket.receive_json()
            if not isinstance(message, dict):
                continue
            kind = message.get("type")
            room = message.get("room")
            if not room:
                continue
            if kind == "join":
                await rooms.join(client_id, str(room))
            elif kind == "leave":
                await rooms.leave(client_id, str(room))
            elif kind == "cell-edit":
                await rooms.relay_cell_edit(client_id, str(room), message)
    except WebSocketDisconnect:
        pass
    except ValueError as e:
        logger.warning(f"⚠️ Room client {client_id} sent invalid JSON: {e}")
    finally:
        await rooms.disconnect(client_id)
