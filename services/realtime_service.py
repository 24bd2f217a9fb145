# ================================================================
# services/realtime_service.py: push-stream registry + room channel
# ================================================================
import asyncio
import json
import logging
import threading
import uuid
from typing import Any, AsyncIterator, Dict, Optional, Set

from fastapi import Request, WebSocket

from core.errors import ServiceUnavailable
from models.models import utcnow

logger = logging.getLogger(__name__)


def format_sse(event: str, data: Any) -> str:
    payload = data if isinstance(data, str) else json.dumps(data, default=str)
    return f"event: {event}\ndata: {payload}\n\n"


# ========================================
# 📡 Server-sent events
# ========================================
class QueueSink:
    """One connected stream. Delivery is safe from any thread."""

    def __init__(self, loop: asyncio.AbstractEventLoop, maxsize: int = 1000):
        self.id = uuid.uuid4().hex
        self.loop = loop
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)

    def _put(self, item) -> None:
        try:
            self.queue.put_nowait(item)
        except asyncio.QueueFull:
            logger.warning(f"⚠️ Dropping event for slow stream {self.id}")

    def deliver(self, event: str, payload: Any) -> None:
        self.loop.call_soon_threadsafe(self._put, (event, payload))


class EventRegistry:
    """
    Currently-open push streams. Sync route handlers broadcast from the
    threadpool, so membership is guarded by a lock.
    """

    def __init__(self, max_clients: int):
        self.max_clients = max_clients
        self._sinks: Dict[str, QueueSink] = {}
        self._lock = threading.Lock()

    def add(self, sink: QueueSink) -> None:
        with self._lock:
            if len(self._sinks) >= self.max_clients:
                raise ServiceUnavailable("Max clients reached")
            self._sinks[sink.id] = sink
        logger.info(f"📡 Stream {sink.id} connected ({self.count} open)")

    def remove(self, sink_id: str) -> None:
        with self._lock:
            removed = self._sinks.pop(sink_id, None)
        if removed is not None:
            logger.info(f"📴 Stream {sink_id} closed ({self.count} open)")

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._sinks)

    def broadcast(self, event: str, payload: Dict[str, Any]) -> int:
        """Fan out to every open stream. No replay, no filtering."""
        with self._lock:
            sinks = list(self._sinks.values())
        delivered = 0
        for sink in sinks:
            try:
                sink.deliver(event, payload)
                delivered += 1
            except RuntimeError:
                # event loop already closed
                self.remove(sink.id)
        return delivered


async def event_stream(registry: EventRegistry, sink: QueueSink, ping_interval: float) -> AsyncIterator[str]:
    try:
        yield format_sse("connected", {"id": sink.id})
        while True:
            try:
                event, payload = await asyncio.wait_for(sink.queue.get(), timeout=ping_interval)
            except asyncio.TimeoutError:
                yield format_sse("ping", {"ts": utcnow().isoformat()})
                continue
            yield format_sse(event, payload)
    finally:
        registry.remove(sink.id)


def get_event_registry(request: Request) -> EventRegistry:
    return request.app.state.event_registry


def broadcast(request: Request, event: str, payload: Dict[str, Any]) -> None:
    get_event_registry(request).broadcast(event, payload)


# ========================================
# 🧑‍🤝‍🧑 Per-sheet room channel
# ========================================
class RoomManager:
    """Room membership for the cell-edit relay. Lives on the event loop only."""

    def __init__(self):
        self.connections: Dict[str, WebSocket] = {}
        self.rooms: Dict[str, Set[str]] = {}

    async def connect(self, websocket: WebSocket) -> str:
        await websocket.accept()
        client_id = uuid.uuid4().hex
        self.connections[client_id] = websocket
        await websocket.send_json({"type": "connected", "data": {"id": client_id}})
        logger.info(f"🔌 Room client {client_id} connected")
        return client_id

    async def send_to_room(self, room: str, message: dict, exclude: Optional[str] = None) -> None:
        dead = []
        for client_id in list(self.rooms.get(room, ())):
            if client_id == exclude:
                continue
            websocket = self.connections.get(client_id)
            if websocket is None:
                continue
            try:
                await websocket.send_json(message)
            except Exception as e:
                logger.warning(f"⚠️ Dropping room client {client_id}: {e}")
                dead.append(client_id)
        for client_id in dead:
            self._forget(client_id)

    async def join(self, client_id: str, room: str) -> None:
        self.rooms.setdefault(room, set()).add(client_id)
        await self._presence(room, client_id, "joined")

    async def leave(self, client_id: str, room: str) -> None:
        members = self.rooms.get(room)
        if not members or client_id not in members:
            return
        # the leaver still gets its own presence event
        await self._presence(room, client_id, "left")
        members.discard(client_id)
        if not members:
            del self.rooms[room]

    async def relay_cell_edit(self, client_id: str, room: str, message: dict) -> None:
        # senders need not be members; only members receive
        await self.send_to_room(
            room,
            {
                "type": "cell-edit",
                "room": room,
                "data": {
                    "rowIndex": message.get("rowIndex"),
                    "colIndex": message.get("colIndex"),
                    "value": message.get("value"),
                },
            },
            exclude=client_id,
        )

    async def disconnect(self, client_id: str) -> None:
        self.connections.pop(client_id, None)
        for room in [r for r, members in self.rooms.items() if client_id in members]:
            self.rooms[room].discard(client_id)
            if self.rooms[room]:
                await self._presence(room, client_id, "left")
            else:
                del self.rooms[room]
        logger.info(f"🔌 Room client {client_id} disconnected")

    def _forget(self, client_id: str) -> None:
        self.connections.pop(client_id, None)
        for room in list(self.rooms):
            self.rooms[room].discard(client_id)
            if not self.rooms[room]:
                del self.rooms[room]

    async def _presence(self, room: str, client_id: str, status: str) -> None:
        await self.send_to_room(
            room,
            {"type": "presence", "room": room, "data": {"userId": client_id, "status": status}},
        )
