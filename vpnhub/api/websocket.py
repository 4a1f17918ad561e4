# vpnhub/api/websocket.py
"""
WebSocket notification channel

Pushes manager events to connected dashboards instead of polling.
Subscribers scope what they receive by joining rooms:
- {"type": "join-room", "room": "devices"}
- {"type": "leave-room", "room": "devices"}
- {"type": "ping"}

A subscriber that joined no room receives every event.
"""

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional, Set

from fastapi import APIRouter, Depends, Query, Request, WebSocket, WebSocketDisconnect

from ..events import Event, EventBus
from .deps import verify_admin_token

logger = logging.getLogger('vpnhub.api.websocket')

router = APIRouter(tags=["WebSocket"])


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Subscriber:
    """Track connected subscriber state"""
    websocket: WebSocket
    client_id: str
    rooms: Set[str] = field(default_factory=set)
    connected_at: datetime = field(default_factory=_now)
    last_ping: datetime = field(default_factory=_now)

    def wants(self, room: Optional[str]) -> bool:
        return not self.rooms or room is None or room in self.rooms


class WebSocketNotifier:
    """
    Manages WebSocket subscribers and fans events out to them

    Provides:
    - Connection tracking by client id
    - Room membership per subscriber
    - Broadcast scoped to a room
    """

    def __init__(self):
        self._subscribers: Dict[str, Subscriber] = {}
        self._lock = asyncio.Lock()

    @property
    def connected_count(self) -> int:
        return len(self._subscribers)

    def attach(self, event_bus: EventBus) -> None:
        """Forward every event published on event_bus"""
        event_bus.subscribe(EventBus.WILDCARD, self.on_event)
        logger.info("WebSocket notifier attached to event bus")

    async def connect(self, websocket: WebSocket) -> str:
        """Accept a connection, returns its client id"""
        await websocket.accept()

        client_id = uuid.uuid4().hex
        async with self._lock:
            self._subscribers[client_id] = Subscriber(websocket=websocket, client_id=client_id)

        logger.info(f"Subscriber connected: {client_id} (total: {self.connected_count})")
        return client_id

    async def disconnect(self, client_id: str) -> None:
        async with self._lock:
            if self._subscribers.pop(client_id, None) is not None:
                logger.info(f"Subscriber disconnected: {client_id} (total: {self.connected_count})")

    async def join(self, client_id: str, room: str) -> bool:
        async with self._lock:
            subscriber = self._subscribers.get(client_id)
            if subscriber is None:
                return False
            subscriber.rooms.add(room)
        logger.debug(f"{client_id} joined room {room}")
        return True

    async def leave(self, client_id: str, room: str) -> bool:
        async with self._lock:
            subscriber = self._subscribers.get(client_id)
            if subscriber is None:
                return False
            subscriber.rooms.discard(room)
        return True

    def rooms_of(self, client_id: str) -> Set[str]:
        subscriber = self._subscribers.get(client_id)
        return set(subscriber.rooms) if subscriber else set()

    async def broadcast(self, message: dict, room: Optional[str] = None) -> int:
        """
        Send message to every subscriber of room

        Returns number of subscribers that received the message
        """
        # Snapshot so disconnects during sending don't change the dict
        async with self._lock:
            targets = [s for s in self._subscribers.values() if s.wants(room)]

        sent_count = 0
        for subscriber in targets:
            try:
                await subscriber.websocket.send_json(message)
                sent_count += 1
            except Exception as e:
                logger.warning(f"Broadcast failed for {subscriber.client_id}: {e}")
                await self.disconnect(subscriber.client_id)

        return sent_count

    async def on_event(self, event: Event) -> None:
        sent = await self.broadcast({"type": "event", **event.to_dict()}, room=event.room)
        logger.debug(f"Pushed {event.event_type} to {sent} subscribers")

    def get_subscribers_info(self) -> list:
        return [
            {
                "client_id": s.client_id,
                "rooms": sorted(s.rooms),
                "connected_at": s.connected_at.isoformat(),
                "last_ping": s.last_ping.isoformat(),
            }
            for s in self._subscribers.values()
        ]


# =============================================================================
# WebSocket Endpoints
# =============================================================================

@router.websocket("/ws/events")
async def events_websocket(
    websocket: WebSocket,
    token: str = Query(..., description="Admin token"),
):
    """
    WebSocket endpoint for event notifications

    Messages from server:
    - {"type": "event", "event": "...", "room": "...", "payload": {...}}
    - {"type": "joined" | "left", "room": "..."}
    - {"type": "pong"}
    - {"type": "error", "error": "..."}
    """
    if token != websocket.app.state.settings.ADMIN_TOKEN:
        await websocket.close(code=4001, reason="Authentication failed")
        return

    notifier: WebSocketNotifier = websocket.app.state.notifier
    client_id = await notifier.connect(websocket)

    try:
        while True:
            data = await websocket.receive_text()

            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON from {client_id}: {data[:100]}")
                await websocket.send_json({"type": "error", "error": "Invalid JSON"})
                continue

            msg_type = message.get("type") if isinstance(message, dict) else None
            room = message.get("room") if isinstance(message, dict) else None

            if msg_type == "ping":
                subscriber = notifier._subscribers.get(client_id)
                if subscriber:
                    subscriber.last_ping = _now()
                await websocket.send_json({"type": "pong"})

            elif msg_type in ("join-room", "leave-room"):
                if not isinstance(room, str) or not room:
                    await websocket.send_json({"type": "error", "error": "Missing room"})
                elif msg_type == "join-room":
                    await notifier.join(client_id, room)
                    await websocket.send_json({"type": "joined", "room": room})
                else:
                    await notifier.leave(client_id, room)
                    await websocket.send_json({"type": "left", "room": room})

            else:
                await websocket.send_json({"type": "error", "error": f"Unknown message type: {msg_type}"})

    except WebSocketDisconnect:
        logger.info(f"Subscriber {client_id} disconnected")
    except Exception as e:
        logger.error(f"WebSocket error for {client_id}: {e}")
    finally:
        await notifier.disconnect(client_id)


@router.get("/ws/status", dependencies=[Depends(verify_admin_token)])
async def websocket_status(request: Request):
    """Get connection status for all subscribers"""
    notifier: WebSocketNotifier = request.app.state.notifier
    return {
        "connected_count": notifier.connected_count,
        "subscribers": notifier.get_subscribers_info()
    }
