"""
Notification Sink - pub/sub side channel for state changes

Managers emit named events without knowing who listens:
- Emission is fire-and-forget and never raises into the caller
- Events carry a room so subscribers can scope what they receive
- Async handlers are scheduled on the running loop, not awaited
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol

logger = logging.getLogger('vpnhub.events')


class EventTypes:
    """Event names pushed to subscribers"""

    DEVICE_ADDED = "device-added"
    DEVICE_UPDATED = "device-updated"
    DEVICE_DELETED = "device-deleted"
    DEVICE_BLOCKED = "device-blocked"
    DEVICES_SCANNED = "devices-scanned"
    VPN_STATUS_CHANGED = "vpn-status-changed"
    VPN_CONFIG_CHANGED = "vpn-config-changed"


class Rooms:
    DEVICES = "devices"
    VPN = "vpn"


@dataclass
class Event:
    """One emitted notification"""
    event_type: str
    payload: Dict[str, Any]
    room: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> dict:
        return {
            "event_id": self.event_id,
            "event": self.event_type,
            "room": self.room,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
        }


class NotificationSink(Protocol):
    """Anything the managers can push events to"""

    def emit(self, event_type: str, payload: Dict[str, Any], room: Optional[str] = None) -> None:
        ...


class EventBus:
    """
    In-process event bus

    Features:
    - Sync and async handlers
    - Per-event-type and wildcard ("*") subscriptions
    - Bounded event history for debugging
    """

    WILDCARD = "*"

    def __init__(self, max_history_size: int = 500):
        self._handlers: Dict[str, List[Callable]] = {}
        self._event_history: List[Event] = []
        self._max_history_size = max_history_size
        self._pending: set = set()

    def subscribe(self, event_type: str, handler: Callable) -> None:
        """
        Subscribe a handler to an event type

        Args:
            event_type: Event name, or "*" for every event
            handler: Callable (sync or async) receiving the Event
        """
        self._handlers.setdefault(event_type, []).append(handler)
        logger.debug(f"Subscribed {getattr(handler, '__name__', handler)} to {event_type}")

    def unsubscribe(self, event_type: str, handler: Callable) -> bool:
        """Remove a handler, returns True if it was registered"""
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)
            return True
        return False

    def emit(self, event_type: str, payload: Dict[str, Any], room: Optional[str] = None) -> None:
        """
        Publish an event

        Handler failures are logged and never reach the emitter.
        """
        event = Event(event_type=event_type, payload=payload, room=room)
        self._add_to_history(event)

        handlers = self._handlers.get(event_type, []) + self._handlers.get(self.WILDCARD, [])
        if not handlers:
            logger.debug(f"No handlers for event: {event_type}")
            return

        for handler in handlers:
            self._dispatch(handler, event)

    def _dispatch(self, handler: Callable, event: Event) -> None:
        name = getattr(handler, '__name__', repr(handler))

        if asyncio.iscoroutinefunction(handler):
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.warning(f"No running loop, dropped {event.event_type} for {name}")
                return
            task = loop.create_task(self._run_async(handler, event))
            # Keep a reference until the task finishes
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            return

        try:
            handler(event)
        except Exception as e:
            logger.error(f"Handler {name} failed for {event.event_type}: {e}")

    @staticmethod
    async def _run_async(handler: Callable, event: Event) -> None:
        try:
            await handler(event)
        except Exception as e:
            logger.error(f"Async handler {getattr(handler, '__name__', handler)} failed for {event.event_type}: {e}")

    def _add_to_history(self, event: Event) -> None:
        self._event_history.append(event)
        if len(self._event_history) > self._max_history_size:
            self._event_history = self._event_history[-self._max_history_size:]

    def get_history(self, event_type: Optional[str] = None, limit: int = 100) -> List[Event]:
        """Get recent events, optionally filtered by type"""
        history = self._event_history
        if event_type:
            history = [e for e in history if e.event_type == event_type]
        return history[-limit:]

    def clear(self) -> None:
        """Clear all subscriptions and history (for testing)"""
        self._handlers.clear()
        self._event_history.clear()
