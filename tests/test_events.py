# tests/test_events.py
"""
Unit Tests for EventBus and the WebSocket notifier
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from vpnhub.api.websocket import WebSocketNotifier
from vpnhub.events import Event, EventBus, EventTypes, Rooms


class TestEventBus:
    """Tests for EventBus"""

    @pytest.fixture
    def bus(self):
        return EventBus()

    def test_sync_handler_receives_event(self, bus):
        received = []
        bus.subscribe(EventTypes.DEVICE_ADDED, received.append)

        bus.emit(EventTypes.DEVICE_ADDED, {"id": "device_1"}, room=Rooms.DEVICES)

        (event,) = received
        assert event.payload == {"id": "device_1"}
        assert event.room == Rooms.DEVICES

    def test_wildcard_receives_everything(self, bus):
        received = []
        bus.subscribe(EventBus.WILDCARD, received.append)

        bus.emit(EventTypes.DEVICE_ADDED, {})
        bus.emit(EventTypes.VPN_STATUS_CHANGED, {"isRunning": True})

        assert [e.event_type for e in received] == [EventTypes.DEVICE_ADDED, EventTypes.VPN_STATUS_CHANGED]

    def test_handler_error_not_raised(self, bus):
        received = []

        def broken(event):
            raise RuntimeError("subscriber bug")

        bus.subscribe(EventTypes.DEVICE_DELETED, broken)
        bus.subscribe(EventTypes.DEVICE_DELETED, received.append)

        bus.emit(EventTypes.DEVICE_DELETED, {"id": "device_1"})

        assert len(received) == 1

    def test_async_handler_without_loop_is_dropped(self, bus):
        handler = AsyncMock()
        bus.subscribe(EventTypes.DEVICE_ADDED, handler)

        bus.emit(EventTypes.DEVICE_ADDED, {})

        handler.assert_not_called()

    @pytest.mark.asyncio
    async def test_async_handler_scheduled(self, bus):
        received = []

        async def handler(event):
            received.append(event.event_type)

        bus.subscribe(EventTypes.VPN_CONFIG_CHANGED, handler)
        bus.emit(EventTypes.VPN_CONFIG_CHANGED, {})

        # Emission does not wait for delivery
        assert received == []
        await asyncio.sleep(0)
        assert received == [EventTypes.VPN_CONFIG_CHANGED]

    def test_unsubscribe(self, bus):
        received = []
        bus.subscribe(EventTypes.DEVICE_ADDED, received.append)

        assert bus.unsubscribe(EventTypes.DEVICE_ADDED, received.append) is True
        bus.emit(EventTypes.DEVICE_ADDED, {})

        assert received == []
        assert bus.unsubscribe(EventTypes.DEVICE_ADDED, received.append) is False

    def test_history(self):
        bus = EventBus(max_history_size=2)

        bus.emit(EventTypes.DEVICE_ADDED, {"n": 1})
        bus.emit(EventTypes.DEVICE_ADDED, {"n": 2})
        bus.emit(EventTypes.DEVICE_DELETED, {"n": 3})

        assert [e.payload["n"] for e in bus.get_history()] == [2, 3]
        assert [e.payload["n"] for e in bus.get_history(EventTypes.DEVICE_ADDED)] == [2]

    def test_event_to_dict(self):
        event = Event(EventTypes.DEVICE_BLOCKED, {"deviceId": "d", "blocked": True}, room=Rooms.DEVICES)

        data = event.to_dict()

        assert data["event"] == "device-blocked"
        assert data["room"] == "devices"
        assert data["payload"] == {"deviceId": "d", "blocked": True}


class TestWebSocketNotifier:
    """Tests for WebSocketNotifier room fan-out"""

    @pytest.fixture
    def notifier(self):
        return WebSocketNotifier()

    @staticmethod
    def make_socket():
        websocket = MagicMock()
        websocket.accept = AsyncMock()
        websocket.send_json = AsyncMock()
        return websocket

    @pytest.mark.asyncio
    async def test_no_room_receives_everything(self, notifier):
        websocket = self.make_socket()
        await notifier.connect(websocket)

        sent = await notifier.broadcast({"type": "event"}, room=Rooms.VPN)

        assert sent == 1
        websocket.send_json.assert_awaited_once_with({"type": "event"})

    @pytest.mark.asyncio
    async def test_room_scopes_delivery(self, notifier):
        devices_socket = self.make_socket()
        vpn_socket = self.make_socket()
        devices_id = await notifier.connect(devices_socket)
        vpn_id = await notifier.connect(vpn_socket)
        await notifier.join(devices_id, Rooms.DEVICES)
        await notifier.join(vpn_id, Rooms.VPN)

        sent = await notifier.broadcast({"type": "event"}, room=Rooms.DEVICES)

        assert sent == 1
        devices_socket.send_json.assert_awaited_once()
        vpn_socket.send_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_leave_room(self, notifier):
        client_id = await notifier.connect(self.make_socket())
        await notifier.join(client_id, Rooms.DEVICES)
        await notifier.leave(client_id, Rooms.DEVICES)

        assert notifier.rooms_of(client_id) == set()

    @pytest.mark.asyncio
    async def test_failed_send_disconnects(self, notifier):
        websocket = self.make_socket()
        websocket.send_json.side_effect = RuntimeError("connection closed")
        await notifier.connect(websocket)

        sent = await notifier.broadcast({"type": "event"})

        assert sent == 0
        assert notifier.connected_count == 0

    @pytest.mark.asyncio
    async def test_bus_events_forwarded(self, notifier):
        bus = EventBus()
        notifier.attach(bus)
        websocket = self.make_socket()
        await notifier.connect(websocket)

        bus.emit(EventTypes.DEVICE_ADDED, {"id": "device_1"}, room=Rooms.DEVICES)
        await asyncio.sleep(0.01)

        message = websocket.send_json.await_args.args[0]
        assert message["type"] == "event"
        assert message["event"] == "device-added"
        assert message["payload"] == {"id": "device_1"}
