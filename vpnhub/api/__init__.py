"""
API Module

Thin FastAPI layer over the managers:
- /api/vpn and /api/devices REST routes (X-Admin-Token)
- /ws/events notification channel
"""

from .app import create_app
from .websocket import WebSocketNotifier

__all__ = ["create_app", "WebSocketNotifier"]
