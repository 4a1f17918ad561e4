"""
Devices Module

LAN device inventory:
- JSON snapshot persistence
- Scan merge by MAC address
- Block/unblock, reachability and traffic counters
"""

from .manager import DeviceManager
from .models import Device, DeviceStatus, DeviceTraffic
from .store import DeviceStore

__all__ = ["DeviceManager", "Device", "DeviceStatus", "DeviceTraffic", "DeviceStore"]
