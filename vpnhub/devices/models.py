# vpnhub/devices/models.py
import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import Field

from ..schemas import CamelModel, TrafficCounters, utcnow

DEFAULT_DEVICE_NAME = "Unknown Device"
DEFAULT_DEVICE_TYPE = "unknown"
DEFAULT_MANUFACTURER = "Unknown"


def new_device_id() -> str:
    return f"device_{uuid.uuid4().hex}"


class Device(CamelModel):
    """One observed network endpoint"""
    id: str = Field(default_factory=new_device_id)
    name: str = DEFAULT_DEVICE_NAME
    mac_address: Optional[str] = None
    ip_address: Optional[str] = None
    device_type: str = DEFAULT_DEVICE_TYPE
    manufacturer: str = DEFAULT_MANUFACTURER
    is_blocked: bool = False
    is_vpn_client: bool = Field(False, alias="isVPNClient")
    last_seen: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow)
    last_modified: Optional[datetime] = None
    traffic_stats: TrafficCounters = Field(default_factory=TrafficCounters)


class DeviceStatus(Device):
    """Stored device plus a live reachability probe"""
    is_online: bool = False
    last_checked: datetime = Field(default_factory=utcnow)
    error: Optional[str] = None


class DeviceTraffic(TrafficCounters):
    device_id: str
    period: str = "24h"
    last_updated: datetime = Field(default_factory=utcnow)
    error: Optional[str] = None


class ScanSummary(CamelModel):
    """Payload of the devices-scanned event"""
    new_devices: List[Device] = Field(default_factory=list)
    total_found: int = 0
