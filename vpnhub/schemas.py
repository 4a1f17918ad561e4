# vpnhub/schemas.py
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base for records stored and served with camelCase keys"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# --- Parser output records ---

class PeerSnapshot(CamelModel):
    """Live state of one peer as reported by `wg show`"""
    public_key: str
    latest_handshake: Optional[str] = None
    receive_bytes: int = 0
    transmit_bytes: int = 0
    endpoint: Optional[str] = None
    allowed_ips: Optional[str] = None


class ScanRecord(CamelModel):
    """One address observed by a network scan"""
    ip_address: str
    mac_address: str
    manufacturer: str = ""


class TrafficCounters(CamelModel):
    bytes_received: int = 0
    bytes_sent: int = 0
    packets_received: int = 0
    packets_sent: int = 0


ALIAS_OVERRIDES = {"is_vpn_client": "isVPNClient", "isVpnClient": "isVPNClient"}


def camel_key(key: str) -> str:
    """snake_case -> camelCase; keys without underscores are kept as given"""
    if key in ALIAS_OVERRIDES:
        return ALIAS_OVERRIDES[key]
    return to_camel(key) if "_" in key else key
