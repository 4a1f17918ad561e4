# vpnhub/wireguard/models.py
import ipaddress
from datetime import datetime
from typing import List, Optional

from pydantic import Field, field_validator

from ..schemas import CamelModel, PeerSnapshot, utcnow

MOBILE_CLIENT_TYPE = "mobile"
FULL_TUNNEL = "0.0.0.0/0"


class ServerConfig(CamelModel):
    """Singleton server VPN configuration (vpn.json)"""
    private_key: str
    public_key: str
    preshared_key: Optional[str] = None
    server_ip: str = "10.0.0.1"
    port: int = 51820
    dns: Optional[str] = None
    endpoint: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("server_ip")
    @classmethod
    def check_server_ip(cls, value: str) -> str:
        # Client addresses are allocated from this address's /24
        return str(ipaddress.IPv4Address(value.strip()))

    def public_view(self) -> dict:
        """Serialized form without secret key material"""
        return self.model_dump(mode="json", by_alias=True, exclude={"private_key", "preshared_key"})


class ClientDescriptor(CamelModel):
    """Persisted record of one issued client peer (<clientName>.json)"""
    client_name: str
    client_type: str = MOBILE_CLIENT_TYPE
    private_key: str
    public_key: str
    preshared_key: str
    allowed_ips: str
    address: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    def public_view(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude={"private_key", "preshared_key"})


class GeneratedClient(CamelModel):
    client_config: ClientDescriptor
    wg_config: str
    qr_code: Optional[str] = None
    download_url: str


class OperationResult(CamelModel):
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None


class VPNStatus(CamelModel):
    """
    Service state of the WireGuard unit

    uptime is whole seconds since the unit last became active, 0 when
    stopped or unknown.
    """
    is_running: bool = False
    connected_clients: List[PeerSnapshot] = Field(default_factory=list)
    uptime: int = 0
    last_started: Optional[str] = None
    error: Optional[str] = None


class VPNStatistics(CamelModel):
    total_clients: int = 0
    active_clients: int = 0
    total_bytes_received: int = 0
    total_bytes_sent: int = 0
    clients: List[PeerSnapshot] = Field(default_factory=list)


class LogEntry(CamelModel):
    timestamp: str
    message: str
    level: str = "info"


class ClientAudit(CamelModel):
    """Descriptor/config pairing across the clients directory"""
    consistent: List[str] = Field(default_factory=list)
    missing_config: List[str] = Field(default_factory=list)
    missing_descriptor: List[str] = Field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not self.missing_config and not self.missing_descriptor
