"""
WireGuard Module

Peer lifecycle management for the VPN server:
- Server configuration and interface reload
- Client key/config issue and revocation
- Service control, live peer state, statistics
"""

from .manager import VPNManager
from .config_builder import WireGuardConfigBuilder
from .service import ServiceController, WireGuardTool

__all__ = ["VPNManager", "WireGuardConfigBuilder", "ServiceController", "WireGuardTool"]
