"""
VPN Hub

Reconciles a small-network WireGuard deployment against what is actually
running on the host:
- Issues, lists and revokes WireGuard client peers
- Reads live peer state and service status
- Keeps an inventory of LAN devices discovered by network scans
- Blocks/unblocks devices through iptables
- Pushes state changes to subscribers
"""

__version__ = "1.0.0"
__all__ = ["VPNManager", "DeviceManager", "CommandRunner", "EventBus"]

from .command_runner import CommandRunner
from .events import EventBus
from .wireguard import VPNManager
from .devices import DeviceManager
