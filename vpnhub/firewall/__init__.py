"""
Firewall Module

iptables enforcement for blocked LAN devices
"""

from .iptables import DeviceFirewall

__all__ = ["DeviceFirewall"]
