"""
Text parsers for external tool output

Pure functions, no I/O:
- wg show peer blocks and byte-with-unit strings
- arp-scan device lines
- iptables counter lines
- MAC OUI device types
"""

from .wg_show import parse_bytes, parse_peer_dump
from .arp_scan import parse_scan_dump
from .iptables import parse_traffic_output, select_address_rules
from .oui import detect_device_type

__all__ = [
    "parse_bytes",
    "parse_peer_dump",
    "parse_scan_dump",
    "parse_traffic_output",
    "select_address_rules",
    "detect_device_type",
]
