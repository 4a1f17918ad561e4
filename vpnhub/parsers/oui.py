"""
Device type lookup from the MAC OUI prefix
"""

UNKNOWN_DEVICE_TYPE = "Unknown"

# Upper-cased "XX:XX:XX" prefix -> device type
OUI_DEVICE_TYPES = {
    "00:50:56": "VMware",
    "08:00:27": "VirtualBox",
    "52:54:00": "QEMU",
    "AC:DE:48": "Raspberry Pi",
    "B8:27:EB": "Raspberry Pi",
    "DC:A6:32": "Raspberry Pi",
    "E4:5F:01": "Raspberry Pi",
}


def oui_prefix(mac_address: str) -> str:
    return (mac_address or "")[:8].upper()


def detect_device_type(mac_address: str) -> str:
    return OUI_DEVICE_TYPES.get(oui_prefix(mac_address), UNKNOWN_DEVICE_TYPE)
