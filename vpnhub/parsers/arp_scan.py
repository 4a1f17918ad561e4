"""
Parser for `arp-scan -l` output

    Interface: eth0, type: EN10MB, MAC: dc:a6:32:00:00:01, IPv4: 192.168.1.10
    Starting arp-scan 1.9.7 with 256 hosts (https://github.com/royhills/arp-scan)
    192.168.1.1     a4:91:b1:12:34:56       Technicolor
    192.168.1.23    b8:27:eb:aa:bb:cc       Raspberry Pi Foundation

    3 packets received by filter, 0 packets dropped by kernel
"""

import re
from typing import Iterable, Union

from ..schemas import ScanRecord

_IPV4_RE = re.compile(r"^\d+\.\d+\.\d+\.\d+$")


def parse_scan_dump(output: Union[str, Iterable[str]]) -> list[ScanRecord]:
    """Parse scan output into (ip, mac, manufacturer) records, in input order"""
    lines = output.splitlines() if isinstance(output, str) else output
    records = []

    for line in lines:
        parts = line.split()
        if len(parts) < 2 or not _IPV4_RE.match(parts[0]):
            continue

        records.append(ScanRecord(
            ip_address=parts[0],
            mac_address=parts[1],
            manufacturer=" ".join(parts[2:]),
        ))

    return records
