"""
Parsers for `wg show <interface>` output

The human-readable form groups lines under a `peer:` header:

    peer: xTIBA5rboUvnH4htodjb6e697QjLERt1NAB4mZqp8Dg=
      endpoint: 192.168.1.20:51820
      allowed ips: 10.0.0.2/32
      latest handshake: 1 minute, 2 seconds ago
      transfer: 1.5 KiB received, 2 MiB sent
"""

import re
from typing import Iterable, Optional, Union

from ..schemas import PeerSnapshot

# Binary multipliers; the IEC spellings are what wg itself prints
UNIT_MULTIPLIERS = {
    "B": 1,
    "KB": 1024,
    "MB": 1024 ** 2,
    "GB": 1024 ** 3,
    "TB": 1024 ** 4,
    "KiB": 1024,
    "MiB": 1024 ** 2,
    "GiB": 1024 ** 3,
    "TiB": 1024 ** 4,
}

_BYTES_RE = re.compile(r"(\d+(?:\.\d+)?)\s*([A-Za-z]+)")
_TRANSFER_RE = re.compile(
    r"(\d+(?:\.\d+)?\s*[A-Za-z]+)\s+received,\s*(\d+(?:\.\d+)?\s*[A-Za-z]+)\s+sent"
)


def parse_bytes(text: str) -> int:
    """
    Convert a "<number> <unit>" string to a byte count

    "1.5 KB" -> 1536, "2 MB" -> 2097152. Unknown units and
    unparseable input give 0.
    """
    match = _BYTES_RE.search(text or "")
    if not match:
        return 0

    multiplier = UNIT_MULTIPLIERS.get(match.group(2))
    if multiplier is None:
        return 0

    return int(float(match.group(1)) * multiplier)


def _value_after_colon(line: str) -> str:
    return line.split(":", 1)[1].strip()


def parse_peer_dump(output: Union[str, Iterable[str]]) -> list[PeerSnapshot]:
    """
    Parse `wg show` output into peer snapshots, in input order

    Lines before the first `peer:` header (the interface block) and
    lines that match nothing are skipped.
    """
    lines = output.splitlines() if isinstance(output, str) else output

    peers: list[PeerSnapshot] = []
    current: Optional[PeerSnapshot] = None

    for raw in lines:
        line = raw.strip()

        if line.startswith("peer:"):
            if current is not None:
                peers.append(current)
            current = PeerSnapshot(public_key=_value_after_colon(line))
            continue

        if current is None:
            continue

        if line.startswith("latest handshake:"):
            current.latest_handshake = _value_after_colon(line) or None
        elif line.startswith("transfer:"):
            match = _TRANSFER_RE.search(line)
            if match:
                current.receive_bytes = parse_bytes(match.group(1))
                current.transmit_bytes = parse_bytes(match.group(2))
        elif line.startswith("endpoint:"):
            current.endpoint = _value_after_colon(line)
        elif line.startswith("allowed ips:"):
            current.allowed_ips = _value_after_colon(line)

    if current is not None:
        peers.append(current)

    return peers
