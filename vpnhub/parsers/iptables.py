"""
Parsers for `iptables -L -v -n -x` listings

Rule lines start with the packet and byte counters:

    Chain INPUT (policy ACCEPT 0 packets, 0 bytes)
     pkts      bytes target     prot opt in     out     source               destination
       12      840 DROP       all  --  *      *       192.168.1.23         0.0.0.0/0
"""

from typing import Iterable, Union

from ..schemas import TrafficCounters


def _to_int(token: str) -> int:
    try:
        return int(token)
    except ValueError:
        return 0


def select_address_rules(listing: str, ip_address: str) -> list[str]:
    """
    Keep the rule lines that name ip_address, tagged with their chain

    The chain name is appended at the end of the line so the counter
    columns stay at their usual positions.
    """
    selected = []
    chain = ""

    for line in listing.splitlines():
        if line.startswith("Chain "):
            parts = line.split()
            chain = parts[1] if len(parts) > 1 else ""
            continue

        if ip_address in line.split():
            selected.append(f"{line.rstrip()} {chain}".rstrip())

    return selected


def parse_traffic_output(lines: Union[str, Iterable[str]]) -> TrafficCounters:
    """
    Sum packet/byte counters of rule lines already filtered to one address

    Lines mentioning INPUT count as received, OUTPUT as sent. Counter
    tokens that are not plain integers count as 0.
    """
    if isinstance(lines, str):
        lines = lines.splitlines()

    counters = TrafficCounters()

    for line in lines:
        parts = line.split()
        if len(parts) < 2:
            continue

        packets = _to_int(parts[0])
        num_bytes = _to_int(parts[1])

        if "INPUT" in line:
            counters.bytes_received += num_bytes
            counters.packets_received += packets
        elif "OUTPUT" in line:
            counters.bytes_sent += num_bytes
            counters.packets_sent += packets

    return counters
