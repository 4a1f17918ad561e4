"""
WireGuard service and tool wrappers

Thin command wrappers used by VPNManager:
- systemctl/journalctl for the service unit
- wg for keys and live peer state
- wg-quick for interface up/down
"""

import logging
from datetime import datetime
from typing import Optional

from ..command_runner import CommandResult, CommandRunner

logger = logging.getLogger('vpnhub.wireguard.service')


class ServiceController:
    """
    Controls the systemd unit that runs the WireGuard interface
    """

    def __init__(self, runner: CommandRunner, unit: str = "wg-quick@wg0"):
        """
        Initialize service controller

        Args:
            runner: Command runner
            unit: systemd unit name
        """
        self.runner = runner
        self.unit = unit

    async def is_active(self) -> CommandResult:
        """`systemctl is-active`, exits non-zero for inactive units"""
        return await self.runner.try_run("systemctl", ["is-active", self.unit])

    async def active_since(self) -> Optional[str]:
        """ActiveEnterTimestamp of the unit, None if unavailable"""
        result = await self.runner.try_run(
            "systemctl", ["show", self.unit, "--property=ActiveEnterTimestamp", "--value"]
        )
        value = result.stdout.strip()
        if not result.ok or not value:
            return None
        return value

    async def start(self) -> CommandResult:
        return await self.runner.run("systemctl", ["start", self.unit], privileged=True)

    async def stop(self) -> CommandResult:
        return await self.runner.run("systemctl", ["stop", self.unit], privileged=True)

    async def restart(self) -> CommandResult:
        return await self.runner.run("systemctl", ["restart", self.unit], privileged=True)

    async def logs(self, limit: int) -> str:
        result = await self.runner.run(
            "journalctl", ["-u", self.unit, "-n", str(limit), "-o", "short-iso", "--no-pager"], privileged=True
        )
        return result.stdout

    @staticmethod
    def uptime_seconds(active_since: Optional[str], now: Optional[datetime] = None) -> int:
        """
        Seconds since an ActiveEnterTimestamp value

        Format is "Sat 2026-10-17 09:12:44 UTC"; the zone token is ignored
        and the time read as local time. Unparseable values give 0.
        """
        if not active_since:
            return 0

        parts = active_since.split()
        if len(parts) < 3:
            return 0

        try:
            started = datetime.strptime(f"{parts[1]} {parts[2]}", "%Y-%m-%d %H:%M:%S")
        except ValueError:
            return 0

        elapsed = ((now or datetime.now()) - started).total_seconds()
        return max(int(elapsed), 0)


class WireGuardTool:
    """
    Wraps the wg and wg-quick command line tools
    """

    def __init__(self, runner: CommandRunner, interface: str = "wg0"):
        self.runner = runner
        self.interface = interface

    async def generate_keypair(self) -> tuple[str, str]:
        """
        Generate a WireGuard private/public key pair

        Returns: (private_key, public_key)
        """
        private_key = (await self.runner.run("wg", ["genkey"])).stdout.strip()
        public_key = (await self.runner.run("wg", ["pubkey"], input=private_key)).stdout.strip()
        return private_key, public_key

    async def generate_preshared_key(self) -> str:
        return (await self.runner.run("wg", ["genpsk"])).stdout.strip()

    async def show(self) -> str:
        """Human-readable `wg show <interface>` output"""
        result = await self.runner.run("wg", ["show", self.interface], privileged=True)
        return result.stdout

    async def add_peer(self, public_key: str, allowed_ips: str, preshared_key: Optional[str] = None) -> CommandResult:
        """Add a peer to the live interface, failure returned not raised"""
        args = ["set", self.interface, "peer", public_key, "allowed-ips", allowed_ips]

        if preshared_key:
            # Key material goes through stdin, not argv
            args.extend(["preshared-key", "/dev/stdin"])

        return await self.runner.try_run("wg", args, input=preshared_key, privileged=True)

    async def remove_peer(self, public_key: str) -> CommandResult:
        """Remove a peer from the live interface, failure returned not raised"""
        return await self.runner.try_run(
            "wg", ["set", self.interface, "peer", public_key, "remove"], privileged=True
        )

    async def interface_down(self) -> CommandResult:
        """wg-quick down, failure returned not raised (interface may already be down)"""
        return await self.runner.try_run("wg-quick", ["down", self.interface], privileged=True)

    async def interface_up(self) -> CommandResult:
        return await self.runner.run("wg-quick", ["up", self.interface], privileged=True)
