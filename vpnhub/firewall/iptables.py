"""
Device Firewall (iptables)

Enforces per-device blocking with a DROP rule pair:
- INPUT: traffic from the device to this host
- FORWARD: traffic from the device routed through this host

Failures are returned to the caller, which decides whether to care.
"""

import logging

from ..command_runner import CommandResult, CommandRunner

logger = logging.getLogger('vpnhub.firewall')


class DeviceFirewall:
    """
    Manages device block rules in the built-in chains
    """

    CHAINS = ("INPUT", "FORWARD")

    # Upper bound on duplicate rules removed by one unblock
    MAX_RULE_COPIES = 16

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    async def block(self, ip_address: str) -> bool:
        """
        Add the DROP rule pair for ip_address

        Rules that already exist are not added again.

        Returns:
            True if both rules are in place
        """
        success = True

        for chain in self.CHAINS:
            rule = self._drop_rule(chain, ip_address)

            check = await self._iptables("-C", *rule)
            if check.ok:
                logger.debug(f"Rule already present: {chain} DROP {ip_address}")
                continue

            result = await self._iptables("-A", *rule)
            if not result.ok:
                logger.error(f"iptables failed: -A {' '.join(rule)} - {result.stderr.strip()}")
                success = False

        return success

    async def unblock(self, ip_address: str) -> bool:
        """
        Remove the DROP rule pair for ip_address

        Returns:
            True if at least one rule was removed
        """
        removed = 0

        for chain in self.CHAINS:
            rule = self._drop_rule(chain, ip_address)

            for _ in range(self.MAX_RULE_COPIES):
                result = await self._iptables("-D", *rule)
                if not result.ok:
                    # Missing rule ends the loop, not an error
                    logger.debug(f"No more {chain} DROP rules for {ip_address}: {result.stderr.strip()}")
                    break
                removed += 1

        return removed > 0

    async def list_rules(self) -> CommandResult:
        """`iptables -L -v -n -x` with exact counters"""
        return await self._iptables("-L", "-v", "-n", "-x")

    # --- Private methods ---

    @staticmethod
    def _drop_rule(chain: str, ip_address: str) -> list[str]:
        return [chain, "-s", ip_address, "-j", "DROP"]

    async def _iptables(self, *args: str) -> CommandResult:
        return await self.runner.try_run("iptables", list(args), privileged=True)
