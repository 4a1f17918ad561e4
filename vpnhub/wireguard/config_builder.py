"""
WireGuard Configuration Builder
Renders wg-quick INI text for issued clients and for the server interface
"""

import base64
import io
import ipaddress
import logging
from typing import Iterable, Optional

import qrcode

from .models import ClientDescriptor, ServerConfig

logger = logging.getLogger('vpnhub.wireguard.config')

SUBNET_PREFIX = 24
PERSISTENT_KEEPALIVE = 25


def server_subnet(server: ServerConfig) -> ipaddress.IPv4Network:
    """The /24 the server address lives in"""
    return ipaddress.ip_network(f"{server.server_ip}/{SUBNET_PREFIX}", strict=False)


def host_ip(address: str) -> str:
    """Strip a prefix length: "10.0.0.2/24" -> "10.0.0.2" """
    return address.split("/", 1)[0]


class WireGuardConfigBuilder:
    """
    Builds wg-quick configuration files

    Generates INI-style configuration for wg-quick
    """

    def __init__(self, default_dns: str = "8.8.8.8", persistent_keepalive: int = PERSISTENT_KEEPALIVE):
        self.default_dns = default_dns
        self.persistent_keepalive = persistent_keepalive

    def build_client_config(self, client: ClientDescriptor, server: ServerConfig) -> str:
        """
        Build the config a client imports into its WireGuard app

        Args:
            client: Issued client descriptor
            server: Server VPN configuration

        Returns:
            Configuration string
        """
        address = client.address or f"{server_subnet(server).network_address + 2}/{SUBNET_PREFIX}"

        lines = [
            "[Interface]",
            f"PrivateKey = {client.private_key}",
            f"Address = {address}",
            f"DNS = {server.dns or self.default_dns}",
            "",
            "[Peer]",
            f"PublicKey = {server.public_key}",
            f"PresharedKey = {client.preshared_key}",
            f"Endpoint = {server.endpoint}:{server.port}",
            f"AllowedIPs = {client.allowed_ips}",
            f"PersistentKeepalive = {self.persistent_keepalive}",
        ]

        return "\n".join(lines) + "\n"

    def build_server_config(
        self,
        server: ServerConfig,
        clients: Iterable[ClientDescriptor],
        post_up: Optional[list[str]] = None,
        post_down: Optional[list[str]] = None,
    ) -> str:
        """
        Build the server interface file (<interface>.conf)

        Args:
            server: Server VPN configuration
            clients: Issued clients, one [Peer] section each
            post_up: Commands to run after interface up
            post_down: Commands to run after interface down

        Returns:
            Configuration string
        """
        lines = [
            "[Interface]",
            f"Address = {server.server_ip}/{SUBNET_PREFIX}",
            f"ListenPort = {server.port}",
            f"PrivateKey = {server.private_key}",
        ]

        for cmd in post_up or []:
            lines.append(f"PostUp = {cmd}")

        for cmd in post_down or []:
            lines.append(f"PostDown = {cmd}")

        count = 0
        for client in clients:
            if not client.address:
                logger.warning(f"Client {client.client_name} has no tunnel address, skipped in server config")
                continue

            lines.append("")
            lines.append(f"# {client.client_name}")
            lines.append("[Peer]")
            lines.append(f"PublicKey = {client.public_key}")
            lines.append(f"PresharedKey = {client.preshared_key}")
            lines.append(f"AllowedIPs = {host_ip(client.address)}/32")
            count += 1

        logger.debug(f"Rendered server config with {count} peers")
        return "\n".join(lines) + "\n"


def render_qr_data_url(text: str) -> str:
    """
    Encode text as a QR code PNG data URL for mobile WireGuard apps
    """
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=10,
        border=4,
    )
    qr.add_data(text)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")

    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("utf-8")
