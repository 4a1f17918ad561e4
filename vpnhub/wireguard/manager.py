"""
VPN Manager

Owns the WireGuard server configuration and the issued client peers:
- Service status and start/stop/restart
- Server config read/update with live interface reload
- Client key/config generation and revocation
- Live peer listing, statistics and service logs

Each client is persisted as two files in the clients directory,
<name>.json (descriptor) and <name>.conf (wg-quick config). They are
created together and deleted together.
"""

import asyncio
import ipaddress
import logging
import re
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from ..command_runner import CommandRunner, ExecutionError
from ..errors import (
    ClientExistsError,
    CorruptClientError,
    InvalidClientNameError,
    PersistenceError,
    ServerConfigMissingError,
)
from ..events import EventTypes, NotificationSink, Rooms
from ..parsers import parse_peer_dump
from ..schemas import PeerSnapshot, utcnow
from ..storage import read_json, remove_file, write_json_atomic, write_text_atomic
from .config_builder import SUBNET_PREFIX, WireGuardConfigBuilder, host_ip, render_qr_data_url, server_subnet
from .models import (
    FULL_TUNNEL,
    MOBILE_CLIENT_TYPE,
    ClientAudit,
    ClientDescriptor,
    GeneratedClient,
    LogEntry,
    OperationResult,
    ServerConfig,
    VPNStatistics,
    VPNStatus,
)
from .service import ServiceController, WireGuardTool

logger = logging.getLogger('vpnhub.wireguard')

CLIENT_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,63}$")
DOWNLOAD_URL = "/api/vpn/clients/{name}/download"


class VPNManager:
    """
    Peer lifecycle manager for the WireGuard server
    """

    def __init__(
        self,
        runner: CommandRunner,
        notifier: NotificationSink,
        config_path: Union[str, Path],
        clients_dir: Union[str, Path],
        interface: str = "wg0",
        wg_config_dir: Union[str, Path] = "/etc/wireguard",
        service_unit: Optional[str] = None,
        default_dns: str = "8.8.8.8",
        persistent_keepalive: int = 25,
    ):
        """
        Initialize VPN manager

        Args:
            runner: Command runner for wg/wg-quick/systemctl/journalctl
            notifier: Sink for vpn-status-changed / vpn-config-changed
            config_path: Server configuration JSON file
            clients_dir: Directory holding <name>.json / <name>.conf pairs
            interface: WireGuard interface name
            wg_config_dir: Directory of the wg-quick interface file
            service_unit: systemd unit (defaults to wg-quick@<interface>)
            default_dns: DNS rendered when the server config has none
            persistent_keepalive: Keepalive written into client configs
        """
        self.notifier = notifier
        self.config_path = Path(config_path)
        self.clients_dir = Path(clients_dir)
        self.interface = interface
        self.interface_file = Path(wg_config_dir) / f"{interface}.conf"

        self.service = ServiceController(runner, service_unit or f"wg-quick@{interface}")
        self.wg = WireGuardTool(runner, interface)
        self.builder = WireGuardConfigBuilder(default_dns, persistent_keepalive)

        # Best-effort caches, rebuilt from live queries
        self.is_running = False
        self._connected_clients: dict[str, PeerSnapshot] = {}

        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings, runner: CommandRunner, notifier: NotificationSink) -> "VPNManager":
        return cls(
            runner=runner,
            notifier=notifier,
            config_path=settings.VPN_CONFIG_FILE,
            clients_dir=settings.CLIENTS_DIR,
            interface=settings.WG_INTERFACE,
            wg_config_dir=settings.WG_CONFIG_DIR,
            service_unit=settings.WG_SERVICE,
            default_dns=settings.DEFAULT_DNS,
            persistent_keepalive=settings.PERSISTENT_KEEPALIVE,
        )

    @property
    def connected_clients(self) -> list[PeerSnapshot]:
        return list(self._connected_clients.values())

    # --- Service ---

    async def get_status(self) -> VPNStatus:
        """
        Query the service state

        Never raises; query failures are reported in the error field.
        """
        try:
            result = await self.service.is_active()
            state = result.stdout.strip()

            if not result.ok and not state:
                # Nothing on stdout means systemctl itself failed
                raise ExecutionError.from_result(result)

            self.is_running = state == "active"

            uptime = 0
            last_started = None
            if self.is_running:
                last_started = await self.service.active_since()
                uptime = self.service.uptime_seconds(last_started)

            return VPNStatus(
                is_running=self.is_running,
                connected_clients=self.connected_clients,
                uptime=uptime,
                last_started=last_started,
            )

        except Exception as e:
            logger.error(f"Error getting VPN status: {e}")
            self.is_running = False
            return VPNStatus(is_running=False, error=str(e))

    async def start(self) -> OperationResult:
        try:
            await self.service.start()
        except ExecutionError as e:
            logger.error(f"Error starting VPN: {e}")
            return OperationResult(success=False, error=str(e))

        self.is_running = True
        logger.info("VPN service started")
        self.notifier.emit(EventTypes.VPN_STATUS_CHANGED, {"isRunning": True}, room=Rooms.VPN)

        return OperationResult(success=True, message="VPN service started successfully")

    async def stop(self) -> OperationResult:
        try:
            await self.service.stop()
        except ExecutionError as e:
            logger.error(f"Error stopping VPN: {e}")
            return OperationResult(success=False, error=str(e))

        self.is_running = False
        self._connected_clients.clear()
        logger.info("VPN service stopped")
        self.notifier.emit(EventTypes.VPN_STATUS_CHANGED, {"isRunning": False}, room=Rooms.VPN)

        return OperationResult(success=True, message="VPN service stopped successfully")

    async def restart(self) -> OperationResult:
        try:
            await self.service.restart()
        except ExecutionError as e:
            logger.error(f"Error restarting VPN: {e}")
            return OperationResult(success=False, error=str(e))

        self.is_running = True
        logger.info("VPN service restarted")
        self.notifier.emit(EventTypes.VPN_STATUS_CHANGED, {"isRunning": True}, room=Rooms.VPN)

        return OperationResult(success=True, message="VPN service restarted successfully")

    # --- Server configuration ---

    async def get_config(self) -> Optional[ServerConfig]:
        """Server configuration, None if it was never written"""
        try:
            return self._load_server_config()
        except ServerConfigMissingError:
            return None

    async def update_config(self, new_config: Union[ServerConfig, dict]) -> OperationResult:
        """
        Replace the server configuration and reload the interface

        Raises:
            ValidationError: new_config is not a valid server configuration
            PersistenceError: config or interface file could not be written
        """
        if isinstance(new_config, ServerConfig):
            config = new_config.model_copy()
        else:
            config = ServerConfig.model_validate(new_config)

        async with self._lock:
            try:
                previous = self._load_server_config()
            except ServerConfigMissingError:
                previous = None

            now = utcnow()
            config.created_at = (previous.created_at if previous else None) or config.created_at or now
            config.updated_at = now

            write_json_atomic(self.config_path, config.to_json_dict(), mode=0o600)
            self._write_interface_file(config)

            down = await self.wg.interface_down()
            if not down.ok:
                logger.debug(f"{self.interface} was not up: {down.stderr.strip()}")

            try:
                await self.wg.interface_up()
            except ExecutionError as e:
                logger.error(f"Error reloading {self.interface}: {e}")
                return OperationResult(success=False, error=str(e))

        logger.info("VPN configuration updated")
        self.notifier.emit(EventTypes.VPN_CONFIG_CHANGED, config.public_view(), room=Rooms.VPN)

        return OperationResult(success=True, message="VPN configuration updated successfully")

    # --- Clients ---

    async def generate_client_config(self, client_name: str, client_type: str = MOBILE_CLIENT_TYPE) -> GeneratedClient:
        """
        Issue keys and a wg-quick config for a new client

        Args:
            client_name: Identity, also the file name of both artifacts
            client_type: "mobile" routes everything through the tunnel,
                         anything else only the server /24

        Raises:
            InvalidClientNameError: name not usable as a file name
            ServerConfigMissingError: no server configuration yet
            ClientExistsError: keys already issued for this name
            ExecutionError: key generation failed
            PersistenceError: artifacts could not be written (none are left behind)
        """
        self._validate_client_name(client_name)
        server = self._load_server_config()

        private_key, public_key = await self.wg.generate_keypair()
        preshared_key = await self.wg.generate_preshared_key()

        async with self._lock:
            if self._descriptor_path(client_name).exists() or self._config_path(client_name).exists():
                raise ClientExistsError(f"Client {client_name} already exists")

            descriptor = ClientDescriptor(
                client_name=client_name,
                client_type=client_type,
                private_key=private_key,
                public_key=public_key,
                preshared_key=preshared_key,
                allowed_ips=FULL_TUNNEL if client_type == MOBILE_CLIENT_TYPE else str(server_subnet(server)),
                address=self._allocate_address(server),
            )

            wg_config = self.builder.build_client_config(descriptor, server)
            self._write_client_files(descriptor, wg_config)
            self._refresh_interface_file(server)

        added = await self.wg.add_peer(public_key, f"{host_ip(descriptor.address)}/32", preshared_key)
        if not added.ok:
            logger.warning(f"Client {client_name} not added to live {self.interface}: {added.stderr.strip()}")

        try:
            qr_code = render_qr_data_url(wg_config)
        except Exception as e:
            logger.error(f"Failed to render QR code for {client_name}: {e}")
            qr_code = None

        logger.info(f"Client configuration generated for {client_name}")

        return GeneratedClient(
            client_config=descriptor,
            wg_config=wg_config,
            qr_code=qr_code,
            download_url=DOWNLOAD_URL.format(name=client_name),
        )

    async def revoke_client(self, client_id: str) -> OperationResult:
        """
        Delete a client's artifacts and drop it from the live interface

        Missing artifacts are not an error. The live removal is
        best-effort; the files decide whether the identity is issued.

        Raises:
            PersistenceError: an existing artifact could not be deleted
        """
        if not CLIENT_NAME_RE.match(client_id or ""):
            return OperationResult(success=False, error=f"Invalid client name: {client_id!r}")

        async with self._lock:
            descriptor = self._read_descriptor_quiet(client_id)

            removed_descriptor = remove_file(self._descriptor_path(client_id))
            removed_config = remove_file(self._config_path(client_id))

            if removed_descriptor or removed_config:
                try:
                    self._refresh_interface_file(self._load_server_config())
                except ServerConfigMissingError:
                    pass

        if descriptor is not None:
            removed = await self.wg.remove_peer(descriptor.public_key)
            if not removed.ok:
                logger.warning(f"Peer for {client_id} not removed from {self.interface}: {removed.stderr.strip()}")
            self._connected_clients.pop(descriptor.public_key, None)
        else:
            logger.debug(f"No descriptor for {client_id}, live peer removal skipped")

        logger.info(f"Client access revoked: {client_id}")

        return OperationResult(success=True, message="Client access revoked successfully")

    async def audit_clients(self) -> ClientAudit:
        """Pair up descriptors and configs in the clients directory"""
        audit = self._scan_clients_dir()

        if not audit.is_clean:
            logger.warning(
                f"Client artifacts out of sync: missing config for {audit.missing_config}, "
                f"missing descriptor for {audit.missing_descriptor}"
            )

        return audit

    async def list_clients(self) -> list[ClientDescriptor]:
        """Descriptors of all clients whose artifact pair is complete"""
        audit = await self.audit_clients()
        return self._load_descriptors(audit.consistent)

    async def get_client(self, client_name: str) -> Optional[ClientDescriptor]:
        """
        Descriptor of one client, None if it was never issued

        Raises:
            CorruptClientError: only one of the two artifacts exists
        """
        if not self._check_pair(client_name):
            return None
        return ClientDescriptor.model_validate(read_json(self._descriptor_path(client_name)))

    async def get_client_config_file(self, client_name: str) -> Optional[Path]:
        """Path of a client's wg-quick config for download"""
        if not self._check_pair(client_name):
            return None
        return self._config_path(client_name)

    # --- Live state ---

    async def get_connected_clients(self) -> list[PeerSnapshot]:
        """Query live peers; replaces the cached snapshot map"""
        try:
            output = await self.wg.show()
        except ExecutionError as e:
            logger.error(f"Error getting connected clients: {e}")
            return []

        clients = parse_peer_dump(output)
        self._connected_clients = {c.public_key: c for c in clients}

        return clients

    async def get_logs(self, limit: int = 100, level: str = "all") -> list[LogEntry]:
        """
        Last `limit` lines of the service journal

        `level` is accepted for API compatibility and does not filter;
        every entry is reported as "info".
        """
        try:
            output = await self.service.logs(limit)
        except ExecutionError as e:
            logger.error(f"Error getting VPN logs: {e}")
            return []

        entries = []
        for line in output.splitlines():
            if not line.strip() or line.startswith("-- "):
                continue

            timestamp = line.split(" ", 1)[0]
            # Message follows the "unit[pid]:" tag; whole line if there is none
            message = line[line.find("]") + 1:].lstrip(":").strip()

            entries.append(LogEntry(timestamp=timestamp, message=message))

        return entries

    async def get_statistics(self) -> VPNStatistics:
        """Aggregate counters over live peers, zero-valued on failure"""
        try:
            output = await self.wg.show()
        except ExecutionError as e:
            logger.error(f"Error getting VPN statistics: {e}")
            return VPNStatistics()

        clients = parse_peer_dump(output)

        return VPNStatistics(
            total_clients=len(clients),
            active_clients=sum(1 for c in clients if c.latest_handshake),
            total_bytes_received=sum(c.receive_bytes for c in clients),
            total_bytes_sent=sum(c.transmit_bytes for c in clients),
            clients=clients,
        )

    # --- Private methods ---

    def _descriptor_path(self, client_name: str) -> Path:
        return self.clients_dir / f"{client_name}.json"

    def _config_path(self, client_name: str) -> Path:
        return self.clients_dir / f"{client_name}.conf"

    @staticmethod
    def _validate_client_name(client_name: str):
        if not CLIENT_NAME_RE.match(client_name or ""):
            raise InvalidClientNameError(f"Invalid client name: {client_name!r}")

    def _check_pair(self, client_name: str) -> bool:
        """True if both artifacts exist, False if neither does"""
        if not CLIENT_NAME_RE.match(client_name or ""):
            return False

        has_descriptor = self._descriptor_path(client_name).exists()
        has_config = self._config_path(client_name).exists()

        if has_descriptor and has_config:
            return True
        if has_descriptor:
            raise CorruptClientError(client_name, "config")
        if has_config:
            raise CorruptClientError(client_name, "descriptor")
        return False

    def _scan_clients_dir(self) -> ClientAudit:
        if not self.clients_dir.is_dir():
            return ClientAudit()

        descriptors = {p.stem for p in self.clients_dir.glob("*.json")}
        configs = {p.stem for p in self.clients_dir.glob("*.conf")}

        return ClientAudit(
            consistent=sorted(descriptors & configs),
            missing_config=sorted(descriptors - configs),
            missing_descriptor=sorted(configs - descriptors),
        )

    def _load_server_config(self) -> ServerConfig:
        try:
            data = read_json(self.config_path)
        except FileNotFoundError:
            raise ServerConfigMissingError(f"Server configuration not found: {self.config_path}")

        try:
            return ServerConfig.model_validate(data)
        except ValidationError as e:
            raise PersistenceError(self.config_path, e) from e

    def _read_descriptor_quiet(self, client_name: str) -> Optional[ClientDescriptor]:
        try:
            return ClientDescriptor.model_validate(read_json(self._descriptor_path(client_name)))
        except FileNotFoundError:
            return None
        except (PersistenceError, ValidationError) as e:
            logger.warning(f"Unreadable descriptor for {client_name}: {e}")
            return None

    def _load_descriptors(self, names: list[str]) -> list[ClientDescriptor]:
        descriptors = []
        for name in names:
            descriptor = self._read_descriptor_quiet(name)
            if descriptor is not None:
                descriptors.append(descriptor)
        return descriptors

    def _allocate_address(self, server: ServerConfig) -> str:
        """Next free host of the server /24, as "<ip>/24" """
        subnet = server_subnet(server)
        taken = {ipaddress.ip_address(server.server_ip)}

        # Half-present pairs still hold their address
        audit = self._scan_clients_dir()
        for descriptor in self._load_descriptors(audit.consistent + audit.missing_config):
            if descriptor.address:
                taken.add(ipaddress.ip_address(host_ip(descriptor.address)))

        for candidate in subnet.hosts():
            if candidate not in taken:
                return f"{candidate}/{SUBNET_PREFIX}"

        raise RuntimeError(f"No available addresses in {subnet}")

    def _write_client_files(self, descriptor: ClientDescriptor, wg_config: str):
        """Write both artifacts; the descriptor is removed again if the config fails"""
        descriptor_path = self._descriptor_path(descriptor.client_name)

        write_json_atomic(descriptor_path, descriptor.to_json_dict(), mode=0o600)

        try:
            write_text_atomic(self._config_path(descriptor.client_name), wg_config, mode=0o600)
        except PersistenceError:
            try:
                remove_file(descriptor_path)
            except PersistenceError as cleanup_error:
                logger.error(f"Orphaned descriptor left for {descriptor.client_name}: {cleanup_error}")
            raise

    def _write_interface_file(self, server: ServerConfig):
        clients = self._load_descriptors(self._scan_clients_dir().consistent)
        content = self.builder.build_server_config(server, clients)
        write_text_atomic(self.interface_file, content, mode=0o600)
        logger.debug(f"Wrote {self.interface_file}")

    def _refresh_interface_file(self, server: ServerConfig):
        """Re-render the interface file if this manager already maintains it"""
        if not self.interface_file.exists():
            return

        try:
            self._write_interface_file(server)
        except PersistenceError as e:
            logger.warning(f"Interface file not refreshed: {e}")
