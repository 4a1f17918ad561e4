"""
Device Manager

Keeps the LAN device inventory in sync with what is on the network:
- Add/update/delete devices, persisted as one JSON snapshot
- Merge arp-scan results by MAC address
- Block/unblock through iptables
- Reachability probes and per-device traffic counters

Every mutation runs under one lock: change the map, write the full
snapshot, then return. A failed write restores the previous map.
"""

import asyncio
import logging
import shlex
from pathlib import Path
from typing import Any, Optional, Union

from ..command_runner import CommandRunner
from ..errors import DeviceExistsError, PersistenceError
from ..events import EventTypes, NotificationSink, Rooms
from ..firewall import DeviceFirewall
from ..parsers import detect_device_type, parse_scan_dump, parse_traffic_output, select_address_rules
from ..schemas import camel_key, utcnow
from .models import (
    DEFAULT_DEVICE_NAME,
    DEFAULT_DEVICE_TYPE,
    DEFAULT_MANUFACTURER,
    Device,
    DeviceStatus,
    DeviceTraffic,
    ScanSummary,
    new_device_id,
)
from .store import DeviceStore

logger = logging.getLogger('vpnhub.devices')

# Fields callers may not overwrite through update_device
IMMUTABLE_FIELDS = {"id"}


def _normalize_mac(mac_address: Optional[str]) -> Optional[str]:
    return mac_address.lower() if mac_address else None


class DeviceManager:
    """
    Device inventory reconciler
    """

    def __init__(
        self,
        runner: CommandRunner,
        notifier: NotificationSink,
        devices_path: Union[str, Path],
        scan_command: str = "arp-scan -l",
        ping_timeout: float = 2.0,
    ):
        """
        Initialize device manager and load the stored inventory

        Args:
            runner: Command runner for arp-scan/ping/iptables
            notifier: Sink for device-* events
            devices_path: JSON snapshot file
            scan_command: Discovery command line
            ping_timeout: Upper bound in seconds for a reachability probe
        """
        self.runner = runner
        self.notifier = notifier
        self.store = DeviceStore(devices_path)
        self.firewall = DeviceFirewall(runner)
        self.scan_command = shlex.split(scan_command)
        self.ping_timeout = ping_timeout

        self._devices: dict[str, Device] = self.store.load()
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings, runner: CommandRunner, notifier: NotificationSink) -> "DeviceManager":
        return cls(
            runner=runner,
            notifier=notifier,
            devices_path=settings.DEVICES_FILE,
            scan_command=settings.SCAN_COMMAND,
            ping_timeout=settings.PING_TIMEOUT,
        )

    # --- Queries ---

    async def get_all_devices(self) -> list[Device]:
        return list(self._devices.values())

    async def get_device(self, device_id: str) -> Optional[Device]:
        return self._devices.get(device_id)

    # --- Mutations ---

    async def add_device(self, device_data: dict[str, Any]) -> Device:
        """
        Create a device with a fresh id

        Raises:
            DeviceExistsError: MAC address already in the inventory
            ValidationError: device_data has invalid field values
            PersistenceError: snapshot could not be written
        """
        async with self._lock:
            snapshot = dict(self._devices)
            device = self._create_device(device_data)
            self._persist(snapshot)

        logger.info(f"Device added: {device.name} ({device.mac_address})")
        self.notifier.emit(EventTypes.DEVICE_ADDED, device.to_json_dict(), room=Rooms.DEVICES)

        return device

    async def update_device(self, device_id: str, update_data: dict[str, Any]) -> Optional[Device]:
        """
        Shallow-merge update_data over a stored device

        Keys that are not Device fields are dropped, not stored. A blocked
        device whose address changes has its rule pair moved to the new
        address.

        Returns:
            Updated device, None if device_id is unknown
        """
        async with self._lock:
            device = self._devices.get(device_id)
            if device is None:
                return None

            patch = {camel_key(key): value for key, value in update_data.items()}
            for key in IMMUTABLE_FIELDS:
                patch.pop(key, None)

            updated = Device.model_validate({
                **device.to_json_dict(),
                **patch,
                "lastModified": utcnow(),
            })

            new_mac = _normalize_mac(updated.mac_address)
            if new_mac and new_mac != _normalize_mac(device.mac_address):
                self._ensure_mac_free(new_mac)

            snapshot = dict(self._devices)
            self._devices[device_id] = updated
            self._persist(snapshot)

            if device.is_blocked and updated.is_blocked and device.ip_address != updated.ip_address:
                await self._move_block(updated, device.ip_address)

        logger.info(f"Device updated: {updated.name}")
        self.notifier.emit(EventTypes.DEVICE_UPDATED, updated.to_json_dict(), room=Rooms.DEVICES)

        return updated

    async def delete_device(self, device_id: str) -> bool:
        """
        Remove a device, lifting its firewall block first

        Returns:
            False if device_id is unknown
        """
        async with self._lock:
            device = self._devices.get(device_id)
            if device is None:
                return False

            if device.is_blocked and device.ip_address:
                if not await self.firewall.unblock(device.ip_address):
                    logger.warning(f"No block rules found for deleted device {device.name} ({device.ip_address})")

            snapshot = dict(self._devices)
            del self._devices[device_id]
            self._persist(snapshot)

        logger.info(f"Device deleted: {device.name}")
        self.notifier.emit(EventTypes.DEVICE_DELETED, {"id": device_id}, room=Rooms.DEVICES)

        return True

    async def block_device(self, device_id: str, blocked: bool) -> Optional[Device]:
        """
        Set the block flag and apply/remove the firewall rule pair

        The stored flag is the intent; a failing firewall command is
        logged and does not undo it.

        Returns:
            Updated device, None if device_id is unknown
        """
        async with self._lock:
            device = self._devices.get(device_id)
            if device is None:
                return None

            snapshot = dict(self._devices)
            updated = device.model_copy(update={"is_blocked": blocked, "last_modified": utcnow()})
            self._devices[device_id] = updated
            self._persist(snapshot)

            if not updated.ip_address:
                logger.warning(f"Device {updated.name} has no IP address, firewall not changed")
            elif blocked:
                if await self.firewall.block(updated.ip_address):
                    logger.info(f"Device blocked: {updated.name} ({updated.ip_address})")
                else:
                    logger.error(f"Error blocking device {updated.name} ({updated.ip_address})")
            else:
                await self.firewall.unblock(updated.ip_address)
                logger.info(f"Device unblocked: {updated.name} ({updated.ip_address})")

        self.notifier.emit(
            EventTypes.DEVICE_BLOCKED,
            {"deviceId": device_id, "blocked": blocked},
            room=Rooms.DEVICES,
        )

        return updated

    async def scan_for_devices(self) -> list[Device]:
        """
        Run network discovery and merge the results by MAC address

        Known MACs get their IP and lastSeen refreshed in place; unknown
        MACs become new devices. The snapshot is written once.

        Returns:
            Only the newly created devices

        Raises:
            ExecutionError: the scan command failed
            PersistenceError: snapshot could not be written
        """
        logger.info("Starting network scan for devices...")

        result = await self.runner.run(self.scan_command[0], self.scan_command[1:], privileged=True)
        records = parse_scan_dump(result.stdout)

        new_devices = []
        moved = []

        async with self._lock:
            snapshot = {device_id: device.model_copy() for device_id, device in self._devices.items()}
            by_mac = {
                _normalize_mac(d.mac_address): d
                for d in self._devices.values()
                if d.mac_address
            }
            now = utcnow()

            for record in records:
                existing = by_mac.get(_normalize_mac(record.mac_address))

                if existing is not None:
                    if existing.is_blocked and existing.ip_address != record.ip_address:
                        moved.append((existing, existing.ip_address))
                    existing.ip_address = record.ip_address
                    existing.last_seen = now
                    continue

                device = self._create_device({
                    "name": DEFAULT_DEVICE_NAME,
                    "macAddress": record.mac_address,
                    "ipAddress": record.ip_address,
                    "deviceType": detect_device_type(record.mac_address),
                    "manufacturer": record.manufacturer or DEFAULT_MANUFACTURER,
                })
                by_mac[_normalize_mac(device.mac_address)] = device
                new_devices.append(device)

            self._persist(snapshot)

            for device, old_ip in moved:
                await self._move_block(device, old_ip)

        for device in new_devices:
            self.notifier.emit(EventTypes.DEVICE_ADDED, device.to_json_dict(), room=Rooms.DEVICES)

        logger.info(f"Network scan completed. Found {len(new_devices)} new devices.")
        summary = ScanSummary(new_devices=new_devices, total_found=len(records))
        self.notifier.emit(EventTypes.DEVICES_SCANNED, summary.to_json_dict(), room=Rooms.DEVICES)

        return new_devices

    # --- Live probes ---

    async def get_device_status(self, device_id: str) -> Optional[DeviceStatus]:
        """Stored device plus a bounded ping; never raises for probe failures"""
        device = self._devices.get(device_id)
        if device is None:
            return None

        status = DeviceStatus(**dict(device), last_checked=utcnow())

        if not device.ip_address:
            status.error = "Device has no IP address"
            return status

        result = await self.runner.try_run(
            "ping", ["-c", "1", "-W", "1", device.ip_address],
            timeout=self.ping_timeout,
        )
        status.is_online = result.ok and "1 received" in result.stdout

        # ping exits 1 for an unreachable host; anything else is a probe failure
        if result.exit_code not in (0, 1):
            status.error = result.stderr.strip() or f"ping exited with {result.exit_code}"
            logger.error(f"Error checking device status for {device_id}: {status.error}")

        return status

    async def get_device_traffic(self, device_id: str, period: str = "24h") -> Optional[DeviceTraffic]:
        """iptables counters for the device address, zero-filled on failure"""
        device = self._devices.get(device_id)
        if device is None:
            return None

        if not device.ip_address:
            return DeviceTraffic(device_id=device_id, period=period, error="Device has no IP address")

        result = await self.firewall.list_rules()
        if not result.ok:
            error = result.stderr.strip() or f"iptables exited with {result.exit_code}"
            logger.error(f"Error getting traffic for device {device_id}: {error}")
            return DeviceTraffic(device_id=device_id, period=period, error=error)

        counters = parse_traffic_output(select_address_rules(result.stdout, device.ip_address))

        return DeviceTraffic(device_id=device_id, period=period, **dict(counters))

    # --- Private methods ---

    def _create_device(self, device_data: dict[str, Any]) -> Device:
        """Build a device with defaults and insert it into the map (caller persists)"""
        data = {camel_key(key): value for key, value in device_data.items()}

        mac = _normalize_mac(data.get("macAddress"))
        if mac:
            self._ensure_mac_free(mac)

        device_id = new_device_id()
        while device_id in self._devices:
            device_id = new_device_id()

        now = utcnow()
        device = Device(
            id=device_id,
            name=data.get("name") or DEFAULT_DEVICE_NAME,
            mac_address=data.get("macAddress"),
            ip_address=data.get("ipAddress"),
            device_type=data.get("deviceType") or DEFAULT_DEVICE_TYPE,
            manufacturer=data.get("manufacturer") or DEFAULT_MANUFACTURER,
            is_blocked=False,
            is_vpn_client=bool(data.get("isVPNClient", False)),
            last_seen=now,
            created_at=now,
        )

        self._devices[device.id] = device
        return device

    async def _move_block(self, device: Device, old_ip: Optional[str]):
        """Re-point the rule pair of a blocked device after its address changed"""
        if old_ip and not await self.firewall.unblock(old_ip):
            logger.warning(f"No block rules found for {device.name} at old address {old_ip}")

        if not device.ip_address:
            logger.warning(f"Device {device.name} has no IP address, block not re-applied")
        elif await self.firewall.block(device.ip_address):
            logger.info(f"Block moved for {device.name}: {old_ip} -> {device.ip_address}")
        else:
            logger.error(f"Error blocking device {device.name} ({device.ip_address})")

    def _ensure_mac_free(self, mac: str):
        for device in self._devices.values():
            if _normalize_mac(device.mac_address) == mac:
                raise DeviceExistsError(f"Device with MAC {mac} already exists: {device.id}")

    def _persist(self, snapshot: dict[str, Device]):
        """Write the full map; restore snapshot and re-raise if the write fails"""
        try:
            self.store.save(self._devices.values())
        except PersistenceError:
            self._devices = snapshot
            raise
