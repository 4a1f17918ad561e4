# tests/test_vpn_manager.py
"""
Unit Tests for VPNManager
Runs against the scripted runner and a tmp_path clients directory
"""

import asyncio
import json
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from vpnhub.errors import (
    ClientExistsError,
    CorruptClientError,
    InvalidClientNameError,
    PersistenceError,
    ServerConfigMissingError,
)
from vpnhub.events import EventTypes, Rooms
from vpnhub.wireguard.service import ServiceController


WG_SHOW_OUTPUT = """\
interface: wg0
  listening port: 51820

peer: PEER_ONE=
  latest handshake: 10 seconds ago
  transfer: 1 KiB received, 2 KiB sent

peer: PEER_TWO=
  transfer: 3 B received, 4 B sent
"""

JOURNAL_OUTPUT = """\
-- Logs begin at Sat 2026-10-17 08:00:00 UTC. --
2026-10-17T09:12:44+0000 host wg-quick[812]: [#] ip link add wg0 type wireguard
2026-10-17T09:12:45+0000 host systemd[1]: Started WireGuard via wg-quick(8) for wg0.
"""


class TestStatus:
    """Tests for get_status and service control"""

    @pytest.mark.asyncio
    async def test_inactive(self, vpn_manager, runner):
        runner.on("systemctl", "is-active", stdout="inactive\n", exit_code=3)

        status = await vpn_manager.get_status()

        assert status.is_running is False
        assert status.error is None
        assert status.uptime == 0

    @pytest.mark.asyncio
    async def test_active_reads_start_time(self, vpn_manager, runner):
        runner.on("systemctl", "is-active", stdout="active\n")
        runner.on("systemctl", "show", stdout="Sat 2026-10-17 09:12:44 UTC\n")

        with patch.object(ServiceController, "uptime_seconds", return_value=120):
            status = await vpn_manager.get_status()

        assert status.is_running is True
        assert status.last_started == "Sat 2026-10-17 09:12:44 UTC"
        assert status.uptime == 120

    @pytest.mark.asyncio
    async def test_query_failure_never_raises(self, vpn_manager, runner):
        runner.on("systemctl", stdout="", stderr="Failed to connect to bus", exit_code=1)

        status = await vpn_manager.get_status()

        assert status.is_running is False
        assert "Failed to connect to bus" in status.error

    def test_uptime_seconds(self):
        from datetime import datetime

        now = datetime(2026, 10, 17, 9, 14, 44)
        assert ServiceController.uptime_seconds("Sat 2026-10-17 09:12:44 UTC", now) == 120
        assert ServiceController.uptime_seconds("n/a", now) == 0
        assert ServiceController.uptime_seconds(None, now) == 0

    @pytest.mark.asyncio
    async def test_start_emits_on_success(self, vpn_manager, runner, sink):
        result = await vpn_manager.start()

        assert result.success is True
        assert runner.called("systemctl", "start", "wg-quick@wg0")
        assert sink.events == [(EventTypes.VPN_STATUS_CHANGED, {"isRunning": True}, Rooms.VPN)]

    @pytest.mark.asyncio
    async def test_stop_failure_is_structured(self, vpn_manager, runner, sink):
        runner.on("systemctl", "stop", stderr="Access denied", exit_code=4)

        result = await vpn_manager.stop()

        assert result.success is False
        assert "Access denied" in result.error
        assert sink.events == []

    @pytest.mark.asyncio
    async def test_restart(self, vpn_manager, runner, sink):
        result = await vpn_manager.restart()

        assert result.success is True
        assert runner.called("systemctl", "restart", "wg-quick@wg0")
        assert sink.of_type(EventTypes.VPN_STATUS_CHANGED) == [{"isRunning": True}]


class TestServerConfig:
    """Tests for get_config / update_config"""

    @pytest.mark.asyncio
    async def test_missing_config_is_none(self, vpn_manager):
        assert await vpn_manager.get_config() is None

    @pytest.mark.asyncio
    async def test_update_writes_files_and_cycles_interface(self, vpn_manager, runner, settings, sink):
        runner.on("wg-quick", "down", stderr="wg0 is not a WireGuard interface", exit_code=1)

        result = await vpn_manager.update_config({
            "privateKey": "SERVER_PRIVATE_KEY=",
            "publicKey": "SERVER_PUBLIC_KEY=",
            "endpoint": "vpn.example.com",
            "port": 51821,
        })

        assert result.success is True
        assert [c.argv[:2] for c in runner.called("wg-quick")] == [("wg-quick", "down"), ("wg-quick", "up")]

        stored = json.loads(settings.VPN_CONFIG_FILE.read_text())
        assert stored["port"] == 51821
        assert stored["createdAt"] is not None

        interface_file = settings.WG_CONFIG_DIR / "wg0.conf"
        assert "ListenPort = 51821" in interface_file.read_text()

        (payload,) = sink.of_type(EventTypes.VPN_CONFIG_CHANGED)
        assert "privateKey" not in payload
        assert payload["publicKey"] == "SERVER_PUBLIC_KEY="

    @pytest.mark.asyncio
    async def test_update_keeps_created_at(self, vpn_manager, server_config):
        first = await vpn_manager.update_config(server_config.model_dump())
        created = (await vpn_manager.get_config()).created_at

        await vpn_manager.update_config(server_config.model_copy(update={"port": 51900}))
        config = await vpn_manager.get_config()

        assert first.success
        assert config.created_at == created
        assert config.port == 51900

    @pytest.mark.asyncio
    async def test_update_reports_interface_up_failure(self, vpn_manager, runner, server_config, sink):
        runner.on("wg-quick", "up", stderr="RTNETLINK answers: Operation not permitted", exit_code=1)

        result = await vpn_manager.update_config(server_config)

        assert result.success is False
        assert "Operation not permitted" in result.error
        assert sink.of_type(EventTypes.VPN_CONFIG_CHANGED) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("server_ip", ["vpn.example.com", "10.0.0", "fd00::1"])
    async def test_invalid_server_ip_rejected(self, vpn_manager, settings, server_ip):
        with pytest.raises(ValidationError):
            await vpn_manager.update_config({
                "privateKey": "SERVER_PRIVATE_KEY=",
                "publicKey": "SERVER_PUBLIC_KEY=",
                "endpoint": "vpn.example.com",
                "serverIp": server_ip,
            })

        assert not settings.VPN_CONFIG_FILE.exists()

    @pytest.mark.asyncio
    async def test_corrupt_config_raises(self, vpn_manager, settings):
        settings.VPN_CONFIG_FILE.parent.mkdir(parents=True)
        settings.VPN_CONFIG_FILE.write_text("{not json")

        with pytest.raises(PersistenceError):
            await vpn_manager.get_config()


class TestGenerateClient:
    """Tests for generate_client_config"""

    @pytest.mark.asyncio
    async def test_mobile_routes_everything(self, vpn_manager, server_config):
        generated = await vpn_manager.generate_client_config("alice", "mobile")

        assert generated.client_config.allowed_ips == "0.0.0.0/0"
        assert "AllowedIPs = 0.0.0.0/0" in generated.wg_config

    @pytest.mark.asyncio
    async def test_lan_routes_server_subnet(self, vpn_manager, server_config):
        generated = await vpn_manager.generate_client_config("printer", "lan")

        assert generated.client_config.allowed_ips == "10.0.0.0/24"

    @pytest.mark.asyncio
    async def test_rendered_template(self, vpn_manager, server_config):
        generated = await vpn_manager.generate_client_config("alice")
        config = generated.wg_config

        assert "PrivateKey = PRIVATE_KEY_1=" in config
        assert "Address = 10.0.0.2/24" in config
        assert "DNS = 8.8.8.8" in config
        assert "PublicKey = SERVER_PUBLIC_KEY=" in config
        assert "PresharedKey = PRESHARED_KEY=" in config
        assert "Endpoint = vpn.example.com:51820" in config
        assert "PersistentKeepalive = 25" in config

    @pytest.mark.asyncio
    async def test_artifacts_written(self, vpn_manager, server_config, settings):
        generated = await vpn_manager.generate_client_config("alice")

        descriptor = json.loads((settings.CLIENTS_DIR / "alice.json").read_text())
        assert descriptor["clientName"] == "alice"
        assert descriptor["publicKey"] == "PUBLIC_FOR_PRIVATE_KEY_1="
        assert (settings.CLIENTS_DIR / "alice.conf").read_text() == generated.wg_config
        assert generated.download_url == "/api/vpn/clients/alice/download"
        assert generated.qr_code.startswith("data:image/png;base64,")

    @pytest.mark.asyncio
    async def test_addresses_are_allocated_in_order(self, vpn_manager, server_config):
        first = await vpn_manager.generate_client_config("alice")
        second = await vpn_manager.generate_client_config("bob")

        assert first.client_config.address == "10.0.0.2/24"
        assert second.client_config.address == "10.0.0.3/24"

    @pytest.mark.asyncio
    async def test_live_peer_added(self, vpn_manager, server_config, runner):
        await vpn_manager.generate_client_config("alice")

        (call,) = runner.called("wg", "set")
        assert call.args[:4] == ("set", "wg0", "peer", "PUBLIC_FOR_PRIVATE_KEY_1=")
        assert "10.0.0.2/32" in call.args
        assert call.input == "PRESHARED_KEY="

    @pytest.mark.asyncio
    async def test_live_peer_failure_tolerated(self, vpn_manager, server_config, runner):
        runner.on("wg", "set", stderr="Unable to access interface", exit_code=1)

        generated = await vpn_manager.generate_client_config("alice")

        assert generated.client_config.client_name == "alice"

    @pytest.mark.asyncio
    async def test_qr_failure_tolerated(self, vpn_manager, server_config):
        with patch("vpnhub.wireguard.manager.render_qr_data_url", side_effect=RuntimeError("no PIL")):
            generated = await vpn_manager.generate_client_config("alice")

        assert generated.qr_code is None

    @pytest.mark.asyncio
    async def test_existing_client_rejected(self, vpn_manager, server_config):
        await vpn_manager.generate_client_config("alice")

        with pytest.raises(ClientExistsError):
            await vpn_manager.generate_client_config("alice")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["", "../etc/passwd", "a/b", ".hidden"])
    async def test_invalid_name_rejected(self, vpn_manager, server_config, name):
        with pytest.raises(InvalidClientNameError):
            await vpn_manager.generate_client_config(name)

    @pytest.mark.asyncio
    async def test_requires_server_config(self, vpn_manager):
        with pytest.raises(ServerConfigMissingError):
            await vpn_manager.generate_client_config("alice")

    @pytest.mark.asyncio
    async def test_config_write_failure_leaves_no_descriptor(self, vpn_manager, server_config, settings):
        from vpnhub.wireguard import manager as manager_module

        def fail_on_conf(path, content, mode=None):
            raise PersistenceError(path, OSError("disk full"))

        with patch.object(manager_module, "write_text_atomic", side_effect=fail_on_conf):
            with pytest.raises(PersistenceError):
                await vpn_manager.generate_client_config("alice")

        assert not (settings.CLIENTS_DIR / "alice.json").exists()
        assert not (settings.CLIENTS_DIR / "alice.conf").exists()

    @pytest.mark.asyncio
    async def test_interface_file_refreshed_when_present(self, vpn_manager, server_config, settings):
        await vpn_manager.update_config(server_config)
        await vpn_manager.generate_client_config("alice")

        content = (settings.WG_CONFIG_DIR / "wg0.conf").read_text()
        assert "PublicKey = PUBLIC_FOR_PRIVATE_KEY_1=" in content
        assert "AllowedIPs = 10.0.0.2/32" in content

    @pytest.mark.asyncio
    async def test_concurrent_clients_get_distinct_addresses(self, vpn_manager, server_config, runner):
        async def slow_genpsk(call):
            await asyncio.sleep(0)
            return "PRESHARED_KEY=\n"

        runner.on("wg", "genpsk", handler=slow_genpsk)

        generated = await asyncio.gather(*(vpn_manager.generate_client_config(f"client{n}") for n in range(5)))

        addresses = [g.client_config.address for g in generated]
        assert len(set(addresses)) == 5
        assert {c.client_name for c in await vpn_manager.list_clients()} == {f"client{n}" for n in range(5)}

    @pytest.mark.asyncio
    async def test_concurrent_same_name_issued_once(self, vpn_manager, server_config, runner, settings):
        async def slow_genpsk(call):
            await asyncio.sleep(0)
            return "PRESHARED_KEY=\n"

        runner.on("wg", "genpsk", handler=slow_genpsk)

        results = await asyncio.gather(
            vpn_manager.generate_client_config("alice"),
            vpn_manager.generate_client_config("alice"),
            return_exceptions=True,
        )

        assert sum(isinstance(r, ClientExistsError) for r in results) == 1
        (issued,) = [r for r in results if not isinstance(r, Exception)]
        descriptor = json.loads((settings.CLIENTS_DIR / "alice.json").read_text())
        assert descriptor["publicKey"] == issued.client_config.public_key


class TestRevokeClient:
    """Tests for revoke_client"""

    @pytest.mark.asyncio
    async def test_no_files_is_success(self, vpn_manager, runner):
        result = await vpn_manager.revoke_client("ghost")

        assert result.success is True
        assert runner.called("wg", "set") == []

    @pytest.mark.asyncio
    async def test_removes_files_and_live_peer(self, vpn_manager, server_config, settings, runner):
        await vpn_manager.generate_client_config("alice")

        result = await vpn_manager.revoke_client("alice")

        assert result.success is True
        assert not (settings.CLIENTS_DIR / "alice.json").exists()
        assert not (settings.CLIENTS_DIR / "alice.conf").exists()
        assert runner.called("wg", "set", "wg0", "peer", "PUBLIC_FOR_PRIVATE_KEY_1=", "remove")

    @pytest.mark.asyncio
    async def test_live_removal_failure_still_success(self, vpn_manager, server_config, runner):
        await vpn_manager.generate_client_config("alice")
        runner.on("wg", "set", stderr="No such device", exit_code=1)

        result = await vpn_manager.revoke_client("alice")

        assert result.success is True

    @pytest.mark.asyncio
    async def test_half_present_pair_removed(self, vpn_manager, settings):
        settings.CLIENTS_DIR.mkdir(parents=True)
        (settings.CLIENTS_DIR / "orphan.conf").write_text("[Interface]\n")

        result = await vpn_manager.revoke_client("orphan")

        assert result.success is True
        assert not (settings.CLIENTS_DIR / "orphan.conf").exists()

    @pytest.mark.asyncio
    async def test_invalid_name(self, vpn_manager):
        result = await vpn_manager.revoke_client("../vpn")

        assert result.success is False


class TestClientQueries:
    """Tests for list_clients, get_client and audit_clients"""

    @pytest.mark.asyncio
    async def test_list_and_get(self, vpn_manager, server_config):
        await vpn_manager.generate_client_config("alice")
        await vpn_manager.generate_client_config("bob", "lan")

        clients = await vpn_manager.list_clients()
        bob = await vpn_manager.get_client("bob")

        assert [c.client_name for c in clients] == ["alice", "bob"]
        assert bob.client_type == "lan"
        assert await vpn_manager.get_client("carol") is None

    @pytest.mark.asyncio
    async def test_audit_reports_mismatches(self, vpn_manager, server_config, settings):
        await vpn_manager.generate_client_config("alice")
        (settings.CLIENTS_DIR / "stray.conf").write_text("[Interface]\n")
        (settings.CLIENTS_DIR / "half.json").write_text("{}")

        audit = await vpn_manager.audit_clients()

        assert audit.consistent == ["alice"]
        assert audit.missing_descriptor == ["stray"]
        assert audit.missing_config == ["half"]
        assert not audit.is_clean

    @pytest.mark.asyncio
    async def test_corrupt_pair_raises(self, vpn_manager, settings):
        settings.CLIENTS_DIR.mkdir(parents=True)
        (settings.CLIENTS_DIR / "stray.conf").write_text("[Interface]\n")

        with pytest.raises(CorruptClientError):
            await vpn_manager.get_client("stray")

    @pytest.mark.asyncio
    async def test_config_file_path(self, vpn_manager, server_config, settings):
        await vpn_manager.generate_client_config("alice")

        assert await vpn_manager.get_client_config_file("alice") == settings.CLIENTS_DIR / "alice.conf"
        assert await vpn_manager.get_client_config_file("bob") is None


class TestLiveState:
    """Tests for connected clients, statistics and logs"""

    @pytest.mark.asyncio
    async def test_connected_clients_replace_cache(self, vpn_manager, runner):
        runner.on("wg", "show", stdout=WG_SHOW_OUTPUT)
        await vpn_manager.get_connected_clients()

        runner.on("wg", "show", stdout="peer: PEER_THREE=\n")
        clients = await vpn_manager.get_connected_clients()

        assert [c.public_key for c in clients] == ["PEER_THREE="]
        assert [c.public_key for c in vpn_manager.connected_clients] == ["PEER_THREE="]

    @pytest.mark.asyncio
    async def test_connected_clients_failure_is_empty(self, vpn_manager, runner):
        runner.on("wg", "show", stderr="Unable to access interface", exit_code=1)

        assert await vpn_manager.get_connected_clients() == []

    @pytest.mark.asyncio
    async def test_statistics(self, vpn_manager, runner):
        runner.on("wg", "show", stdout=WG_SHOW_OUTPUT)

        stats = await vpn_manager.get_statistics()

        assert stats.total_clients == 2
        assert stats.active_clients == 1
        assert stats.total_bytes_received == 1024 + 3
        assert stats.total_bytes_sent == 2048 + 4

    @pytest.mark.asyncio
    async def test_statistics_zero_on_failure(self, vpn_manager, runner):
        runner.on("wg", "show", exit_code=1)

        stats = await vpn_manager.get_statistics()

        assert stats.total_clients == 0
        assert stats.total_bytes_received == 0

    @pytest.mark.asyncio
    async def test_logs(self, vpn_manager, runner):
        runner.on("journalctl", stdout=JOURNAL_OUTPUT)

        entries = await vpn_manager.get_logs(limit=50, level="error")

        assert len(entries) == 2
        assert entries[0].timestamp == "2026-10-17T09:12:44+0000"
        assert entries[0].message == "[#] ip link add wg0 type wireguard"
        assert entries[1].message == "Started WireGuard via wg-quick(8) for wg0."
        assert all(e.level == "info" for e in entries)

        (call,) = runner.called("journalctl")
        assert ("-n", "50") == call.args[2:4]

    @pytest.mark.asyncio
    async def test_logs_failure_is_empty(self, vpn_manager, runner):
        runner.on("journalctl", exit_code=1)

        assert await vpn_manager.get_logs() == []
