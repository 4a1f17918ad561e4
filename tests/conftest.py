# tests/conftest.py
"""
Pytest fixtures for vpnhub tests
Scripted command runner, recording event sink and tmp_path settings
"""

import inspect
from dataclasses import dataclass
from typing import Any, Callable, Optional

import pytest

from vpnhub.command_runner import CommandResult, CommandRunner
from vpnhub.config import Settings
from vpnhub.devices import DeviceManager
from vpnhub.storage import write_json_atomic
from vpnhub.wireguard import VPNManager
from vpnhub.wireguard.models import ServerConfig


# ============================================
# Fake command runner
# ============================================

@dataclass
class Call:
    program: str
    args: tuple
    input: Optional[str]
    timeout: Optional[float]
    privileged: bool

    @property
    def argv(self) -> tuple:
        return (self.program, *self.args)


class FakeRunner(CommandRunner):
    """
    CommandRunner that never spawns processes

    Responses are matched by argv prefix, most recently scripted first.
    Unscripted commands succeed with empty output. run() keeps the real
    raise-on-failure behaviour since it is built on try_run().
    """

    def __init__(self):
        super().__init__(use_sudo=False)
        self.calls: list[Call] = []
        self._responses: list[list] = []

    def on(
        self,
        *prefix: str,
        stdout: str = "",
        stderr: str = "",
        exit_code: Optional[int] = 0,
        times: Optional[int] = None,
        handler: Optional[Callable[[Call], Any]] = None,
    ) -> "FakeRunner":
        """
        Script the result for commands whose argv starts with prefix

        handler may return a CommandResult or stdout, or a coroutine of one.
        """
        self._responses.insert(0, [tuple(prefix), stdout, stderr, exit_code, times, handler])
        return self

    async def try_run(self, program, args=(), *, input=None, timeout=None, privileged=False):
        call = Call(program, tuple(args), input, timeout, privileged)
        self.calls.append(call)

        for response in self._responses:
            prefix, stdout, stderr, exit_code, times, handler = response
            if call.argv[:len(prefix)] != prefix or times == 0:
                continue
            if times is not None:
                response[4] = times - 1
            if handler is not None:
                result = handler(call)
                if inspect.isawaitable(result):
                    result = await result
                if isinstance(result, str):
                    return CommandResult(program, call.args, result, "", 0)
                return result
            return CommandResult(program, call.args, stdout, stderr, exit_code)

        return CommandResult(program, call.args, "", "", 0)

    def called(self, *prefix: str) -> list[Call]:
        """Calls whose argv starts with prefix"""
        return [c for c in self.calls if c.argv[:len(prefix)] == tuple(prefix)]


class RecordingSink:
    """Notification sink that keeps every emitted event"""

    def __init__(self):
        self.events: list[tuple] = []

    def emit(self, event_type, payload, room=None):
        self.events.append((event_type, payload, room))

    def of_type(self, event_type: str) -> list:
        return [payload for name, payload, _ in self.events if name == event_type]


# ============================================
# Shared fixtures
# ============================================

@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        DATA_DIR=tmp_path / "data",
        CONFIG_DIR=tmp_path / "config",
        WG_CONFIG_DIR=tmp_path / "wireguard",
        ADMIN_TOKEN="test-token",
    )


@pytest.fixture
def server_config(settings):
    """Write a server configuration and return it"""
    config = ServerConfig(
        private_key="SERVER_PRIVATE_KEY=",
        public_key="SERVER_PUBLIC_KEY=",
        server_ip="10.0.0.1",
        port=51820,
        endpoint="vpn.example.com",
    )
    write_json_atomic(settings.VPN_CONFIG_FILE, config.to_json_dict())
    return config


@pytest.fixture
def key_runner(runner):
    """Runner whose wg key commands return distinct keys per call"""
    counter = {"n": 0}

    def genkey(call):
        counter["n"] += 1
        return f"PRIVATE_KEY_{counter['n']}=\n"

    def pubkey(call):
        return f"PUBLIC_FOR_{call.input}\n"

    runner.on("wg", "genkey", handler=genkey)
    runner.on("wg", "pubkey", handler=pubkey)
    runner.on("wg", "genpsk", stdout="PRESHARED_KEY=\n")
    return runner


@pytest.fixture
def vpn_manager(settings, key_runner, sink):
    return VPNManager.from_settings(settings, key_runner, sink)


@pytest.fixture
def device_manager(settings, runner, sink):
    return DeviceManager.from_settings(settings, runner, sink)
