"""
Error types shared by the managers

Lookups that find nothing return None/False instead of raising.
Parsers never raise; malformed output degrades to zero/empty values.
"""

from .command_runner import CommandTimeout, ExecutionError

__all__ = [
    "VPNHubError",
    "ExecutionError",
    "CommandTimeout",
    "PersistenceError",
    "ClientExistsError",
    "InvalidClientNameError",
    "ServerConfigMissingError",
    "CorruptClientError",
    "DeviceExistsError",
]


class VPNHubError(Exception):
    """Base class for manager errors"""


class PersistenceError(VPNHubError):
    """A persisted file could not be read or written"""

    def __init__(self, path, cause: Exception):
        self.path = path
        self.cause = cause
        super().__init__(f"{path}: {cause}")


class ClientExistsError(VPNHubError):
    """Keys for this client identity were already issued"""


class InvalidClientNameError(VPNHubError, ValueError):
    """Client name cannot be used as a file name"""


class ServerConfigMissingError(VPNHubError):
    """Server VPN configuration has not been written yet"""


class CorruptClientError(VPNHubError):
    """Only one of a client's descriptor/config pair exists"""

    def __init__(self, client_name: str, missing: str):
        self.client_name = client_name
        self.missing = missing
        super().__init__(f"Client {client_name} is missing its {missing}")


class DeviceExistsError(VPNHubError, ValueError):
    """Another device already uses this MAC address"""
