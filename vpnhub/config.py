# vpnhub/config.py
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="VPNHUB_", env_file=".env", extra="ignore")

    # Storage
    DATA_DIR: Path = Path("./data")
    DEVICES_FILE: Optional[Path] = None
    CONFIG_DIR: Path = Path("./config")
    VPN_CONFIG_FILE: Optional[Path] = None
    CLIENTS_DIR: Optional[Path] = None

    # WireGuard
    WG_INTERFACE: str = "wg0"
    WG_CONFIG_DIR: Path = Path("/etc/wireguard")
    WG_SERVICE: str = "wg-quick@wg0"
    DEFAULT_DNS: str = "8.8.8.8"
    PERSISTENT_KEEPALIVE: int = 25

    # External tools
    USE_SUDO: bool = False
    SCAN_COMMAND: str = "arp-scan -l"
    PING_TIMEOUT: float = 2.0

    # HTTP collaborator
    HOST: str = "0.0.0.0"
    PORT: int = 3001
    ADMIN_TOKEN: str = "change-me-admin-token"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[Path] = None

    @model_validator(mode="after")
    def _derive_paths(self) -> "Settings":
        # Paths left unset follow DATA_DIR / CONFIG_DIR
        if self.DEVICES_FILE is None:
            self.DEVICES_FILE = self.DATA_DIR / "devices.json"
        if self.VPN_CONFIG_FILE is None:
            self.VPN_CONFIG_FILE = self.CONFIG_DIR / "vpn.json"
        if self.CLIENTS_DIR is None:
            self.CLIENTS_DIR = self.CONFIG_DIR / "clients"
        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()
