"""
Device snapshot store

The whole inventory is one JSON array of devices. Every save writes
the full snapshot.
"""

import logging
from pathlib import Path
from typing import Iterable, Union

from pydantic import ValidationError

from ..errors import PersistenceError
from ..storage import read_json, write_json_atomic
from .models import Device

logger = logging.getLogger('vpnhub.devices.store')


class DeviceStore:

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> dict[str, Device]:
        """
        Read the snapshot into an id -> Device map

        A missing file is an empty inventory.

        Raises:
            PersistenceError: file unreadable or not a list of devices
        """
        try:
            data = read_json(self.path)
        except FileNotFoundError:
            logger.warning(f"No devices file at {self.path}, starting with empty device list")
            return {}

        if not isinstance(data, list):
            raise PersistenceError(self.path, ValueError("expected a JSON array of devices"))

        try:
            devices = [Device.model_validate(item) for item in data]
        except ValidationError as e:
            raise PersistenceError(self.path, e) from e

        logger.info(f"Loaded {len(devices)} devices from {self.path}")
        return {device.id: device for device in devices}

    def save(self, devices: Iterable[Device]) -> None:
        write_json_atomic(self.path, [device.to_json_dict() for device in devices])
