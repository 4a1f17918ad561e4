# vpnhub/api/devices.py
"""
Device API Endpoints
LAN inventory CRUD, scans, blocking and live probes
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Query, status

from ..devices import DeviceManager
from .deps import get_device_manager, not_found
from .schemas import BaseResponse, BlockDeviceRequest, ErrorResponse

logger = logging.getLogger('vpnhub.api.devices')

router = APIRouter(tags=["Devices"])

NOT_FOUND_RESPONSE = {404: {"description": "Device not found", "model": ErrorResponse}}


def _device_not_found(device_id: str):
    return not_found(f"Device with id {device_id} not found", "DEVICE_NOT_FOUND")


@router.get("", summary="List all devices")
async def list_devices(devices: DeviceManager = Depends(get_device_manager)):
    return [device.to_json_dict() for device in await devices.get_all_devices()]


@router.post("", status_code=status.HTTP_201_CREATED, summary="Add a device")
async def add_device(
    device_data: Dict[str, Any] = Body(...),
    devices: DeviceManager = Depends(get_device_manager),
):
    return (await devices.add_device(device_data)).to_json_dict()


# Registered before /{device_id} so "scan" is never taken for an id
@router.post("/scan", summary="Scan the network for new devices")
async def scan_devices(devices: DeviceManager = Depends(get_device_manager)):
    new_devices = await devices.scan_for_devices()
    return {
        "newDevices": [device.to_json_dict() for device in new_devices],
        "count": len(new_devices),
    }


@router.get("/{device_id}", responses=NOT_FOUND_RESPONSE, summary="Get device by ID")
async def get_device(device_id: str, devices: DeviceManager = Depends(get_device_manager)):
    device = await devices.get_device(device_id)
    if device is None:
        raise _device_not_found(device_id)
    return device.to_json_dict()


@router.put("/{device_id}", responses=NOT_FOUND_RESPONSE, summary="Update device fields")
async def update_device(
    device_id: str,
    update_data: Dict[str, Any] = Body(...),
    devices: DeviceManager = Depends(get_device_manager),
):
    device = await devices.update_device(device_id, update_data)
    if device is None:
        raise _device_not_found(device_id)
    return device.to_json_dict()


@router.delete("/{device_id}", responses=NOT_FOUND_RESPONSE, summary="Delete a device")
async def delete_device(device_id: str, devices: DeviceManager = Depends(get_device_manager)):
    if not await devices.delete_device(device_id):
        raise _device_not_found(device_id)

    logger.info(f"Deleted device {device_id} via API")
    return BaseResponse(message=f"Device {device_id} deleted")


@router.get("/{device_id}/status", responses=NOT_FOUND_RESPONSE, summary="Ping a device")
async def get_device_status(device_id: str, devices: DeviceManager = Depends(get_device_manager)):
    device_status = await devices.get_device_status(device_id)
    if device_status is None:
        raise _device_not_found(device_id)
    return device_status.to_json_dict()


@router.post("/{device_id}/block", responses=NOT_FOUND_RESPONSE, summary="Block or unblock a device")
async def block_device(
    device_id: str,
    request: BlockDeviceRequest,
    devices: DeviceManager = Depends(get_device_manager),
):
    device = await devices.block_device(device_id, request.blocked)
    if device is None:
        raise _device_not_found(device_id)
    return device.to_json_dict()


@router.get("/{device_id}/traffic", responses=NOT_FOUND_RESPONSE, summary="Device traffic counters")
async def get_device_traffic(
    device_id: str,
    period: str = Query("24h"),
    devices: DeviceManager = Depends(get_device_manager),
):
    traffic = await devices.get_device_traffic(device_id, period)
    if traffic is None:
        raise _device_not_found(device_id)
    return traffic.to_json_dict()
