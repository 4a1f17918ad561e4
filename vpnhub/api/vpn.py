# vpnhub/api/vpn.py
"""
VPN API Endpoints
Service control, server configuration and client issuance
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Query, status
from fastapi.responses import FileResponse, JSONResponse

from ..wireguard import VPNManager
from ..wireguard.models import OperationResult
from .deps import get_vpn_manager, not_found
from .schemas import ErrorResponse, GenerateClientRequest

logger = logging.getLogger('vpnhub.api.vpn')

router = APIRouter(tags=["VPN"])


def _operation_response(result: OperationResult, failure_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR):
    return JSONResponse(
        status_code=status.HTTP_200_OK if result.success else failure_status,
        content=result.to_json_dict(),
    )


# === Service ===

@router.get("/status", summary="VPN service status")
async def get_status(vpn: VPNManager = Depends(get_vpn_manager)):
    return (await vpn.get_status()).to_json_dict()


@router.post("/start", summary="Start the VPN service")
async def start_vpn(vpn: VPNManager = Depends(get_vpn_manager)):
    return _operation_response(await vpn.start())


@router.post("/stop", summary="Stop the VPN service")
async def stop_vpn(vpn: VPNManager = Depends(get_vpn_manager)):
    return _operation_response(await vpn.stop())


@router.post("/restart", summary="Restart the VPN service")
async def restart_vpn(vpn: VPNManager = Depends(get_vpn_manager)):
    return _operation_response(await vpn.restart())


# === Server configuration ===

@router.get(
    "/config",
    responses={404: {"description": "Server not configured", "model": ErrorResponse}},
    summary="Server configuration without key material",
)
async def get_config(vpn: VPNManager = Depends(get_vpn_manager)):
    config = await vpn.get_config()
    if config is None:
        raise not_found("VPN configuration not found", "CONFIG_NOT_FOUND")
    return config.public_view()


@router.put("/config", summary="Replace server configuration and reload the interface")
async def update_config(
    new_config: Dict[str, Any] = Body(...),
    vpn: VPNManager = Depends(get_vpn_manager),
):
    return _operation_response(await vpn.update_config(new_config))


# === Clients ===

@router.get("/clients", summary="List issued clients")
async def list_clients(vpn: VPNManager = Depends(get_vpn_manager)):
    return [client.public_view() for client in await vpn.list_clients()]


@router.get("/clients/audit", summary="Descriptor/config pairing report")
async def audit_clients(vpn: VPNManager = Depends(get_vpn_manager)):
    return (await vpn.audit_clients()).to_json_dict()


@router.post("/clients/generate", status_code=status.HTTP_201_CREATED, summary="Issue a new client")
async def generate_client(
    request: GenerateClientRequest,
    vpn: VPNManager = Depends(get_vpn_manager),
):
    generated = await vpn.generate_client_config(request.client_name, request.client_type)
    logger.info(f"Issued client {request.client_name} ({request.client_type})")
    return generated.to_json_dict()


@router.get(
    "/clients/{client_id}",
    responses={404: {"description": "Client not found", "model": ErrorResponse}},
    summary="Get one issued client",
)
async def get_client(client_id: str, vpn: VPNManager = Depends(get_vpn_manager)):
    client = await vpn.get_client(client_id)
    if client is None:
        raise not_found(f"Client {client_id} not found", "CLIENT_NOT_FOUND")
    return client.public_view()


@router.delete("/clients/{client_id}", summary="Revoke a client")
async def revoke_client(client_id: str, vpn: VPNManager = Depends(get_vpn_manager)):
    return _operation_response(await vpn.revoke_client(client_id), status.HTTP_400_BAD_REQUEST)


@router.get(
    "/clients/{client_id}/download",
    responses={404: {"description": "Client not found", "model": ErrorResponse}},
    summary="Download a client's wg-quick config",
)
async def download_client_config(client_id: str, vpn: VPNManager = Depends(get_vpn_manager)):
    path = await vpn.get_client_config_file(client_id)
    if path is None:
        raise not_found(f"Client {client_id} not found", "CLIENT_NOT_FOUND")
    return FileResponse(path, media_type="text/plain", filename=f"{client_id}.conf")


# === Live state ===

@router.get("/connected", summary="Peers on the live interface")
async def connected_clients(vpn: VPNManager = Depends(get_vpn_manager)):
    return [peer.to_json_dict() for peer in await vpn.get_connected_clients()]


@router.get("/logs", summary="Recent service journal entries")
async def get_logs(
    limit: int = Query(100, ge=1, le=1000),
    level: str = Query("all"),
    vpn: VPNManager = Depends(get_vpn_manager),
):
    return [entry.to_json_dict() for entry in await vpn.get_logs(limit, level)]


@router.get("/stats", summary="Aggregate peer counters")
async def get_statistics(vpn: VPNManager = Depends(get_vpn_manager)):
    return (await vpn.get_statistics()).to_json_dict()
