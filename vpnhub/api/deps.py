# vpnhub/api/deps.py
"""
Request dependencies: admin authentication and manager lookup
"""

import logging
from typing import Optional

from fastapi import Header, HTTPException, Request, status

from ..devices import DeviceManager
from ..wireguard import VPNManager

logger = logging.getLogger('vpnhub.api')


# === Authentication Dependency ===

async def verify_admin_token(
    request: Request,
    x_admin_token: Optional[str] = Header(None, alias="X-Admin-Token"),
) -> bool:
    """
    Verify admin authentication token

    The expected token comes from the app settings (VPNHUB_ADMIN_TOKEN).
    """
    if x_admin_token is None or x_admin_token != request.app.state.settings.ADMIN_TOKEN:
        logger.warning(f"Invalid admin token attempt from {request.client.host if request.client else 'unknown'}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error": "Invalid or missing admin token",
                "error_code": "UNAUTHORIZED"
            },
            headers={"WWW-Authenticate": "Bearer"}
        )
    return True


# === Managers ===

def get_vpn_manager(request: Request) -> VPNManager:
    return request.app.state.vpn_manager


def get_device_manager(request: Request) -> DeviceManager:
    return request.app.state.device_manager


def not_found(message: str, error_code: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={"error": message, "error_code": error_code},
    )
