# vpnhub/api/app.py
"""
FastAPI application factory

Wires one VPNManager, one DeviceManager and the WebSocket notifier
around a shared event bus, and maps manager errors to HTTP status codes.
"""

import logging
from typing import Optional

from fastapi import Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .. import __version__
from ..command_runner import CommandRunner, ExecutionError
from ..config import Settings, get_settings
from ..devices import DeviceManager
from ..errors import (
    ClientExistsError,
    CorruptClientError,
    DeviceExistsError,
    InvalidClientNameError,
    PersistenceError,
    ServerConfigMissingError,
    VPNHubError,
)
from ..events import EventBus
from ..wireguard import VPNManager
from .deps import verify_admin_token
from .devices import router as devices_router
from .vpn import router as vpn_router
from .websocket import WebSocketNotifier, router as websocket_router

logger = logging.getLogger('vpnhub.api')


def _error(status_code: int, error: str, error_code: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": {"error": error, "error_code": error_code}},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Map manager errors to responses; most specific class wins"""

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, str(exc), "VALIDATION_ERROR")

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return _error(status.HTTP_400_BAD_REQUEST, str(exc), "BAD_REQUEST")

    @app.exception_handler(InvalidClientNameError)
    async def invalid_client_name_handler(request: Request, exc: InvalidClientNameError):
        return _error(status.HTTP_400_BAD_REQUEST, str(exc), "INVALID_CLIENT_NAME")

    @app.exception_handler(ClientExistsError)
    async def client_exists_handler(request: Request, exc: ClientExistsError):
        return _error(status.HTTP_409_CONFLICT, str(exc), "CLIENT_EXISTS")

    @app.exception_handler(DeviceExistsError)
    async def device_exists_handler(request: Request, exc: DeviceExistsError):
        return _error(status.HTTP_409_CONFLICT, str(exc), "DEVICE_EXISTS")

    @app.exception_handler(ServerConfigMissingError)
    async def config_missing_handler(request: Request, exc: ServerConfigMissingError):
        return _error(status.HTTP_404_NOT_FOUND, str(exc), "CONFIG_NOT_FOUND")

    @app.exception_handler(CorruptClientError)
    async def corrupt_client_handler(request: Request, exc: CorruptClientError):
        logger.error(f"Corrupt client artifacts: {exc}")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc), "CLIENT_CORRUPT")

    @app.exception_handler(PersistenceError)
    async def persistence_error_handler(request: Request, exc: PersistenceError):
        logger.error(f"Persistence failure on {request.url.path}: {exc}")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc), "PERSISTENCE_ERROR")

    @app.exception_handler(ExecutionError)
    async def execution_error_handler(request: Request, exc: ExecutionError):
        logger.error(f"External tool failure on {request.url.path}: {exc}")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc), "EXECUTION_ERROR")

    @app.exception_handler(VPNHubError)
    async def vpnhub_error_handler(request: Request, exc: VPNHubError):
        logger.error(f"Unhandled error on {request.url.path}: {exc}")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc), "INTERNAL_ERROR")


def create_app(settings: Optional[Settings] = None, runner: Optional[CommandRunner] = None) -> FastAPI:
    """
    Build the API application

    Args:
        settings: Settings instance (defaults to get_settings())
        runner: Command runner (defaults to a real CommandRunner)

    Returns:
        Configured FastAPI app
    """
    settings = settings or get_settings()
    runner = runner or CommandRunner(use_sudo=settings.USE_SUDO)

    event_bus = EventBus()
    notifier = WebSocketNotifier()
    notifier.attach(event_bus)

    app = FastAPI(title="VPN Hub", version=__version__)

    app.state.settings = settings
    app.state.event_bus = event_bus
    app.state.notifier = notifier
    app.state.vpn_manager = VPNManager.from_settings(settings, runner, event_bus)
    app.state.device_manager = DeviceManager.from_settings(settings, runner, event_bus)

    register_exception_handlers(app)

    admin = [Depends(verify_admin_token)]
    app.include_router(vpn_router, prefix="/api/vpn", dependencies=admin)
    app.include_router(devices_router, prefix="/api/devices", dependencies=admin)
    app.include_router(websocket_router)

    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": "vpnhub", "version": __version__}

    logger.info(f"API ready (vpn config: {settings.VPN_CONFIG_FILE}, devices: {settings.DEVICES_FILE})")
    return app
