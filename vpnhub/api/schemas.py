# vpnhub/api/schemas.py
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, Field

from ..schemas import CamelModel
from ..wireguard.models import MOBILE_CLIENT_TYPE

T = TypeVar("T")


# --- Requests ---

class GenerateClientRequest(CamelModel):
    client_name: str = Field(..., min_length=1, max_length=64)
    client_type: str = MOBILE_CLIENT_TYPE


class BlockDeviceRequest(CamelModel):
    blocked: bool


# --- Responses ---

class ErrorResponse(BaseModel):
    error: str
    error_code: str


class BaseResponse(BaseModel, Generic[T]):
    success: bool = True
    message: Optional[str] = None
    data: Optional[T] = None
