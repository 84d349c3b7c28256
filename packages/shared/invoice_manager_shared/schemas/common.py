from enum import Enum
from typing import Optional

from pydantic import BaseModel


class Role(str, Enum):
    OWNER = "owner"
    EMPLOYEE = "employee"


class Currency(str, Enum):
    EUR = "EUR"
    BAM = "BAM"
    RSD = "RSD"
    HRK = "HRK"
    USD = "USD"


DEFAULT_CURRENCY = Currency.EUR


class APIError(BaseModel):
    code: str
    message: str
    status: int


class APIResponse(BaseModel):
    data: Optional[object] = None
    error: Optional[APIError] = None
