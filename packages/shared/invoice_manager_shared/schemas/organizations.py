"""
Organization-related Pydantic schemas shared between server and clients.

Covers: org create/response models, the company profile form and the
merge rule that reconciles first-class columns with legacy settings keys.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Mapping, Optional

from pydantic import BaseModel, EmailStr, Field

from .common import Role


# ---------------------------------------------------------------------------
# Profile merge
# ---------------------------------------------------------------------------

# Fields that older records keep inside ``settings`` instead of columns.
LEGACY_SETTINGS_KEYS: tuple[str, ...] = (
    "pib",
    "pdv_number",
    "address",
    "email",
    "phone",
)


def _field(source: Any, name: str) -> Any:
    if isinstance(source, Mapping):
        return source.get(name)
    return getattr(source, name, None)


def _present(value: Any) -> bool:
    return value is not None and value != ""


def compose_address(
    street: Optional[str],
    city: Optional[str] = None,
    postal_code: Optional[str] = None,
) -> str:
    """Single-line address: ``street, city postal_code`` without empty parts."""
    if not _present(street):
        return ""
    address = street
    if _present(city):
        address += f", {city}"
    if _present(postal_code):
        address += f" {postal_code}"
    return address


def merge_profile(org: Any) -> "OrgProfile":
    """Flatten an organization into its editable company profile.

    Precedence for every field: first-class value, then the legacy
    ``settings`` value, then an empty string. Empty strings count as missing.
    The address is composed from the street/city/postal columns when a street
    is stored, otherwise the legacy single-line ``settings["address"]`` is used.
    """
    settings = _field(org, "settings") or {}

    def pick(name: str) -> str:
        for value in (_field(org, name), settings.get(name)):
            if _present(value):
                return str(value)
        return ""

    street = _field(org, "address")
    if _present(street):
        address = compose_address(
            street, _field(org, "city"), _field(org, "postal_code")
        )
    else:
        address = str(settings.get("address") or "")

    return OrgProfile(
        name=_field(org, "name") or "",
        pib=pick("pib"),
        pdv_number=pick("pdv_number"),
        address=address,
        street=street or "",
        city=_field(org, "city") or "",
        postal_code=_field(org, "postal_code") or "",
        country=_field(org, "country") or "",
        email=pick("email"),
        phone=pick("phone"),
        owner_name=_field(org, "owner_name") or "",
        is_pdv_registered=bool(_field(org, "is_pdv_registered")),
        accountant_email=_field(org, "accountant_email") or "",
        logo_url=_field(org, "logo_url"),
    )


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class OrgCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Company display name")
    slug: str = Field(
        ...,
        min_length=2,
        max_length=50,
        pattern=r"^[a-z0-9][a-z0-9-]*[a-z0-9]$",
        description="URL-safe org identifier",
    )


class OrgProfileUpdate(BaseModel):
    """Partial company profile update. Only fields sent are written."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    pib: Optional[str] = Field(None, max_length=15)
    pdv_number: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = Field(None, max_length=255, description="Street and number")
    city: Optional[str] = Field(None, max_length=100)
    postal_code: Optional[str] = Field(None, max_length=20)
    country: Optional[str] = Field(None, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    owner_name: Optional[str] = Field(None, max_length=200)
    is_pdv_registered: Optional[bool] = None
    accountant_email: Optional[EmailStr] = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class OrgProfile(BaseModel):
    """Merged company profile as shown on the settings form."""

    name: str = ""
    pib: str = ""
    pdv_number: str = ""
    address: str = ""
    street: str = ""
    city: str = ""
    postal_code: str = ""
    country: str = ""
    email: str = ""
    phone: str = ""
    owner_name: str = ""
    is_pdv_registered: bool = False
    accountant_email: str = ""
    logo_url: Optional[str] = None


class OrgResponse(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    logo_url: Optional[str] = None
    accountant_email: Optional[str] = None
    settings: dict = Field(default_factory=dict)
    pib: Optional[str] = None
    pdv_number: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    owner_name: Optional[str] = None
    is_pdv_registered: bool = False
    created_at: datetime

    model_config = {"from_attributes": True}


class OrganizationWithRole(OrgResponse):
    role: Role  # the requesting user's role in this org


class OrgListResponse(BaseModel):
    data: list[OrganizationWithRole]
