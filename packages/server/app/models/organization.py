"""Organization model."""

from typing import Optional

from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Organization(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "organizations"

    name: str = Field(nullable=False, index=True)
    slug: str = Field(unique=True, nullable=False, index=True)
    logo_url: Optional[str] = None
    accountant_email: Optional[str] = None
    # Legacy key/value store; company fields used to live here before they
    # got their own columns and older rows still carry them.
    settings: dict = Field(default_factory=dict, sa_type=JSONB, nullable=False)

    pib: Optional[str] = None  # tax identification number
    pdv_number: Optional[str] = None  # VAT number
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    owner_name: Optional[str] = None
    is_pdv_registered: bool = Field(default=False, nullable=False)
