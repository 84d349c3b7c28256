"""Invoice model (RLS-scoped)."""

from datetime import date
from decimal import Decimal
from typing import Any, Optional
import uuid

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Invoice(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "invoices"

    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)

    invoice_number: Optional[str] = None
    invoice_date: Optional[date] = Field(default=None, sa_type=sa.Date)

    vendor_name: Optional[str] = None
    vendor_address: Optional[str] = None
    vendor_tax_id: Optional[str] = None
    vendor_pdv: Optional[str] = None

    buyer_name: Optional[str] = None
    buyer_address: Optional[str] = None
    buyer_tax_id: Optional[str] = None

    subtotal: Optional[Decimal] = Field(default=None, sa_type=sa.Numeric(14, 2))
    tax_amount: Optional[Decimal] = Field(default=None, sa_type=sa.Numeric(14, 2))
    total_amount: Optional[Decimal] = Field(default=None, sa_type=sa.Numeric(14, 2))
    currency: str = Field(default="EUR", nullable=False)

    # Either a JSON array or, for rows written by older extractors, a JSON string.
    line_items: Optional[Any] = Field(default=None, sa_type=JSONB)
    notes: Optional[str] = None

    file_url: Optional[str] = None
    file_type: str = Field(nullable=False, default="pdf")
    status: str = Field(nullable=False, default="pending", index=True)
    error_message: Optional[str] = None
