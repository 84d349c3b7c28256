"""
Invoice schemas and lifecycle rules shared between server and clients.

Covers: the five-state status machine and its display lookup, line item
parsing, the parse-or-reject contract for monetary fields, and the
verification form request/response models.
"""

from __future__ import annotations

import json
import math
import uuid
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .common import DEFAULT_CURRENCY, Currency


# ---------------------------------------------------------------------------
# Status machine
# ---------------------------------------------------------------------------

class InvoiceStatus(str, Enum):
    PENDING = "pending"
    PROCESSED = "processed"
    VERIFIED = "verified"
    SENT_TO_ACCOUNTANT = "sent_to_accountant"
    ERROR = "error"


class InvoiceAction(str, Enum):
    VERIFY = "verify"
    SEND_TO_ACCOUNTANT = "send_to_accountant"
    EDIT = "edit"


class StatusDisplay(NamedTuple):
    label: str
    tag: str


STATUS_DISPLAY: dict[InvoiceStatus, StatusDisplay] = {
    InvoiceStatus.PENDING: StatusDisplay("Pending", "yellow"),
    InvoiceStatus.PROCESSED: StatusDisplay("Processed - awaiting review", "blue"),
    InvoiceStatus.VERIFIED: StatusDisplay("Verified", "lime"),
    InvoiceStatus.SENT_TO_ACCOUNTANT: StatusDisplay("Sent to accountant", "purple"),
    InvoiceStatus.ERROR: StatusDisplay("Error", "red"),
}

# Transitions a user can trigger. Pipeline-driven moves (pending -> processed,
# any -> error) are keyed by target state in PIPELINE_SOURCES.
USER_TRANSITIONS: dict[InvoiceAction, tuple[InvoiceStatus, InvoiceStatus]] = {
    InvoiceAction.VERIFY: (InvoiceStatus.PROCESSED, InvoiceStatus.VERIFIED),
    InvoiceAction.SEND_TO_ACCOUNTANT: (
        InvoiceStatus.VERIFIED,
        InvoiceStatus.SENT_TO_ACCOUNTANT,
    ),
}

PIPELINE_SOURCES: dict[InvoiceStatus, list[InvoiceStatus]] = {
    InvoiceStatus.PROCESSED: [InvoiceStatus.PENDING, InvoiceStatus.ERROR],
    InvoiceStatus.ERROR: list(InvoiceStatus),
}


def normalize_status(value: Any) -> InvoiceStatus:
    """Map a stored status to a known state. Unknown values read as pending."""
    if isinstance(value, InvoiceStatus):
        return value
    try:
        return InvoiceStatus(value)
    except ValueError:
        return InvoiceStatus.PENDING


def status_display(value: Any) -> StatusDisplay:
    return STATUS_DISPLAY[normalize_status(value)]


def available_actions(value: Any) -> list[InvoiceAction]:
    """Actions offered for an invoice in the given stored status."""
    status = normalize_status(value)
    actions = [
        action
        for action, (source, _target) in USER_TRANSITIONS.items()
        if source == status
    ]
    actions.append(InvoiceAction.EDIT)
    return actions


# ---------------------------------------------------------------------------
# Line items
# ---------------------------------------------------------------------------

def parse_line_items(value: Any) -> list:
    """Read line items stored either as a list or as a JSON-encoded list.

    Anything that is not a list (after decoding, for strings) reads as an
    empty list so a malformed row never breaks the invoice view.
    """
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except ValueError:
            return []
        return parsed if isinstance(parsed, list) else []
    return []


class LineItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    description: Optional[str] = None
    quantity: Optional[float] = None
    unit_price: Optional[float] = None
    amount: Optional[float] = None


def _coerce_line_item(item: dict) -> LineItem:
    try:
        return LineItem.model_validate(item)
    except ValidationError as e:
        # Keep the row; blank out only the fields that did not parse.
        bad = {err["loc"][0] for err in e.errors() if err["loc"]}
        return LineItem.model_validate(
            {k: (None if k in bad else v) for k, v in item.items()}
        )


def coerce_line_items(value: Any) -> list[LineItem]:
    """Parse stored line items into models, skipping entries that are not objects."""
    return [
        _coerce_line_item(item)
        for item in parse_line_items(value)
        if isinstance(item, dict)
    ]


# ---------------------------------------------------------------------------
# Monetary fields
# ---------------------------------------------------------------------------

class AmountParse(NamedTuple):
    ok: bool
    value: Optional[Decimal] = None
    error: Optional[str] = None


def parse_amount(raw: Any) -> AmountParse:
    """Parse a monetary input, rejecting anything that is not a finite number.

    ``None`` and blank strings are accepted as "no value".
    """
    if raw is None:
        return AmountParse(ok=True)
    if isinstance(raw, bool):
        return AmountParse(ok=False, error="must be a number")
    if isinstance(raw, Decimal):
        candidate = raw
    elif isinstance(raw, int):
        candidate = Decimal(raw)
    elif isinstance(raw, float):
        if not math.isfinite(raw):
            return AmountParse(ok=False, error="must be a finite number")
        candidate = Decimal(str(raw))
    elif isinstance(raw, str):
        text = raw.strip()
        if not text:
            return AmountParse(ok=True)
        try:
            candidate = Decimal(text)
        except InvalidOperation:
            return AmountParse(ok=False, error=f"'{raw}' is not a number")
    else:
        return AmountParse(ok=False, error="must be a number")

    if not candidate.is_finite():
        return AmountParse(ok=False, error="must be a finite number")
    return AmountParse(ok=True, value=candidate)


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class InvoiceEditRequest(BaseModel):
    """Full editable field set of the verification form."""

    invoice_number: Optional[str] = None
    invoice_date: Optional[date] = None
    vendor_name: Optional[str] = None
    vendor_address: Optional[str] = None
    vendor_tax_id: Optional[str] = None
    vendor_pdv: Optional[str] = None
    buyer_name: Optional[str] = None
    buyer_address: Optional[str] = None
    buyer_tax_id: Optional[str] = None
    subtotal: Optional[Decimal] = None
    tax_amount: Optional[Decimal] = None
    total_amount: Optional[Decimal] = None
    # None keeps the stored currency, which may lie outside the editable set.
    currency: Optional[Currency] = None
    notes: Optional[str] = None

    @field_validator("subtotal", "tax_amount", "total_amount", mode="before")
    @classmethod
    def _parse_amounts(cls, value: Any) -> Optional[Decimal]:
        result = parse_amount(value)
        if not result.ok:
            raise ValueError(result.error)
        return result.value

    @field_validator("invoice_date", mode="before")
    @classmethod
    def _blank_date(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class InvoiceCreateRequest(BaseModel):
    """Registers an uploaded document before extraction runs."""

    file_url: str = Field(..., min_length=1)
    file_type: str = Field(default="pdf", min_length=1, max_length=50)


class ExtractionResult(BaseModel):
    """Fields produced by the extraction pipeline."""

    invoice_number: Optional[str] = None
    invoice_date: Optional[date] = None
    vendor_name: Optional[str] = None
    vendor_address: Optional[str] = None
    vendor_tax_id: Optional[str] = None
    vendor_pdv: Optional[str] = None
    buyer_name: Optional[str] = None
    buyer_address: Optional[str] = None
    buyer_tax_id: Optional[str] = None
    subtotal: Optional[Decimal] = None
    tax_amount: Optional[Decimal] = None
    total_amount: Optional[Decimal] = None
    currency: Optional[str] = None
    line_items: Any = None
    notes: Optional[str] = None


class ExtractionFailure(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class BuyerDefaults(BaseModel):
    buyer_name: str = ""
    buyer_address: str = ""
    buyer_tax_id: str = ""


def buyer_defaults(profile: Any) -> BuyerDefaults:
    """Buyer fields the verification form pre-fills from the merged company profile."""
    if profile is None:
        return BuyerDefaults()
    return BuyerDefaults(
        buyer_name=getattr(profile, "name", "") or "",
        buyer_address=getattr(profile, "address", "") or "",
        buyer_tax_id=getattr(profile, "pib", "") or "",
    )


class InvoiceRead(BaseModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    user_id: uuid.UUID
    invoice_number: Optional[str] = None
    invoice_date: Optional[date] = None
    vendor_name: Optional[str] = None
    vendor_address: Optional[str] = None
    vendor_tax_id: Optional[str] = None
    vendor_pdv: Optional[str] = None
    buyer_name: Optional[str] = None
    buyer_address: Optional[str] = None
    buyer_tax_id: Optional[str] = None
    subtotal: Optional[Decimal] = None
    tax_amount: Optional[Decimal] = None
    total_amount: Optional[Decimal] = None
    # Stored currencies outside the editable set are passed through untouched.
    currency: str = DEFAULT_CURRENCY.value
    line_items: list[LineItem] = Field(default_factory=list)
    notes: Optional[str] = None
    file_url: Optional[str] = None
    file_type: str
    status: InvoiceStatus
    error_message: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class InvoiceDetail(InvoiceRead):
    status_label: str
    status_tag: str
    available_actions: list[InvoiceAction]
    buyer_defaults: BuyerDefaults


class InvoiceListResponse(BaseModel):
    data: list[InvoiceRead]
