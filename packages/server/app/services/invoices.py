"""
Invoice service layer: lifecycle transitions, verification edits, read models.

Handles:
- Org-scoped lookups and listing
- User transitions (verify, send to accountant) guarded by USER_TRANSITIONS
- Verification form edits, independent of status
- Hooks the extraction pipeline calls (create, processed, error)
"""

from __future__ import annotations

import uuid
from typing import Optional, Sequence

import structlog
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.base import utcnow
from app.models.invoice import Invoice
from app.models.organization import Organization
from invoice_manager_shared.schemas.invoices import (
    PIPELINE_SOURCES,
    USER_TRANSITIONS,
    ExtractionResult,
    InvoiceAction,
    InvoiceCreateRequest,
    InvoiceDetail,
    InvoiceEditRequest,
    InvoiceRead,
    InvoiceStatus,
    available_actions,
    buyer_defaults,
    coerce_line_items,
    normalize_status,
    status_display,
)
from invoice_manager_shared.schemas.organizations import merge_profile

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def get_invoice_or_404(
    session: AsyncSession, invoice_id: uuid.UUID, org_id: uuid.UUID
) -> Invoice:
    invoice = await session.get(Invoice, invoice_id)
    if not invoice or invoice.organization_id != org_id:
        raise HTTPException(status_code=404, detail="Invoice not found")
    return invoice


def to_read(invoice: Invoice) -> InvoiceRead:
    """Build the API shape: normalized status, parsed line items, raw currency."""
    return InvoiceRead(
        id=invoice.id,
        organization_id=invoice.organization_id,
        user_id=invoice.user_id,
        invoice_number=invoice.invoice_number,
        invoice_date=invoice.invoice_date,
        vendor_name=invoice.vendor_name,
        vendor_address=invoice.vendor_address,
        vendor_tax_id=invoice.vendor_tax_id,
        vendor_pdv=invoice.vendor_pdv,
        buyer_name=invoice.buyer_name,
        buyer_address=invoice.buyer_address,
        buyer_tax_id=invoice.buyer_tax_id,
        subtotal=invoice.subtotal,
        tax_amount=invoice.tax_amount,
        total_amount=invoice.total_amount,
        currency=invoice.currency,
        line_items=coerce_line_items(invoice.line_items),
        notes=invoice.notes,
        file_url=invoice.file_url,
        file_type=invoice.file_type,
        status=normalize_status(invoice.status),
        error_message=invoice.error_message,
        created_at=invoice.created_at,
        updated_at=invoice.updated_at,
    )


def to_detail(invoice: Invoice, org: Optional[Organization]) -> InvoiceDetail:
    """Read model for the verification view."""
    display = status_display(invoice.status)
    return InvoiceDetail(
        **to_read(invoice).model_dump(),
        status_label=display.label,
        status_tag=display.tag,
        available_actions=available_actions(invoice.status),
        buyer_defaults=buyer_defaults(merge_profile(org) if org else None),
    )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def list_invoices(
    session: AsyncSession,
    org_id: uuid.UUID,
    status: Optional[InvoiceStatus] = None,
) -> Sequence[Invoice]:
    """Newest first. Filtering by ``pending`` also matches unrecognized stored values."""
    result = await session.execute(
        select(Invoice)
        .where(Invoice.organization_id == org_id)
        .order_by(Invoice.created_at.desc())
    )
    invoices = result.scalars().all()
    if status is None:
        return invoices
    return [inv for inv in invoices if normalize_status(inv.status) == status]


# ---------------------------------------------------------------------------
# User transitions
# ---------------------------------------------------------------------------


async def _apply_action(
    session: AsyncSession,
    invoice: Invoice,
    action: InvoiceAction,
) -> Invoice:
    source, target = USER_TRANSITIONS[action]
    current = normalize_status(invoice.status)
    if current != source:
        raise HTTPException(
            status_code=409,
            detail=f"Cannot {action.value.replace('_', ' ')} an invoice in status "
            f"'{current.value}'. Required: '{source.value}'",
        )

    invoice.status = target.value
    invoice.updated_at = utcnow()
    session.add(invoice)
    await session.flush()

    log.info(
        f"invoice.{target.value}",
        invoice_id=str(invoice.id),
        org_id=str(invoice.organization_id),
    )
    return invoice


async def verify(session: AsyncSession, invoice: Invoice) -> Invoice:
    """processed -> verified. No other field changes."""
    return await _apply_action(session, invoice, InvoiceAction.VERIFY)


async def send_to_accountant(session: AsyncSession, invoice: Invoice) -> Invoice:
    """verified -> sent_to_accountant."""
    return await _apply_action(session, invoice, InvoiceAction.SEND_TO_ACCOUNTANT)


async def save_edits(
    session: AsyncSession,
    invoice: Invoice,
    edits: InvoiceEditRequest,
) -> Invoice:
    """Overwrite the editable field set. Allowed in every status; status is untouched.

    Monetary values were already parsed by the request model, so an invalid
    amount never reaches this point.
    """
    data = edits.model_dump()
    if data["currency"] is None:
        data.pop("currency")
    else:
        data["currency"] = edits.currency.value

    for key, value in data.items():
        setattr(invoice, key, value)

    invoice.updated_at = utcnow()
    session.add(invoice)
    await session.flush()

    log.info(
        "invoice.edited",
        invoice_id=str(invoice.id),
        org_id=str(invoice.organization_id),
        status=invoice.status,
    )
    return invoice


# ---------------------------------------------------------------------------
# Pipeline hooks
# ---------------------------------------------------------------------------


async def create_invoice(
    session: AsyncSession,
    req: InvoiceCreateRequest,
    org_id: uuid.UUID,
    user_id: uuid.UUID,
) -> Invoice:
    invoice = Invoice(
        organization_id=org_id,
        user_id=user_id,
        file_url=req.file_url,
        file_type=req.file_type,
        status=InvoiceStatus.PENDING.value,
    )
    session.add(invoice)
    await session.flush()

    log.info("invoice.created", invoice_id=str(invoice.id), org_id=str(org_id))
    return invoice


def _check_pipeline_source(invoice: Invoice, target: InvoiceStatus) -> None:
    current = normalize_status(invoice.status)
    allowed = PIPELINE_SOURCES[target]
    if current not in allowed:
        raise HTTPException(
            status_code=409,
            detail=f"Cannot move invoice from '{current.value}' to '{target.value}'. "
            f"Allowed from: {[s.value for s in allowed]}",
        )


async def mark_processed(
    session: AsyncSession,
    invoice: Invoice,
    extracted: ExtractionResult,
) -> Invoice:
    """Store extracted fields and move the invoice into review."""
    _check_pipeline_source(invoice, InvoiceStatus.PROCESSED)

    data = extracted.model_dump(exclude_unset=True)
    if not data.get("currency"):
        data.pop("currency", None)
    for key, value in data.items():
        setattr(invoice, key, value)

    invoice.status = InvoiceStatus.PROCESSED.value
    invoice.error_message = None
    invoice.updated_at = utcnow()
    session.add(invoice)
    await session.flush()

    log.info("invoice.processed", invoice_id=str(invoice.id), org_id=str(invoice.organization_id))
    return invoice


async def mark_error(session: AsyncSession, invoice: Invoice, reason: str) -> Invoice:
    _check_pipeline_source(invoice, InvoiceStatus.ERROR)

    invoice.status = InvoiceStatus.ERROR.value
    invoice.error_message = reason
    invoice.updated_at = utcnow()
    session.add(invoice)
    await session.flush()

    log.warning(
        "invoice.extraction_failed",
        invoice_id=str(invoice.id),
        org_id=str(invoice.organization_id),
        reason=reason,
    )
    return invoice
