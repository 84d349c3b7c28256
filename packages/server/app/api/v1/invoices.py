"""
Invoice endpoints: listing, verification view, edits and lifecycle transitions.

Status flow: Pending → Processed → Verified → Sent to accountant
- Verify is only offered from Processed, send only from Verified (409 otherwise).
- Edits are allowed in every status and never change it.
- The extraction pipeline reports back through /processed and /error.
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser, require_member
from app.core.database import get_session
from app.services import invoices as invoice_service
from invoice_manager_shared.schemas.invoices import (
    ExtractionFailure,
    ExtractionResult,
    InvoiceCreateRequest,
    InvoiceDetail,
    InvoiceEditRequest,
    InvoiceListResponse,
    InvoiceStatus,
)

router = APIRouter()


@router.get("", response_model=InvoiceListResponse)
async def list_invoices(
    status: Optional[InvoiceStatus] = None,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    invoices = await invoice_service.list_invoices(session, auth.org_id, status)
    return InvoiceListResponse(data=[invoice_service.to_read(inv) for inv in invoices])


@router.post("", response_model=InvoiceDetail, status_code=201)
async def create_invoice(
    body: InvoiceCreateRequest,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Register an uploaded document. It starts as pending until extraction reports back."""
    invoice = await invoice_service.create_invoice(session, body, auth.org_id, auth.user_id)
    return invoice_service.to_detail(invoice, auth.org)


@router.get("/{invoiceId}", response_model=InvoiceDetail)
async def get_invoice(
    invoiceId: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Verification view: parsed line items, offered actions and buyer defaults."""
    invoice = await invoice_service.get_invoice_or_404(session, invoiceId, auth.org_id)
    return invoice_service.to_detail(invoice, auth.org)


@router.put("/{invoiceId}", response_model=InvoiceDetail)
async def save_invoice(
    invoiceId: uuid.UUID,
    body: InvoiceEditRequest,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    invoice = await invoice_service.get_invoice_or_404(session, invoiceId, auth.org_id)
    invoice = await invoice_service.save_edits(session, invoice, body)
    return invoice_service.to_detail(invoice, auth.org)


@router.post("/{invoiceId}/verify", response_model=InvoiceDetail)
async def verify_invoice(
    invoiceId: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    invoice = await invoice_service.get_invoice_or_404(session, invoiceId, auth.org_id)
    invoice = await invoice_service.verify(session, invoice)
    return invoice_service.to_detail(invoice, auth.org)


@router.post("/{invoiceId}/send", response_model=InvoiceDetail)
async def send_invoice(
    invoiceId: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    invoice = await invoice_service.get_invoice_or_404(session, invoiceId, auth.org_id)
    invoice = await invoice_service.send_to_accountant(session, invoice)
    return invoice_service.to_detail(invoice, auth.org)


# ---------------------------------------------------------------------------
# Extraction pipeline callbacks
# ---------------------------------------------------------------------------


@router.post("/{invoiceId}/processed", response_model=InvoiceDetail)
async def report_processed(
    invoiceId: uuid.UUID,
    body: ExtractionResult,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    invoice = await invoice_service.get_invoice_or_404(session, invoiceId, auth.org_id)
    invoice = await invoice_service.mark_processed(session, invoice, body)
    return invoice_service.to_detail(invoice, auth.org)


@router.post("/{invoiceId}/error", response_model=InvoiceDetail)
async def report_error(
    invoiceId: uuid.UUID,
    body: ExtractionFailure,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    invoice = await invoice_service.get_invoice_or_404(session, invoiceId, auth.org_id)
    invoice = await invoice_service.mark_error(session, invoice, body.reason)
    return invoice_service.to_detail(invoice, auth.org)
