"""
Session endpoints: the caller's organizations and the active selection.

GET  /api/v1/session         - Load organizations and settle the active one
POST /api/v1/session/switch  - Switch the active organization
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_current_user
from app.core.database import get_session
from app.models.user import User
from app.services.session import DatabaseDirectory, TenantContext
from invoice_manager_shared.schemas.session import SessionResponse, SwitchOrganizationRequest

router = APIRouter()


async def get_tenant_context(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> TenantContext:
    context = TenantContext(user.id, DatabaseDirectory(session))
    await context.refresh_organizations()
    return context


@router.get("", response_model=SessionResponse)
async def get_session_state(
    context: TenantContext = Depends(get_tenant_context),
):
    """Current organization, all memberships and derived permissions."""
    return context.snapshot()


@router.post("/switch", response_model=SessionResponse)
async def switch_organization(
    body: SwitchOrganizationRequest,
    context: TenantContext = Depends(get_tenant_context),
):
    """Switch the active organization. Unknown ids leave the selection unchanged."""
    await context.switch_organization(body.organization_id)
    return context.snapshot()
