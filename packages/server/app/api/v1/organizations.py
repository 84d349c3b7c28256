"""
Organization API endpoints.

GET    /api/v1/orgs                       - List orgs for the authenticated user
POST   /api/v1/orgs                       - Create a new org (onboarding)
GET    /api/v1/orgs/{orgSlug}             - Get org details
GET    /api/v1/orgs/{orgSlug}/profile     - Merged company profile
PATCH  /api/v1/orgs/{orgSlug}/profile     - Update company profile (Owner only)
POST   /api/v1/orgs/{orgSlug}/logo        - Upload company logo (Owner only)
DELETE /api/v1/orgs/{orgSlug}/logo        - Remove company logo (Owner only)
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import (
    AuthenticatedUser,
    get_current_user,
    require_member,
    require_owner,
)
from app.core.database import get_session
from app.core.storage import LogoStorage, get_logo_storage
from app.models.user import User
from app.services import organizations as org_service
from invoice_manager_shared.schemas.common import Role
from invoice_manager_shared.schemas.organizations import (
    OrgCreateRequest,
    OrgListResponse,
    OrgProfile,
    OrgProfileUpdate,
    OrganizationWithRole,
)

log = structlog.get_logger()

# ---------------------------------------------------------------------------
# Non-org-scoped routes (no orgSlug in path)
# ---------------------------------------------------------------------------
router_global = APIRouter()


@router_global.get("/orgs", response_model=OrgListResponse, tags=["Organizations"])
async def list_orgs(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """List orgs the authenticated user belongs to."""
    items = await org_service.list_user_orgs(user.id, session)
    return OrgListResponse(data=items)


@router_global.post(
    "/orgs", response_model=OrganizationWithRole, status_code=201, tags=["Organizations"]
)
async def create_org(
    body: OrgCreateRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Create a new organization. The creator becomes its owner."""
    org = await org_service.create_org(body, user.id, session)
    return org_service.with_role(org, Role.OWNER.value)


# ---------------------------------------------------------------------------
# Org-scoped routes (orgSlug in path)
# ---------------------------------------------------------------------------
router_scoped = APIRouter()


@router_scoped.get("", response_model=OrganizationWithRole, tags=["Organizations"])
async def get_org(
    auth: AuthenticatedUser = Depends(require_member),
):
    return org_service.with_role(auth.org, auth.role.value)


@router_scoped.get("/profile", response_model=OrgProfile, tags=["Organizations"])
async def get_profile(
    auth: AuthenticatedUser = Depends(require_member),
):
    """Company profile with settings-map fallbacks already applied."""
    return org_service.load_profile(auth.org)


@router_scoped.patch("/profile", response_model=OrgProfile, tags=["Organizations"])
async def update_profile(
    body: OrgProfileUpdate,
    auth: AuthenticatedUser = Depends(require_owner),
    session: AsyncSession = Depends(get_session),
):
    org = await org_service.save_profile(auth.org, body, session)
    return org_service.load_profile(org)


@router_scoped.post("/logo", response_model=OrganizationWithRole, tags=["Organizations"])
async def upload_logo(
    logo: UploadFile = File(...),
    auth: AuthenticatedUser = Depends(require_owner),
    session: AsyncSession = Depends(get_session),
    storage: LogoStorage = Depends(get_logo_storage),
):
    """Upload a PNG, JPG or WEBP logo of at most 2MB."""
    content = await logo.read()
    org = await org_service.upload_logo(auth.org, content, logo.content_type, storage, session)
    return org_service.with_role(org, auth.role.value)


@router_scoped.delete("/logo", response_model=OrganizationWithRole, tags=["Organizations"])
async def remove_logo(
    auth: AuthenticatedUser = Depends(require_owner),
    session: AsyncSession = Depends(get_session),
    storage: LogoStorage = Depends(get_logo_storage),
):
    org = await org_service.remove_logo(auth.org, storage, session)
    return org_service.with_role(org, auth.role.value)
