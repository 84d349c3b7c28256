"""
Team member endpoints.

GET    /api/v1/orgs/{orgSlug}/members                      - List members
DELETE /api/v1/orgs/{orgSlug}/members/{memberId}           - Remove a member (Owner only)
GET    /api/v1/orgs/{orgSlug}/members/invites              - List invites (Owner only)
POST   /api/v1/orgs/{orgSlug}/members/invites              - Invite by email (Owner only)
POST   /api/v1/orgs/{orgSlug}/members/invites/{inviteId}/revoke - Revoke (Owner only)
POST   /api/v1/invites/accept                              - Redeem an invite token
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import (
    AuthenticatedUser,
    get_current_user,
    require_member,
    require_owner,
)
from app.core.database import get_session
from app.models.organization import Organization
from app.models.user import User
from app.services import members as member_service
from app.services.organizations import with_role
from invoice_manager_shared.schemas.members import (
    InviteCreateRequest,
    InviteCreateResponse,
    InviteListResponse,
    InviteResponse,
    MemberListResponse,
)
from invoice_manager_shared.schemas.organizations import OrganizationWithRole

router = APIRouter()
router_global = APIRouter()


@router.get("", response_model=MemberListResponse, tags=["Members"])
async def list_members(
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """List members, oldest first. Only your own email is shown."""
    items = await member_service.list_members(auth.org_id, auth.user, session)
    return MemberListResponse(data=items)


@router.get("/invites", response_model=InviteListResponse, tags=["Members"])
async def list_invites(
    auth: AuthenticatedUser = Depends(require_owner),
    session: AsyncSession = Depends(get_session),
):
    invites = await member_service.list_invites(auth.org_id, session)
    return InviteListResponse(data=[member_service.to_invite_response(i) for i in invites])


@router.post("/invites", response_model=InviteCreateResponse, status_code=201, tags=["Members"])
async def invite_member(
    body: InviteCreateRequest,
    auth: AuthenticatedUser = Depends(require_owner),
    session: AsyncSession = Depends(get_session),
):
    """Issue an invite (Owner only). The token is returned once and never stored in plain text."""
    invite, token = await member_service.invite_member(auth.org_id, body, auth.user_id, session)
    return InviteCreateResponse(invite=member_service.to_invite_response(invite), token=token)


@router.post("/invites/{inviteId}/revoke", response_model=InviteResponse, tags=["Members"])
async def revoke_invite(
    inviteId: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_owner),
    session: AsyncSession = Depends(get_session),
):
    invite = await member_service.revoke_invite(auth.org_id, inviteId, session)
    return member_service.to_invite_response(invite)


@router.delete("/{memberId}", response_model=MemberListResponse, tags=["Members"])
async def remove_member(
    memberId: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_owner),
    session: AsyncSession = Depends(get_session),
):
    """Remove a member (Owner only) and return the reloaded list."""
    await member_service.remove_member(auth.org_id, memberId, session)
    items = await member_service.list_members(auth.org_id, auth.user, session)
    return MemberListResponse(data=items)


# ---------------------------------------------------------------------------
# Invite redemption (not org-scoped: the invitee is not a member yet)
# ---------------------------------------------------------------------------

class InviteAcceptRequest(BaseModel):
    token: str = Field(..., min_length=1)


@router_global.post("/invites/accept", response_model=OrganizationWithRole, tags=["Members"])
async def accept_invite(
    body: InviteAcceptRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    membership = await member_service.accept_invite(body.token, user, session)
    org = await session.get(Organization, membership.organization_id)
    return with_role(org, membership.role)
