"""
Membership service - team listing, removal and the invitation lifecycle.
"""

from __future__ import annotations

import hashlib
import secrets
import uuid
from datetime import datetime, timedelta
from typing import Optional

import structlog
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import get_settings
from app.models.base import as_utc, utcnow
from app.models.invite import Invite
from app.models.membership import Membership
from app.models.profile import Profile
from app.models.user import User
from invoice_manager_shared.schemas.common import Role
from invoice_manager_shared.schemas.members import (
    InviteCreateRequest,
    InviteResponse,
    InviteStatus,
    MemberResponse,
    can_transition,
)

log = structlog.get_logger()
settings = get_settings()


def hash_invite_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

async def list_members(
    org_id: uuid.UUID,
    caller: User,
    session: AsyncSession,
) -> list[MemberResponse]:
    """List members by join time.

    Only the caller's own email is resolved; everyone else carries the
    configured placeholder with ``email_resolved=False``.
    """
    result = await session.execute(
        select(Membership, Profile.full_name)
        .outerjoin(Profile, Profile.id == Membership.user_id)
        .where(Membership.organization_id == org_id)
        .order_by(Membership.created_at)
    )
    members = []
    for membership, full_name in result.all():
        is_caller = membership.user_id == caller.id
        members.append(
            MemberResponse(
                id=membership.id,
                user_id=membership.user_id,
                role=Role(membership.role),
                full_name=full_name,
                email=caller.email if is_caller else settings.member_email_placeholder,
                email_resolved=is_caller,
                joined_at=membership.created_at,
            )
        )
    return members


async def remove_member(
    org_id: uuid.UUID,
    member_id: uuid.UUID,
    session: AsyncSession,
) -> None:
    """Remove a membership by id. Owners cannot be removed."""
    membership = await session.get(Membership, member_id)
    if not membership or membership.organization_id != org_id:
        raise HTTPException(status_code=404, detail="Member not found")

    if membership.role == Role.OWNER.value:
        raise HTTPException(status_code=409, detail="Cannot remove the organization owner")

    await session.delete(membership)
    await session.flush()
    log.info("member.removed", member_id=str(member_id), user_id=str(membership.user_id), org_id=str(org_id))


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------

def to_invite_response(invite: Invite) -> InviteResponse:
    return InviteResponse(
        id=invite.id,
        organization_id=invite.organization_id,
        email=invite.email,
        name=invite.name,
        phone=invite.phone,
        role=Role(invite.role),
        status=InviteStatus(invite.status),
        expires_at=as_utc(invite.expires_at),
        accepted_at=as_utc(invite.accepted_at),
        created_at=as_utc(invite.created_at),
    )


def _is_past_due(invite: Invite, now: Optional[datetime] = None) -> bool:
    return as_utc(invite.expires_at) <= (now or utcnow())


def _set_status(invite: Invite, target: InviteStatus) -> None:
    current = InviteStatus(invite.status)
    if not can_transition(current, target):
        raise HTTPException(
            status_code=409,
            detail=f"Invite is already {current.value}",
        )
    invite.status = target.value


def _expire_if_due(invite: Invite, now: Optional[datetime] = None) -> bool:
    """Move a pending invite past its deadline to expired. Returns True if it changed."""
    if invite.status == InviteStatus.PENDING.value and _is_past_due(invite, now):
        invite.status = InviteStatus.EXPIRED.value
        log.info("invite.expired", invite_id=str(invite.id), org_id=str(invite.organization_id))
        return True
    return False


async def invite_member(
    org_id: uuid.UUID,
    req: InviteCreateRequest,
    invited_by: uuid.UUID,
    session: AsyncSession,
) -> tuple[Invite, str]:
    """Issue a pending invite. Returns (invite, plaintext_token)."""
    email = req.email.lower()

    result = await session.execute(
        select(Membership)
        .join(User, User.id == Membership.user_id)
        .where(Membership.organization_id == org_id, User.email == email)
    )
    if result.scalar_one_or_none():
        raise HTTPException(status_code=409, detail="User is already a member of this organization")

    result = await session.execute(
        select(Invite).where(
            Invite.organization_id == org_id,
            Invite.email == email,
            Invite.status == InviteStatus.PENDING.value,
        )
    )
    for existing in result.scalars().all():
        if not _expire_if_due(existing):
            raise HTTPException(status_code=409, detail="An invite for this email is already pending")
        session.add(existing)

    token = secrets.token_urlsafe(32)
    invite = Invite(
        organization_id=org_id,
        email=email,
        name=req.name,
        phone=req.phone,
        role=req.role.value,
        status=InviteStatus.PENDING.value,
        token_hash=hash_invite_token(token),
        invited_by=invited_by,
        expires_at=utcnow() + timedelta(hours=settings.invite_ttl_hours),
    )
    session.add(invite)
    await session.flush()

    # Delivery happens outside this service; the token is handed back once.
    log.info(
        "invite.dispatched",
        invite_id=str(invite.id),
        org_id=str(org_id),
        role=invite.role,
        invited_by=str(invited_by),
    )
    return invite, token


async def list_invites(org_id: uuid.UUID, session: AsyncSession) -> list[Invite]:
    """All invites for the org, newest first. Overdue pending invites are reported as expired."""
    result = await session.execute(
        select(Invite)
        .where(Invite.organization_id == org_id)
        .order_by(Invite.created_at.desc())
    )
    invites = list(result.scalars().all())
    now = utcnow()
    changed = [inv for inv in invites if _expire_if_due(inv, now)]
    if changed:
        session.add_all(changed)
        await session.flush()
    return invites


async def revoke_invite(
    org_id: uuid.UUID,
    invite_id: uuid.UUID,
    session: AsyncSession,
) -> Invite:
    invite = await session.get(Invite, invite_id)
    if not invite or invite.organization_id != org_id:
        raise HTTPException(status_code=404, detail="Invite not found")

    if _is_past_due(invite) and invite.status == InviteStatus.PENDING.value:
        raise HTTPException(status_code=409, detail="Invite is already expired")

    _set_status(invite, InviteStatus.REVOKED)
    session.add(invite)
    await session.flush()
    log.info("invite.revoked", invite_id=str(invite_id), org_id=str(org_id))
    return invite


async def accept_invite(
    token: str,
    user: User,
    session: AsyncSession,
) -> Membership:
    """Redeem an invite token for the signed-in user."""
    result = await session.execute(
        select(Invite).where(Invite.token_hash == hash_invite_token(token))
    )
    invite = result.scalar_one_or_none()
    if not invite:
        raise HTTPException(status_code=404, detail="Invite not found")

    if invite.status == InviteStatus.PENDING.value and _is_past_due(invite):
        raise HTTPException(status_code=409, detail="Invite has expired")

    if invite.email != user.email.lower():
        raise HTTPException(status_code=403, detail="Invite was issued to a different email")

    _set_status(invite, InviteStatus.ACCEPTED)

    result = await session.execute(
        select(Membership).where(
            Membership.organization_id == invite.organization_id,
            Membership.user_id == user.id,
        )
    )
    if result.scalar_one_or_none():
        raise HTTPException(status_code=409, detail="User is already a member of this organization")

    invite.accepted_at = utcnow()
    session.add(invite)
    membership = Membership(
        organization_id=invite.organization_id,
        user_id=user.id,
        role=invite.role,
    )
    session.add(membership)
    await session.flush()

    log.info(
        "invite.accepted",
        invite_id=str(invite.id),
        org_id=str(invite.organization_id),
        user_id=str(user.id),
    )
    return membership


async def expire_stale_invites(session: AsyncSession) -> int:
    """Sweep every overdue pending invite to expired. Returns the number changed."""
    result = await session.execute(
        select(Invite).where(Invite.status == InviteStatus.PENDING.value)
    )
    now = utcnow()
    changed = [inv for inv in result.scalars().all() if _expire_if_due(inv, now)]
    if changed:
        session.add_all(changed)
        await session.flush()
    return len(changed)
