"""Team member and invitation schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional, List

from pydantic import BaseModel, EmailStr, Field

from .common import Role


class InviteStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"
    REVOKED = "revoked"


# Valid state transitions for invitations; every non-pending state is terminal.
INVITE_TRANSITIONS: dict[InviteStatus, list[InviteStatus]] = {
    InviteStatus.PENDING: [
        InviteStatus.ACCEPTED,
        InviteStatus.EXPIRED,
        InviteStatus.REVOKED,
    ],
    InviteStatus.ACCEPTED: [],
    InviteStatus.EXPIRED: [],
    InviteStatus.REVOKED: [],
}


def can_transition(current: InviteStatus, target: InviteStatus) -> bool:
    return target in INVITE_TRANSITIONS.get(current, [])


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class InviteCreateRequest(BaseModel):
    """Invite someone to the org by email."""
    email: EmailStr
    name: Optional[str] = Field(default=None, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=50)
    role: Role = Role.EMPLOYEE


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class MemberResponse(BaseModel):
    id: uuid.UUID  # membership id
    user_id: uuid.UUID
    role: Role
    full_name: Optional[str] = None
    email: str
    email_resolved: bool = False
    joined_at: datetime


class MemberListResponse(BaseModel):
    data: List[MemberResponse]


class InviteResponse(BaseModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    email: str
    name: Optional[str] = None
    phone: Optional[str] = None
    role: Role
    status: InviteStatus
    expires_at: datetime
    accepted_at: Optional[datetime] = None
    created_at: datetime


class InviteCreateResponse(BaseModel):
    """Returned once when an invite is issued; the token is not shown again."""
    invite: InviteResponse
    token: str


class InviteListResponse(BaseModel):
    data: List[InviteResponse]
