"""Pending organization invitation."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin, UUIDMixin


class Invite(UUIDMixin, CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "organization_invites"

    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    email: str = Field(nullable=False, index=True)
    name: Optional[str] = None
    phone: Optional[str] = None
    role: str = Field(nullable=False, default="employee")
    status: str = Field(nullable=False, default="pending")  # pending | accepted | expired | revoked
    token_hash: str = Field(nullable=False, unique=True, index=True)
    invited_by: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")
    expires_at: datetime = Field(nullable=False, sa_type=sa.DateTime(timezone=True))
    accepted_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
