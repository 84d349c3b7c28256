"""
Tests for code that runs outside a request: the invite expiry job and the
local owner bootstrap script.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlmodel import select

from app.models.base import utcnow
from app.models.invite import Invite
from app.models.membership import Membership
from app.models.organization import Organization
from app.models.user import User
from app.scripts.create_local_owner import create_owner
from app.services.members import hash_invite_token
from app.tasks.invite_expiry import expire_pending_invites


@pytest.fixture
def session_context(session_maker):
    @asynccontextmanager
    async def context():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    return context


class TestInviteExpiryJob:
    async def test_expires_overdue_invites(self, session_context, factory):
        owner = await factory.user()
        org = await factory.org(owner)
        overdue = await factory._save(
            Invite(
                organization_id=org.id,
                email="late@example.com",
                token_hash=hash_invite_token("late"),
                invited_by=owner.id,
                expires_at=utcnow() - timedelta(hours=1),
            )
        )
        current = await factory._save(
            Invite(
                organization_id=org.id,
                email="soon@example.com",
                token_hash=hash_invite_token("soon"),
                invited_by=owner.id,
                expires_at=utcnow() + timedelta(hours=1),
            )
        )

        with patch("app.tasks.invite_expiry.get_session_context", session_context):
            assert await expire_pending_invites({}) == 1
            assert await expire_pending_invites({}) == 0

        assert (await factory.get(Invite, overdue.id)).status == "expired"
        assert (await factory.get(Invite, current.id)).status == "pending"


class TestCreateLocalOwner:
    async def test_bootstraps_org_user_and_membership(self, session_context, session_maker):
        with patch("app.scripts.create_local_owner.get_session_context", session_context):
            await create_owner("Owner@Example.com", "secret123", "Demo Company", "demo")
            # Running twice is a no-op.
            await create_owner("owner@example.com", "secret123", "Demo Company", "demo")

        async with session_maker() as session:
            user = (await session.execute(select(User))).scalar_one()
            org = (await session.execute(select(Organization))).scalar_one()
            membership = (await session.execute(select(Membership))).scalar_one()

        assert user.email == "owner@example.com"
        assert org.slug == "demo"
        assert (membership.user_id, membership.organization_id, membership.role) == (
            user.id,
            org.id,
            "owner",
        )
