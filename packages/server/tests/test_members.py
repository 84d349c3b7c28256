"""
Tests for team members and invitations.

Covers:
- Member listing order, names and caller-only email resolution
- Owner removal is rejected, employee removal returns the reloaded list
- Owner-only management
- Invite state machine: issue, accept, revoke, expiry
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi import HTTPException

from app.models.base import utcnow
from app.models.invite import Invite
from app.models.membership import Membership
from app.services import members as member_service
from invoice_manager_shared.schemas.members import (
    INVITE_TRANSITIONS,
    InviteCreateRequest,
    InviteStatus,
    can_transition,
)

from conftest import bearer


# ---------------------------------------------------------------------------
# Invite transitions (no DB needed)
# ---------------------------------------------------------------------------

class TestInviteTransitions:
    def test_pending_exits(self):
        assert set(INVITE_TRANSITIONS[InviteStatus.PENDING]) == {
            InviteStatus.ACCEPTED,
            InviteStatus.EXPIRED,
            InviteStatus.REVOKED,
        }

    @pytest.mark.parametrize("status", [InviteStatus.ACCEPTED, InviteStatus.EXPIRED, InviteStatus.REVOKED])
    def test_terminal_states(self, status):
        assert INVITE_TRANSITIONS[status] == []
        for target in InviteStatus:
            assert not can_transition(status, target)

    def test_invite_request_validates_email(self):
        with pytest.raises(Exception):
            InviteCreateRequest(email="not-an-email")


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

class TestMemberList:
    async def test_order_names_and_emails(self, client, factory):
        owner = await factory.user(email="owner@example.com", full_name="Olga Owner")
        org = await factory.org(owner)
        employee = await factory.user(email="emp@example.com", full_name="Emir Employee")
        await factory.member(org, employee)

        resp = await client.get(f"/api/v1/orgs/{org.slug}/members", headers=bearer(employee))
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert [m["full_name"] for m in data] == ["Olga Owner", "Emir Employee"]
        assert [m["role"] for m in data] == ["owner", "employee"]

        # Only the caller's own email is resolvable.
        assert data[0]["email"] == "user@email.com"
        assert data[0]["email_resolved"] is False
        assert data[1]["email"] == "emp@example.com"
        assert data[1]["email_resolved"] is True

    async def test_non_member_cannot_list(self, client, factory):
        org = await factory.org(await factory.user())
        outsider = await factory.user()
        resp = await client.get(f"/api/v1/orgs/{org.slug}/members", headers=bearer(outsider))
        assert resp.status_code == 404


class TestRemoveMember:
    async def test_owner_cannot_be_removed(self, db, factory):
        owner = await factory.user()
        org = await factory.org(owner)
        membership_id = (await member_service.list_members(org.id, owner, db))[0].id

        with pytest.raises(HTTPException) as exc:
            await member_service.remove_member(org.id, membership_id, db)
        assert exc.value.status_code == 409
        assert await db.get(Membership, membership_id) is not None

    async def test_remove_employee_returns_reloaded_list(self, client, factory):
        owner = await factory.user(full_name="Owner")
        org = await factory.org(owner)
        employee = await factory.user(full_name="Employee")
        membership = await factory.member(org, employee)

        resp = await client.delete(
            f"/api/v1/orgs/{org.slug}/members/{membership.id}", headers=bearer(owner)
        )
        assert resp.status_code == 200
        assert [m["full_name"] for m in resp.json()["data"]] == ["Owner"]
        assert await factory.get(Membership, membership.id) is None

    async def test_remove_owner_via_api_is_conflict(self, client, factory):
        owner = await factory.user()
        org = await factory.org(owner)
        resp = await client.get(f"/api/v1/orgs/{org.slug}/members", headers=bearer(owner))
        owner_membership = resp.json()["data"][0]["id"]

        resp = await client.delete(
            f"/api/v1/orgs/{org.slug}/members/{owner_membership}", headers=bearer(owner)
        )
        assert resp.status_code == 409

    async def test_employee_cannot_remove(self, client, factory):
        owner = await factory.user()
        org = await factory.org(owner)
        employee = await factory.user()
        await factory.member(org, employee)
        other = await factory.user()
        target = await factory.member(org, other)

        resp = await client.delete(
            f"/api/v1/orgs/{org.slug}/members/{target.id}", headers=bearer(employee)
        )
        assert resp.status_code == 403
        assert await factory.get(Membership, target.id) is not None

    async def test_member_of_other_org_not_found(self, db, factory):
        org = await factory.org(await factory.user())
        other_org = await factory.org(await factory.user())
        foreign = await factory.member(other_org, await factory.user())

        with pytest.raises(HTTPException) as exc:
            await member_service.remove_member(org.id, foreign.id, db)
        assert exc.value.status_code == 404


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------

class TestInvites:
    async def test_invite_and_accept(self, client, factory):
        owner = await factory.user()
        org = await factory.org(owner)

        resp = await client.post(
            f"/api/v1/orgs/{org.slug}/members/invites",
            json={"email": "New.Hire@Example.com", "name": "New Hire", "phone": "+387 61 000 000"},
            headers=bearer(owner),
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["invite"]["status"] == "pending"
        assert body["invite"]["email"] == "new.hire@example.com"
        assert body["invite"]["role"] == "employee"
        token = body["token"]

        invitee = await factory.user(email="new.hire@example.com")
        resp = await client.post("/api/v1/invites/accept", json={"token": token}, headers=bearer(invitee))
        assert resp.status_code == 200
        assert resp.json()["id"] == str(org.id)
        assert resp.json()["role"] == "employee"

        resp = await client.get(f"/api/v1/orgs/{org.slug}/members/invites", headers=bearer(owner))
        invite = resp.json()["data"][0]
        assert invite["status"] == "accepted"
        assert invite["accepted_at"] is not None

        # Accepted is terminal.
        resp = await client.post("/api/v1/invites/accept", json={"token": token}, headers=bearer(invitee))
        assert resp.status_code == 409

    async def test_duplicate_pending_invite(self, db, factory):
        owner = await factory.user()
        org = await factory.org(owner)
        req = InviteCreateRequest(email="dup@example.com")

        await member_service.invite_member(org.id, req, owner.id, db)
        with pytest.raises(HTTPException) as exc:
            await member_service.invite_member(org.id, req, owner.id, db)
        assert exc.value.status_code == 409

    async def test_inviting_existing_member(self, db, factory):
        owner = await factory.user()
        org = await factory.org(owner)
        employee = await factory.user(email="already@example.com")
        await factory.member(org, employee)

        with pytest.raises(HTTPException) as exc:
            await member_service.invite_member(
                org.id, InviteCreateRequest(email="already@example.com"), owner.id, db
            )
        assert exc.value.status_code == 409

    async def test_revoke(self, db, factory):
        owner = await factory.user()
        org = await factory.org(owner)
        invitee = await factory.user(email="x@example.com")
        invite, token = await member_service.invite_member(
            org.id, InviteCreateRequest(email="x@example.com"), owner.id, db
        )

        await member_service.revoke_invite(org.id, invite.id, db)
        assert invite.status == "revoked"

        with pytest.raises(HTTPException) as exc:
            await member_service.revoke_invite(org.id, invite.id, db)
        assert exc.value.status_code == 409

        with pytest.raises(HTTPException):
            await member_service.accept_invite(token, invitee, db)

    async def test_expired_invite(self, db, factory):
        owner = await factory.user()
        org = await factory.org(owner)
        invitee = await factory.user(email="late@example.com")
        invite, token = await member_service.invite_member(
            org.id, InviteCreateRequest(email="late@example.com"), owner.id, db
        )
        invite.expires_at = utcnow() - timedelta(minutes=1)
        db.add(invite)
        await db.flush()

        with pytest.raises(HTTPException) as exc:
            await member_service.accept_invite(token, invitee, db)
        assert exc.value.status_code == 409

        invites = await member_service.list_invites(org.id, db)
        assert invites[0].status == "expired"

    async def test_expired_invite_can_be_reissued(self, db, factory):
        owner = await factory.user()
        org = await factory.org(owner)
        req = InviteCreateRequest(email="again@example.com")
        first, _ = await member_service.invite_member(org.id, req, owner.id, db)
        first.expires_at = utcnow() - timedelta(hours=1)
        db.add(first)
        await db.flush()

        second, _ = await member_service.invite_member(org.id, req, owner.id, db)
        assert first.status == "expired"
        assert second.status == "pending"

    async def test_sweep_expires_stale_invites(self, db, factory):
        owner = await factory.user()
        org = await factory.org(owner)
        stale, _ = await member_service.invite_member(
            org.id, InviteCreateRequest(email="a@example.com"), owner.id, db
        )
        fresh, _ = await member_service.invite_member(
            org.id, InviteCreateRequest(email="b@example.com"), owner.id, db
        )
        stale.expires_at = utcnow() - timedelta(seconds=5)
        db.add(stale)
        await db.flush()

        assert await member_service.expire_stale_invites(db) == 1
        assert stale.status == "expired"
        assert fresh.status == "pending"

    async def test_accept_requires_matching_email(self, db, factory):
        owner = await factory.user()
        org = await factory.org(owner)
        stranger = await factory.user(email="wrong@example.com")
        _, token = await member_service.invite_member(
            org.id, InviteCreateRequest(email="right@example.com"), owner.id, db
        )

        with pytest.raises(HTTPException) as exc:
            await member_service.accept_invite(token, stranger, db)
        assert exc.value.status_code == 403

    async def test_unknown_token(self, db, factory):
        user = await factory.user()
        with pytest.raises(HTTPException) as exc:
            await member_service.accept_invite("nope", user, db)
        assert exc.value.status_code == 404

    async def test_employee_cannot_invite(self, client, factory):
        owner = await factory.user()
        org = await factory.org(owner)
        employee = await factory.user()
        await factory.member(org, employee)

        resp = await client.post(
            f"/api/v1/orgs/{org.slug}/members/invites",
            json={"email": "someone@example.com"},
            headers=bearer(employee),
        )
        assert resp.status_code == 403

    async def test_token_is_stored_hashed(self, db, factory):
        owner = await factory.user()
        org = await factory.org(owner)
        invite, token = await member_service.invite_member(
            org.id, InviteCreateRequest(email="h@example.com"), owner.id, db
        )
        stored = await db.get(Invite, invite.id)
        assert stored.token_hash != token
        assert stored.token_hash == member_service.hash_invite_token(token)
