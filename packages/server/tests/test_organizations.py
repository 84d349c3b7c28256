"""
Integration tests for organizations and the company profile.

Tests cover:
- Profile merge precedence (columns over legacy settings, empties as missing)
- Profile save writes columns and drops the legacy keys it replaced
- Logo validation before storage, upload, replacement and removal
- Logo files follow the database outcome (old file kept until commit)
- Onboarding (create org) and directory listing
"""

from __future__ import annotations

import pytest
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError

from app.core.storage import validate_logo
from app.models.organization import Organization
from app.services import organizations as org_service
from invoice_manager_shared.schemas.organizations import (
    OrgCreateRequest,
    OrgProfileUpdate,
    compose_address,
    merge_profile,
)

from conftest import bearer

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


# ---------------------------------------------------------------------------
# Schema validation tests (no DB needed)
# ---------------------------------------------------------------------------

class TestProfileMerge:
    def test_column_wins_over_settings(self):
        profile = merge_profile({"name": "Acme", "pib": "123", "settings": {"pib": "999"}})
        assert profile.pib == "123"

    def test_settings_used_when_column_missing(self):
        profile = merge_profile({"name": "Acme", "settings": {"pdv_number": "PDV-1", "phone": "033"}})
        assert profile.pdv_number == "PDV-1"
        assert profile.phone == "033"

    def test_empty_column_counts_as_missing(self):
        profile = merge_profile({"email": "", "settings": {"email": "office@acme.ba"}})
        assert profile.email == "office@acme.ba"

    def test_address_falls_back_to_settings(self):
        profile = merge_profile({"name": "Acme", "settings": {"address": "Main St"}})
        assert profile.address == "Main St"
        assert profile.street == ""

    def test_address_composed_from_columns(self):
        profile = merge_profile(
            {"address": "Titova 1", "city": "Sarajevo", "postal_code": "71000", "settings": {"address": "Old"}}
        )
        assert profile.address == "Titova 1, Sarajevo 71000"

    def test_nothing_anywhere(self):
        profile = merge_profile({"name": "Acme"})
        assert profile.pib == ""
        assert profile.address == ""
        assert profile.is_pdv_registered is False

    def test_works_on_model_instances(self):
        org = Organization(name="Acme", slug="acme", pib="123", settings={"pib": "999"})
        assert merge_profile(org).pib == "123"

    @pytest.mark.parametrize(
        "parts, expected",
        [
            (("Main 1", None, None), "Main 1"),
            (("Main 1", "Mostar", None), "Main 1, Mostar"),
            (("Main 1", None, "88000"), "Main 1 88000"),
            (("", "Mostar", "88000"), ""),
        ],
    )
    def test_compose_address(self, parts, expected):
        assert compose_address(*parts) == expected


class TestOrgCreateRequestValidation:
    def test_valid_slug(self):
        req = OrgCreateRequest(name="Test Org", slug="test-org")
        assert req.slug == "test-org"

    def test_invalid_slug_uppercase(self):
        with pytest.raises(Exception):
            OrgCreateRequest(name="Test", slug="Test-Org")

    def test_slug_too_short(self):
        with pytest.raises(Exception):
            OrgCreateRequest(name="Test", slug="a")

    def test_profile_update_pib_length(self):
        with pytest.raises(Exception):
            OrgProfileUpdate(pib="1" * 16)


class TestLogoValidation:
    @pytest.mark.parametrize("content_type", ["image/png", "image/jpeg", "image/jpg", "image/webp"])
    def test_allowed_types(self, content_type):
        assert validate_logo(content_type, 1024) == []

    @pytest.mark.parametrize("content_type", ["image/gif", "application/pdf", None])
    def test_rejected_types(self, content_type):
        assert validate_logo(content_type, 1024) == ["Allowed formats: PNG, JPG, WEBP"]

    def test_size_limit(self):
        assert validate_logo("image/png", 2 * 1024 * 1024) == []
        assert validate_logo("image/png", 2 * 1024 * 1024 + 1) == ["Maximum size is 2MB"]


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------

class TestOnboarding:
    async def test_create_org_makes_creator_owner(self, client, factory):
        user = await factory.user()
        resp = await client.post(
            "/api/v1/orgs", json={"name": "Nova Firma", "slug": "nova-firma"}, headers=bearer(user)
        )
        assert resp.status_code == 201
        assert resp.json()["role"] == "owner"

        resp = await client.get("/api/v1/orgs", headers=bearer(user))
        assert [o["slug"] for o in resp.json()["data"]] == ["nova-firma"]

    async def test_duplicate_slug(self, client, factory):
        user = await factory.user()
        await factory.org(slug="taken")
        resp = await client.post(
            "/api/v1/orgs", json={"name": "Other", "slug": "taken"}, headers=bearer(user)
        )
        assert resp.status_code == 409

    async def test_list_shows_role_per_org(self, client, factory):
        user = await factory.user()
        await factory.org(user, slug="mine")
        theirs = await factory.org(await factory.user(), slug="theirs")
        await factory.member(theirs, user)

        resp = await client.get("/api/v1/orgs", headers=bearer(user))
        assert [(o["slug"], o["role"]) for o in resp.json()["data"]] == [
            ("mine", "owner"),
            ("theirs", "employee"),
        ]


class TestProfileAPI:
    async def test_load_merged_profile(self, client, factory):
        owner = await factory.user()
        org = await factory.org(owner, pib="123", settings={"pib": "999", "address": "Main St"})

        resp = await client.get(f"/api/v1/orgs/{org.slug}/profile", headers=bearer(owner))
        assert resp.status_code == 200
        assert resp.json()["pib"] == "123"
        assert resp.json()["address"] == "Main St"

    async def test_save_writes_columns_and_drops_legacy_keys(self, client, factory):
        owner = await factory.user()
        org = await factory.org(
            owner, settings={"pib": "999", "address": "Old St", "theme": "dark"}
        )

        resp = await client.patch(
            f"/api/v1/orgs/{org.slug}/profile",
            json={
                "pib": "4200000000001",
                "address": "Titova 1",
                "city": "Sarajevo",
                "postal_code": "71000",
                "accountant_email": "books@racunovodja.ba",
                "is_pdv_registered": True,
            },
            headers=bearer(owner),
        )
        assert resp.status_code == 200
        assert resp.json()["address"] == "Titova 1, Sarajevo 71000"

        stored = await factory.get(Organization, org.id)
        assert stored.pib == "4200000000001"
        assert stored.address == "Titova 1"
        assert stored.accountant_email == "books@racunovodja.ba"
        assert stored.is_pdv_registered is True
        assert stored.settings == {"theme": "dark"}
        assert stored.name == "Acme d.o.o."

    async def test_employee_cannot_save(self, client, factory):
        owner = await factory.user()
        org = await factory.org(owner)
        employee = await factory.user()
        await factory.member(org, employee)

        resp = await client.patch(
            f"/api/v1/orgs/{org.slug}/profile", json={"name": "Hijacked"}, headers=bearer(employee)
        )
        assert resp.status_code == 403

    async def test_invalid_accountant_email(self, client, factory):
        owner = await factory.user()
        org = await factory.org(owner)
        resp = await client.patch(
            f"/api/v1/orgs/{org.slug}/profile",
            json={"accountant_email": "not-an-email"},
            headers=bearer(owner),
        )
        assert resp.status_code == 422

    @pytest.mark.parametrize("field", ["name", "is_pdv_registered"])
    async def test_required_field_cannot_be_cleared(self, client, factory, field):
        owner = await factory.user()
        org = await factory.org(owner, is_pdv_registered=True)
        resp = await client.patch(
            f"/api/v1/orgs/{org.slug}/profile", json={field: None}, headers=bearer(owner)
        )
        assert resp.status_code == 422

        stored = await factory.get(Organization, org.id)
        assert stored.name == "Acme d.o.o."
        assert stored.is_pdv_registered is True


class TestLogoAPI:
    async def test_upload_and_remove(self, client, factory, logo_storage):
        owner = await factory.user()
        org = await factory.org(owner)

        resp = await client.post(
            f"/api/v1/orgs/{org.slug}/logo",
            files={"logo": ("logo.png", PNG_BYTES, "image/png")},
            headers=bearer(owner),
        )
        assert resp.status_code == 200
        logo_url = resp.json()["logo_url"]
        assert logo_url.startswith(f"/media/logos/{org.id}/")
        stored_path = logo_storage.root / logo_storage.key_for(logo_url)
        assert stored_path.read_bytes() == PNG_BYTES

        resp = await client.delete(f"/api/v1/orgs/{org.slug}/logo", headers=bearer(owner))
        assert resp.status_code == 200
        assert resp.json()["logo_url"] is None
        assert not stored_path.exists()

    async def test_wrong_type_rejected_before_storage(self, client, factory, logo_storage):
        owner = await factory.user()
        org = await factory.org(owner)

        resp = await client.post(
            f"/api/v1/orgs/{org.slug}/logo",
            files={"logo": ("logo.gif", b"GIF89a", "image/gif")},
            headers=bearer(owner),
        )
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Allowed formats: PNG, JPG, WEBP"
        assert not logo_storage.root.exists()

    async def test_oversized_rejected(self, client, factory, logo_storage):
        owner = await factory.user()
        org = await factory.org(owner)

        resp = await client.post(
            f"/api/v1/orgs/{org.slug}/logo",
            files={"logo": ("big.png", b"\x00" * (2 * 1024 * 1024 + 1), "image/png")},
            headers=bearer(owner),
        )
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Maximum size is 2MB"
        stored = await factory.get(Organization, org.id)
        assert stored.logo_url is None

    async def test_replacing_logo_removes_previous_file(self, client, db, factory, logo_storage):
        owner = await factory.user()
        org = await factory.org(owner)
        previous_url = logo_storage.save(org.id, PNG_BYTES, "image/png")
        stored = await db.get(Organization, org.id)
        stored.logo_url = previous_url
        await db.commit()

        resp = await client.post(
            f"/api/v1/orgs/{org.slug}/logo",
            files={"logo": ("logo.webp", PNG_BYTES, "image/webp")},
            headers=bearer(owner),
        )
        assert resp.status_code == 200
        new_url = resp.json()["logo_url"]
        assert new_url != previous_url
        assert not (logo_storage.root / logo_storage.key_for(previous_url)).exists()
        assert (logo_storage.root / logo_storage.key_for(new_url)).exists()


class TestLogoStorageConsistency:
    async def test_previous_file_kept_until_commit(self, db, factory, logo_storage):
        owner = await factory.user()
        seeded = await factory.org(owner)
        previous_url = logo_storage.save(seeded.id, PNG_BYTES, "image/png")
        org = await db.get(Organization, seeded.id)
        org.logo_url = previous_url
        await db.commit()

        await org_service.upload_logo(org, PNG_BYTES, "image/png", logo_storage, db)
        previous_path = logo_storage.root / logo_storage.key_for(previous_url)
        assert previous_path.exists()

        await db.rollback()
        assert previous_path.exists()

    async def test_new_file_removed_when_write_fails(self, db, factory, logo_storage, engine):
        owner = await factory.user()
        seeded = await factory.org(owner)
        async with engine.begin() as conn:
            await conn.execute(text(
                "CREATE TRIGGER organizations_locked BEFORE UPDATE ON organizations "
                "BEGIN SELECT RAISE(ABORT, 'organizations locked'); END"
            ))
        org = await db.get(Organization, seeded.id)

        with pytest.raises(DBAPIError):
            await org_service.upload_logo(org, PNG_BYTES, "image/png", logo_storage, db)
        assert list(logo_storage.root.rglob("*.png")) == []
