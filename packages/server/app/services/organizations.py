"""
Organization service - directory lookups, onboarding and company profile.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import HTTPException
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.storage import LogoStorage, validate_logo
from app.models.base import utcnow
from app.models.membership import Membership
from app.models.organization import Organization
from invoice_manager_shared.schemas.common import Role
from invoice_manager_shared.schemas.organizations import (
    LEGACY_SETTINGS_KEYS,
    OrgCreateRequest,
    OrgProfile,
    OrgProfileUpdate,
    OrgResponse,
    OrganizationWithRole,
    merge_profile,
)

log = structlog.get_logger()

# Profile columns that may be omitted from an update but never cleared.
REQUIRED_PROFILE_FIELDS = {
    "name": "Company name cannot be empty",
    "is_pdv_registered": "PDV registration must be true or false",
}


def with_role(org: Organization, role: str) -> OrganizationWithRole:
    return OrganizationWithRole(
        **OrgResponse.model_validate(org).model_dump(),
        role=Role(role),
    )


# ---------------------------------------------------------------------------
# Directory
# ---------------------------------------------------------------------------

async def list_user_orgs(
    user_id: uuid.UUID, session: AsyncSession
) -> list[OrganizationWithRole]:
    """List all orgs a user belongs to, with their role, oldest membership first."""
    result = await session.execute(
        select(Organization, Membership.role)
        .join(Membership, Membership.organization_id == Organization.id)
        .where(Membership.user_id == user_id)
        .order_by(Membership.created_at)
    )
    return [with_role(org, role) for org, role in result.all()]


async def create_org(
    req: OrgCreateRequest,
    creator_id: uuid.UUID,
    session: AsyncSession,
) -> Organization:
    """Create an org and make the creator its owner."""
    existing = await session.execute(
        select(Organization).where(Organization.slug == req.slug)
    )
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=409, detail="Org slug already taken")

    org = Organization(name=req.name, slug=req.slug, settings={})
    session.add(org)
    await session.flush()

    membership = Membership(
        user_id=creator_id,
        organization_id=org.id,
        role=Role.OWNER.value,
    )
    session.add(membership)
    await session.flush()

    log.info("org.created", org_id=str(org.id), slug=req.slug, creator=str(creator_id))
    return org


async def get_org(org_slug: str, session: AsyncSession) -> Organization:
    """Get an org by slug; raises 404 if not found."""
    result = await session.execute(
        select(Organization).where(Organization.slug == org_slug)
    )
    org = result.scalar_one_or_none()
    if not org:
        raise HTTPException(status_code=404, detail="Organization not found")
    return org


# ---------------------------------------------------------------------------
# Company profile
# ---------------------------------------------------------------------------

def load_profile(org: Organization) -> OrgProfile:
    return merge_profile(org)


async def save_profile(
    org: Organization,
    req: OrgProfileUpdate,
    session: AsyncSession,
) -> Organization:
    """Write profile fields to their columns.

    Legacy ``settings`` copies of the written fields are dropped so the
    read-side fallback cannot resurface stale values; unrelated settings
    keys are kept.
    """
    data = req.model_dump(exclude_unset=True)
    for field, detail in REQUIRED_PROFILE_FIELDS.items():
        if field in data and data[field] is None:
            raise HTTPException(status_code=422, detail=detail)

    for key, value in data.items():
        setattr(org, key, value)

    written_legacy = set(data) & set(LEGACY_SETTINGS_KEYS)
    if written_legacy:
        org.settings = {
            k: v for k, v in (org.settings or {}).items() if k not in written_legacy
        }

    org.updated_at = utcnow()
    session.add(org)
    await session.flush()

    log.info("org.profile_saved", org_id=str(org.id), fields=sorted(data))
    return org


def _delete_after_commit(session: AsyncSession, storage: LogoStorage, url: str) -> None:
    """Remove a replaced file only once the row no longer points at it."""
    event.listen(
        session.sync_session,
        "after_commit",
        lambda _session: storage.delete(url),
        once=True,
    )


async def upload_logo(
    org: Organization,
    content: bytes,
    content_type: str | None,
    storage: LogoStorage,
    session: AsyncSession,
) -> Organization:
    """Validate and store a new logo, replacing the previous one."""
    errors = validate_logo(content_type, len(content))
    if errors:
        raise HTTPException(status_code=400, detail="; ".join(errors))

    previous = org.logo_url
    new_url = storage.save(org.id, content, content_type)
    org.logo_url = new_url
    org.updated_at = utcnow()
    session.add(org)
    try:
        await session.flush()
    except Exception:
        storage.delete(new_url)
        raise

    if previous:
        _delete_after_commit(session, storage, previous)

    log.info("org.logo_uploaded", org_id=str(org.id), size_bytes=len(content))
    return org


async def remove_logo(
    org: Organization,
    storage: LogoStorage,
    session: AsyncSession,
) -> Organization:
    previous = org.logo_url
    org.logo_url = None
    org.updated_at = utcnow()
    session.add(org)
    await session.flush()

    if previous:
        _delete_after_commit(session, storage, previous)

    log.info("org.logo_removed", org_id=str(org.id))
    return org
