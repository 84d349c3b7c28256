"""
Tenant context: which organizations the caller belongs to and which one is active.

``TenantContext`` is the single owner of the active-organization selection.
It reads memberships through an ``OrganizationDirectory`` so it can run
against the database (``DatabaseDirectory``) or an in-memory fake in tests.
"""

from __future__ import annotations

import uuid
from typing import Optional, Protocol

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.profile import Profile
from app.models.user import User
from app.services.organizations import list_user_orgs
from invoice_manager_shared.schemas.common import Role
from invoice_manager_shared.schemas.organizations import OrganizationWithRole
from invoice_manager_shared.schemas.session import (
    Permissions,
    SessionResponse,
    derive_permissions,
)

log = structlog.get_logger()


class OrganizationDirectory(Protocol):
    async def list_memberships(self, user_id: uuid.UUID) -> list[OrganizationWithRole]:
        ...

    async def get_current_org_id(self, user_id: uuid.UUID) -> Optional[uuid.UUID]:
        ...

    async def save_current_org_id(self, user_id: uuid.UUID, org_id: uuid.UUID) -> None:
        ...


class UserNotFound(LookupError):
    pass


class DatabaseDirectory:
    """Directory backed by memberships and the remembered selection on ``profiles``."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_memberships(self, user_id: uuid.UUID) -> list[OrganizationWithRole]:
        if await self.session.get(User, user_id) is None:
            raise UserNotFound(str(user_id))
        return await list_user_orgs(user_id, self.session)

    async def get_current_org_id(self, user_id: uuid.UUID) -> Optional[uuid.UUID]:
        profile = await self.session.get(Profile, user_id)
        return profile.current_organization_id if profile else None

    async def save_current_org_id(self, user_id: uuid.UUID, org_id: uuid.UUID) -> None:
        # Savepoint: a failed write rolls back alone and the request can still commit.
        async with self.session.begin_nested():
            profile = await self.session.get(Profile, user_id)
            if profile is None:
                profile = Profile(id=user_id)
            profile.current_organization_id = org_id
            self.session.add(profile)


class TenantContext:
    """Active organization state for one user.

    Every refresh or switch takes a new generation number; a refresh that
    finishes after a newer operation started drops its result, so a slow
    load can never overwrite a later selection.
    """

    def __init__(self, user_id: Optional[uuid.UUID], directory: OrganizationDirectory):
        self.user_id = user_id
        self.directory = directory
        self.organizations: list[OrganizationWithRole] = []
        self.current_organization: Optional[OrganizationWithRole] = None
        self.is_loading = True
        self._generation = 0
        self._latest_refresh = 0

    # -- derived state -----------------------------------------------------

    @property
    def role(self) -> Optional[Role]:
        return self.current_organization.role if self.current_organization else None

    @property
    def permissions(self) -> Permissions:
        return derive_permissions(self.role)

    @property
    def is_owner(self) -> bool:
        return self.permissions.is_owner

    @property
    def can_manage_members(self) -> bool:
        return self.permissions.can_manage_members

    @property
    def can_manage_projects(self) -> bool:
        return self.permissions.can_manage_projects

    @property
    def can_export_reports(self) -> bool:
        return self.permissions.can_export_reports

    @property
    def needs_onboarding(self) -> bool:
        return not self.is_loading and not self.organizations

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    # -- operations ----------------------------------------------------------

    async def _load(self) -> tuple[list[OrganizationWithRole], Optional[uuid.UUID]]:
        if self.user_id is None:
            return [], None
        try:
            orgs = await self.directory.list_memberships(self.user_id)
            saved_id = await self.directory.get_current_org_id(self.user_id) if orgs else None
        except Exception as e:
            log.error("session.load_failed", user_id=str(self.user_id), error=str(e))
            return [], None
        return orgs, saved_id

    async def refresh_organizations(self) -> None:
        """Reload memberships and settle the active organization."""
        generation = self._next_generation()
        self._latest_refresh = generation
        self.is_loading = True

        orgs, saved_id = await self._load()
        if generation != self._generation:
            log.debug("session.refresh_discarded", user_id=str(self.user_id), generation=generation)
            if generation == self._latest_refresh:
                # Superseded by a switch only; nothing else is loading.
                self.is_loading = False
            return

        self.organizations = orgs
        self.is_loading = False

        if not orgs:
            self.current_organization = None
            return

        restored = next((o for o in orgs if o.id == saved_id), None)
        if restored is not None:
            self.current_organization = restored
            return

        self.current_organization = orgs[0]
        await self._persist(orgs[0].id)

    async def switch_organization(self, org_id: uuid.UUID) -> None:
        """Select another organization. Ids outside the loaded list are ignored."""
        target = next((o for o in self.organizations if o.id == org_id), None)
        if target is None:
            log.info("session.switch_ignored", user_id=str(self.user_id), org_id=str(org_id))
            return

        self._next_generation()
        self.current_organization = target
        await self._persist(target.id)
        log.info("session.switched", user_id=str(self.user_id), org_id=str(org_id))

    async def _persist(self, org_id: uuid.UUID) -> None:
        try:
            await self.directory.save_current_org_id(self.user_id, org_id)
        except Exception as e:
            log.warning(
                "session.persist_failed",
                user_id=str(self.user_id),
                org_id=str(org_id),
                error=str(e),
            )

    def snapshot(self) -> SessionResponse:
        return SessionResponse(
            current_organization=self.current_organization,
            organizations=self.organizations,
            role=self.role,
            permissions=self.permissions,
            needs_onboarding=self.needs_onboarding,
        )
