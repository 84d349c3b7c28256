"""Session/tenant state schemas and permission derivation."""

from __future__ import annotations

import uuid
from typing import Optional

from pydantic import BaseModel

from .common import Role
from .organizations import OrganizationWithRole


class Permissions(BaseModel):
    is_owner: bool = False
    can_manage_members: bool = False
    can_manage_projects: bool = True
    can_export_reports: bool = True


def derive_permissions(role: Optional[Role]) -> Permissions:
    """Capability flags for a role in the active organization.

    Project management and report export are open regardless of role; only
    member management is restricted to owners.
    """
    is_owner = role == Role.OWNER
    return Permissions(is_owner=is_owner, can_manage_members=is_owner)


class SwitchOrganizationRequest(BaseModel):
    organization_id: uuid.UUID


class SessionResponse(BaseModel):
    current_organization: Optional[OrganizationWithRole] = None
    organizations: list[OrganizationWithRole]
    role: Optional[Role] = None
    permissions: Permissions
    needs_onboarding: bool = False
