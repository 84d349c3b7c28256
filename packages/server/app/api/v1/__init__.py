"""
API v1 Router

All org-scoped endpoints are prefixed with /orgs/{orgSlug}.
"""

from fastapi import APIRouter
from . import invoices, members, session
from .organizations import router_global as orgs_global_router
from .organizations import router_scoped as orgs_scoped_router

router = APIRouter()

# Organization routes (non-org-scoped: list, create)
router.include_router(orgs_global_router)

# Organization routes (org-scoped: details, profile, logo)
router.include_router(orgs_scoped_router, prefix="/orgs/{orgSlug}", tags=["Organizations"])

# Session / tenant selection
router.include_router(session.router, prefix="/session", tags=["Session"])

# Invite redemption happens before the caller is a member
router.include_router(members.router_global)

# Include resource routers
router.include_router(invoices.router, prefix="/orgs/{orgSlug}/invoices", tags=["Invoices"])
router.include_router(members.router, prefix="/orgs/{orgSlug}/members", tags=["Members"])


@router.get("/", tags=["API"])
async def api_root():
    """API root - returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/orgs",
            "/session",
            "/invites/accept",
            "/orgs/{orgSlug}/profile",
            "/orgs/{orgSlug}/invoices",
            "/orgs/{orgSlug}/members",
        ],
    }
