"""
Shared fixtures: in-memory SQLite database, API client with dependency
overrides, Redis stubbed out, and small factories for seeding rows.
"""

from __future__ import annotations

import os

os.environ.setdefault("IM_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("IM_SECRET_KEY", "test-secret-key-with-enough-length-for-hs256")

import uuid
from decimal import Decimal
from typing import Any, Optional
from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from app import models  # noqa: F401
from app.core.auth import create_jwt, hash_password
from app.core.database import get_session
from app.core.storage import LogoStorage, get_logo_storage
from app.main import app
from app.models.invoice import Invoice
from app.models.membership import Membership
from app.models.organization import Organization
from app.models.profile import Profile
from app.models.user import User


@compiles(JSONB, "sqlite")
def compile_jsonb(element, compiler, **_kw):  # pragma: no cover - test setup helper
    return "JSON"


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


# ---------------------------------------------------------------------------
# Redis (revocation list) is not available in tests
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def revocations():
    """Stub the Redis-backed revocation list. Yields the revoke mock."""
    revoke = AsyncMock()
    with patch("app.core.auth.is_jwt_revoked", new=AsyncMock(return_value=False)), \
         patch("app.api.v1.auth.revoke_jwt", new=revoke):
        yield revoke


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------

@pytest.fixture
def logo_storage(tmp_path):
    return LogoStorage(root=tmp_path / "media", base_url="/media")


@pytest.fixture
async def client(session_maker, logo_storage):
    async def override_get_session():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_logo_storage] = lambda: logo_storage
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def bearer(user: User) -> dict:
    token, _jti = create_jwt(user.id)
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

class Factory:
    """Seeds rows through its own committed sessions."""

    def __init__(self, session_maker):
        self.session_maker = session_maker

    async def _save(self, *rows):
        async with self.session_maker() as session:
            session.add_all(rows)
            await session.commit()
        return rows[0] if len(rows) == 1 else rows

    async def user(
        self,
        email: Optional[str] = None,
        password: Optional[str] = None,
        full_name: Optional[str] = None,
    ) -> User:
        user = User(
            email=email or f"user-{uuid.uuid4().hex[:8]}@example.com",
            password_hash=hash_password(password) if password else None,
        )
        await self._save(user)
        if full_name is not None:
            await self._save(Profile(id=user.id, full_name=full_name))
        return user

    async def org(self, owner: Optional[User] = None, **fields: Any) -> Organization:
        fields.setdefault("name", "Acme d.o.o.")
        fields.setdefault("slug", f"acme-{uuid.uuid4().hex[:8]}")
        fields.setdefault("settings", {})
        org = Organization(**fields)
        await self._save(org)
        if owner is not None:
            await self.member(org, owner, role="owner")
        return org

    async def member(self, org: Organization, user: User, role: str = "employee") -> Membership:
        return await self._save(
            Membership(organization_id=org.id, user_id=user.id, role=role)
        )

    async def invoice(self, org: Organization, user: User, **fields: Any) -> Invoice:
        fields.setdefault("status", "pending")
        fields.setdefault("file_url", "https://files.example.com/invoice.pdf")
        return await self._save(
            Invoice(organization_id=org.id, user_id=user.id, **fields)
        )

    async def get(self, model, pk):
        async with self.session_maker() as session:
            return await session.get(model, pk)


@pytest.fixture
def factory(session_maker):
    return Factory(session_maker)


@pytest.fixture
def processed_fields():
    return {
        "status": "processed",
        "invoice_number": "INV-2024-001",
        "vendor_name": "Dobavljac d.o.o.",
        "subtotal": Decimal("100.00"),
        "tax_amount": Decimal("17.00"),
        "total_amount": Decimal("117.00"),
        "currency": "BAM",
        "line_items": [{"description": "Consulting", "quantity": 1, "unit_price": 100, "amount": 100}],
    }
