"""
Sessions and access control.

A session is a signed JWT carried either in the ``im_session`` cookie
(browsers, paired with the ``im_csrf`` double-submit cookie) or in an
``Authorization: Bearer`` header. Logging out or rotating a session puts
its ``jti`` on a Redis revocation list until the token would have expired.

Org-scoped routes resolve ``{orgSlug}`` against the caller's memberships;
callers outside the organization get the same 404 as an unknown slug.
"""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import NamedTuple, Optional

import bcrypt
import jwt
import structlog
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import get_settings
from app.core.database import get_session, set_tenant_scope
from app.core.redis import get_redis
from app.models.membership import Membership
from app.models.organization import Organization
from app.models.user import User
from app.services.organizations import get_org
from invoice_manager_shared.schemas.common import Role

log = structlog.get_logger()
settings = get_settings()

SESSION_COOKIE = "im_session"
CSRF_COOKIE = "im_csrf"
BCRYPT_ROUNDS = 12

bearer_scheme = HTTPBearer(auto_error=False)


class IssuedToken(NamedTuple):
    token: str
    jti: str


class SessionClaims(NamedTuple):
    user_id: uuid.UUID
    jti: Optional[str]


def session_ttl_seconds() -> int:
    return settings.jwt_expire_minutes * 60


# -- passwords ---------------------------------------------------------------

def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode()


def verify_password(password: str, hashed: str) -> bool:
    return bcrypt.checkpw(password.encode(), hashed.encode())


# -- tokens --------------------------------------------------------------------

def create_jwt(user_id: uuid.UUID, *, expires_delta: timedelta | None = None) -> IssuedToken:
    """Sign a session token for ``user_id``. Unpacks as ``(token, jti)``."""
    issued_at = datetime.now(timezone.utc)
    lifetime = expires_delta or timedelta(minutes=settings.jwt_expire_minutes)
    jti = str(uuid.uuid4())
    claims = {"sub": str(user_id), "jti": jti, "iat": issued_at, "exp": issued_at + lifetime}
    return IssuedToken(jwt.encode(claims, settings.secret_key, algorithm=settings.jwt_algorithm), jti)


def decode_jwt(token: str) -> dict:
    """Verify signature and expiry. Raises ``jwt.PyJWTError``."""
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


def generate_csrf_token() -> str:
    return secrets.token_urlsafe(32)


def _revocation_key(jti: str) -> str:
    return f"jwt:revoked:{jti}"


async def revoke_jwt(jti: str, ttl_seconds: int = 3600) -> None:
    redis = await get_redis()
    await redis.setex(_revocation_key(jti), ttl_seconds, "1")


async def is_jwt_revoked(jti: str) -> bool:
    redis = await get_redis()
    return await redis.exists(_revocation_key(jti)) > 0


def request_session_token(
    request: Request, credentials: Optional[HTTPAuthorizationCredentials]
) -> Optional[str]:
    """Bearer header first, then the session cookie."""
    if credentials and credentials.scheme.lower() == "bearer":
        return credentials.credentials
    return request.cookies.get(SESSION_COOKIE)


async def read_session(token: Optional[str]) -> SessionClaims:
    """Validate a session token and return its subject. Raises 401."""
    if not token:
        raise HTTPException(status_code=401, detail="Authentication required")
    try:
        payload = decode_jwt(token)
        user_id = uuid.UUID(payload["sub"])
    except (jwt.PyJWTError, KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    jti = payload.get("jti")
    if jti and await is_jwt_revoked(jti):
        raise HTTPException(status_code=401, detail="Session has been revoked")
    return SessionClaims(user_id, jti)


# -- dependencies ----------------------------------------------------------------

class AuthenticatedUser:
    """The caller together with the organization named in the route."""

    def __init__(self, user: User, org: Organization, membership: Membership):
        self.user = user
        self.org = org
        self.membership = membership
        self.role = Role(membership.role)

    @property
    def user_id(self) -> uuid.UUID:
        return self.user.id

    @property
    def org_id(self) -> uuid.UUID:
        return self.org.id

    @property
    def is_owner(self) -> bool:
        return self.role == Role.OWNER


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_session),
) -> User:
    claims = await read_session(request_session_token(request, credentials))
    user = await session.get(User, claims.user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user


async def get_authenticated_user(
    orgSlug: str,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> AuthenticatedUser:
    org = await get_org(orgSlug, session)
    await set_tenant_scope(session, org.id)

    membership = (
        await session.execute(
            select(Membership).where(
                Membership.organization_id == org.id, Membership.user_id == user.id
            )
        )
    ).scalar_one_or_none()
    if membership is None:
        log.debug("auth.not_a_member", user_id=str(user.id), org_id=str(org.id))
        raise HTTPException(status_code=404, detail="Organization not found")

    return AuthenticatedUser(user=user, org=org, membership=membership)


async def require_member(
    auth: AuthenticatedUser = Depends(get_authenticated_user),
) -> AuthenticatedUser:
    return auth


async def require_owner(
    auth: AuthenticatedUser = Depends(get_authenticated_user),
) -> AuthenticatedUser:
    if not auth.is_owner:
        raise HTTPException(status_code=403, detail="Owner access required")
    return auth
