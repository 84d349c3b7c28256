"""
Account endpoints (not org-scoped).

POST /auth/register  - Create an account and its profile, start a session
POST /auth/login     - Email/password sign-in; users without an org may sign in
POST /auth/refresh   - Rotate the session token
POST /auth/logout    - Revoke the session token and clear cookies
GET  /auth/me        - The caller and their profile
"""

from __future__ import annotations

import uuid
from typing import Optional

import jwt
import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import (
    CSRF_COOKIE,
    SESSION_COOKIE,
    bearer_scheme,
    create_jwt,
    decode_jwt,
    generate_csrf_token,
    get_current_user,
    hash_password,
    read_session,
    request_session_token,
    revoke_jwt,
    session_ttl_seconds,
    verify_password,
)
from app.core.config import get_settings
from app.core.database import get_session
from app.models.profile import Profile
from app.models.user import User

log = structlog.get_logger()
settings = get_settings()
router = APIRouter()

# User-facing messages; backend error text is never passed through.
INVALID_CREDENTIALS = "Invalid email or password"
EMAIL_TAKEN = "Email already registered"


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str
    display_name: str = Field(..., min_length=1, max_length=200)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class AuthResponse(BaseModel):
    user_id: str
    email: str
    access_token: str
    message: str


class MeResponse(BaseModel):
    id: uuid.UUID
    email: str
    full_name: Optional[str] = None
    current_organization_id: Optional[uuid.UUID] = None


def _start_session(response: Response, user: User, message: str) -> AuthResponse:
    """Issue a token, set the session and CSRF cookies, and build the body."""
    token, _jti = create_jwt(user.id)
    cookie = {
        "secure": not settings.debug,
        "samesite": "lax",
        "path": "/",
        "max_age": session_ttl_seconds(),
    }
    response.set_cookie(SESSION_COOKIE, token, httponly=True, **cookie)
    # Readable by the page so it can echo it in X-CSRF-Token.
    response.set_cookie(CSRF_COOKIE, generate_csrf_token(), httponly=False, **cookie)
    return AuthResponse(user_id=str(user.id), email=user.email, access_token=token, message=message)


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(
    body: RegisterRequest,
    response: Response,
    session: AsyncSession = Depends(get_session),
):
    """Create the account; onboarding creates the first organization."""
    if len(body.password) < settings.min_password_length:
        raise HTTPException(
            status_code=400,
            detail=f"Password must be at least {settings.min_password_length} characters",
        )

    email = body.email.lower()
    existing = await session.execute(select(User.id).where(User.email == email))
    if existing.first() is not None:
        raise HTTPException(status_code=409, detail=EMAIL_TAKEN)

    user = User(email=email, password_hash=hash_password(body.password))
    session.add(user)
    try:
        await session.flush()
    except IntegrityError:
        raise HTTPException(status_code=409, detail=EMAIL_TAKEN)

    # Upsert keyed by the new user id.
    profile = await session.get(Profile, user.id) or Profile(id=user.id)
    profile.full_name = body.display_name
    session.add(profile)
    await session.flush()

    log.info("user.registered", user_id=str(user.id))
    return _start_session(response, user, "Registration successful")


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    response: Response,
    session: AsyncSession = Depends(get_session),
):
    result = await session.execute(select(User).where(User.email == body.email.lower()))
    user = result.scalar_one_or_none()

    if user is None or not user.password_hash:
        log.warning("auth.login_failure", reason="unknown_user")
        raise HTTPException(status_code=401, detail=INVALID_CREDENTIALS)
    if not verify_password(body.password, user.password_hash):
        log.warning("auth.login_failure", user_id=str(user.id), reason="bad_password")
        raise HTTPException(status_code=401, detail=INVALID_CREDENTIALS)

    log.info("auth.login_success", user_id=str(user.id))
    return _start_session(response, user, "Login successful")


@router.post("/refresh", response_model=AuthResponse)
async def refresh_session(
    request: Request,
    response: Response,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_session),
):
    """Issue a fresh token and revoke the one presented."""
    claims = await read_session(request_session_token(request, credentials))
    user = await session.get(User, claims.user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")

    refreshed = _start_session(response, user, "Session refreshed")
    if claims.jti:
        await revoke_jwt(claims.jti, ttl_seconds=session_ttl_seconds())
    return refreshed


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
):
    token = request_session_token(request, credentials)
    jti = None
    if token:
        try:
            jti = decode_jwt(token).get("jti")
        except jwt.PyJWTError:
            pass  # already unusable; clearing cookies is enough
    if jti:
        await revoke_jwt(jti, ttl_seconds=session_ttl_seconds())

    response.delete_cookie(SESSION_COOKIE, path="/")
    response.delete_cookie(CSRF_COOKIE, path="/")
    return {"message": "Logged out"}


@router.get("/me", response_model=MeResponse)
async def me(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    profile = await session.get(Profile, user.id)
    return MeResponse(
        id=user.id,
        email=user.email,
        full_name=profile.full_name if profile else None,
        current_organization_id=profile.current_organization_id if profile else None,
    )
