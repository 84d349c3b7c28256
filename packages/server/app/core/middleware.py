"""
HTTP middleware: response hardening headers, double-submit CSRF check for
cookie sessions, and a per-request time budget.

Errors produced here use the same ``{"error": {...}}`` envelope as the
rest of the API.
"""

from __future__ import annotations

import asyncio
import hmac

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from app.core.auth import CSRF_COOKIE, SESSION_COOKIE
from invoice_manager_shared.schemas.common import APIError, APIResponse

log = structlog.get_logger()

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})
CSRF_HEADER = "X-CSRF-Token"


def error_response(status: int, code: str, message: str) -> JSONResponse:
    body = APIResponse(error=APIError(code=code, message=message, status=status))
    return JSONResponse(status_code=status, content=body.model_dump(exclude={"data"}))


# ---------------------------------------------------------------------------
# Response headers
# ---------------------------------------------------------------------------

# Swagger UI loads its assets from jsdelivr; logos are previewed from blob: URLs.
CSP_DIRECTIVES = {
    "default-src": "'self'",
    "script-src": "'self' 'unsafe-inline' https://cdn.jsdelivr.net",
    "style-src": "'self' 'unsafe-inline' https://cdn.jsdelivr.net",
    "img-src": "'self' data: blob: https://fastapi.tiangolo.com",
    "frame-ancestors": "'none'",
}

SECURITY_HEADERS = {
    "Content-Security-Policy": "; ".join(f"{k} {v}" for k, v in CSP_DIRECTIVES.items()) + ";",
    "Strict-Transport-Security": "max-age=63072000; includeSubDomains; preload",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "0",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers.update(SECURITY_HEADERS)
        return response


# ---------------------------------------------------------------------------
# CSRF
# ---------------------------------------------------------------------------

def _csrf_exempt(request: Request) -> bool:
    """Only unsafe requests riding on the session cookie need the token."""
    return (
        request.method in SAFE_METHODS
        or bool(request.headers.get("Authorization"))
        or SESSION_COOKIE not in request.cookies
    )


class CSRFMiddleware(BaseHTTPMiddleware):
    """The ``im_csrf`` cookie must be echoed in the ``X-CSRF-Token`` header."""

    async def dispatch(self, request: Request, call_next) -> Response:
        if _csrf_exempt(request):
            return await call_next(request)

        cookie_token = request.cookies.get(CSRF_COOKIE, "")
        header_token = request.headers.get(CSRF_HEADER, "")
        if not cookie_token or not hmac.compare_digest(cookie_token.encode(), header_token.encode()):
            log.warning("csrf.rejected", path=request.url.path, method=request.method)
            return error_response(403, "CSRF_VALIDATION_FAILED", "Invalid or missing CSRF token.")

        return await call_next(request)


# ---------------------------------------------------------------------------
# Request timeout
# ---------------------------------------------------------------------------

class RequestTimeoutMiddleware(BaseHTTPMiddleware):
    """Answer 504 once a request runs past ``timeout_seconds``."""

    def __init__(self, app, timeout_seconds: float):
        super().__init__(app)
        self.timeout_seconds = timeout_seconds

    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            return await asyncio.wait_for(call_next(request), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            log.error(
                "request.timeout",
                path=request.url.path,
                method=request.method,
                timeout_seconds=self.timeout_seconds,
            )
            return error_response(504, "REQUEST_TIMEOUT", "The request took too long. Please try again.")
