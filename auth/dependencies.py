"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Credential resolution order:
  1. "access_token" cookie -- set by the login / refresh flows.
  2. Authorization: Bearer <token> header -- API clients.

Only the access token is accepted here; refresh tokens are read by the
refresh and logout routes directly from their own cookie.

try_get_current_claims() is the soft variant (returns None on failure).
get_current_claims() raises 401 with one uniform message no matter why the
token was rejected -- missing, malformed, expired, or badly signed.
require_roles() layers a role intersection check (403) on top.

On success the decoded AccessClaims are also attached to request.state.user
so middleware and handlers further down can read them without re-decoding.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Request

from auth.errors import Forbidden, Unauthorized
from auth.models import AccessClaims
from auth.tokens import ACCESS_COOKIE, TokenService

INVALID_TOKEN = "Invalid or expired token"


def _extract_token(request: Request) -> str | None:
    token = request.cookies.get(ACCESS_COOKIE)
    if token:
        return token
    auth_header = request.headers.get("Authorization", "")
    scheme, _, credentials = auth_header.partition(" ")
    if scheme == "Bearer" and credentials.strip():
        return credentials.strip()
    return None


def try_get_current_claims(request: Request) -> AccessClaims | None:
    """Authenticate the request via cookie or Bearer header. Never raises."""
    token = _extract_token(request)
    if not token:
        return None
    tokens: TokenService = request.app.state.tokens
    claims = tokens.decode_access_token(token)
    if claims is not None:
        request.state.user = claims
    return claims


def get_current_claims(request: Request) -> AccessClaims:
    """Require a valid access token. Raises 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(claims: AccessClaims = Depends(get_current_claims)): ...
    """
    claims = try_get_current_claims(request)
    if claims is None:
        raise Unauthorized(INVALID_TOKEN)
    return claims


def require_roles(*roles: str) -> Callable[[Request], AccessClaims]:
    """Build a dependency that requires at least one of roles.

    Usage:
        @router.delete("/products/{id}")
        def route(claims: AccessClaims = Depends(require_roles("VENDOR", "ADMIN"))): ...
    """
    required = {getattr(r, "value", r) for r in roles}

    def dependency(request: Request) -> AccessClaims:
        claims = get_current_claims(request)
        if not claims.has_any_role(required):
            raise Forbidden(f"Access denied. Required roles: {', '.join(sorted(required))}")
        return claims

    return dependency
