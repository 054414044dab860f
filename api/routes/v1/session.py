"""
api/routes/v1/session.py -- Session listing and revocation.

Routes:
  GET    /api/v1/session                     -- list the caller's sessions
  DELETE /api/v1/session/all-except-current  -- revoke every other session of the caller
  DELETE /api/v1/session/{session_id}        -- revoke one of the caller's sessions

all-except-current is registered before {session_id} so the literal path is
not captured as a session id.

IDOR guard: every store call is scoped by the caller's id from the access
token. A session id belonging to someone else is indistinguishable from a
missing one (404).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import MessageResponse, RevokeResponse, SessionListResponse, SessionResponse
from auth.dependencies import get_current_claims
from auth.models import AccessClaims
from auth.service import AuthService
from auth.tokens import REFRESH_COOKIE

# Auth policy:
# - all routes require a valid access token (router-level dependency)
router = APIRouter(dependencies=[Depends(get_current_claims)])


@router.get("/session", response_model=SessionListResponse)
def list_sessions(request: Request, claims: AccessClaims = Depends(get_current_claims)) -> SessionListResponse:
    """List the caller's sessions, newest first, flagging the current one."""
    service: AuthService = request.app.state.auth_service
    current = request.cookies.get(REFRESH_COOKIE)
    current_hash = service.tokens.hash_refresh_token(current) if current else None
    return SessionListResponse(
        sessions=[SessionResponse.from_session(s, current_hash) for s in service.list_sessions(claims.id)]
    )


@router.delete("/session/all-except-current", response_model=RevokeResponse)
def revoke_other_sessions(request: Request, claims: AccessClaims = Depends(get_current_claims)) -> RevokeResponse:
    """Log out every device of the caller except the one presenting this refresh cookie."""
    service: AuthService = request.app.state.auth_service
    removed = service.revoke_other_sessions(claims.id, request.cookies.get(REFRESH_COOKIE))
    return RevokeResponse(message="Session successfully deleted", revoked=removed)


@router.delete("/session/{session_id}", response_model=MessageResponse)
def revoke_session(
    request: Request,
    session_id: str,
    claims: AccessClaims = Depends(get_current_claims),
) -> MessageResponse:
    service: AuthService = request.app.state.auth_service
    service.revoke_session(claims.id, session_id)
    return MessageResponse(message="Session successfully deleted")
