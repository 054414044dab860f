"""
api/routes/v1/users.py -- The caller's own profile.

Routes:
  GET /api/v1/users/me               -- sanitized profile of the caller
  PUT /api/v1/users/update           -- change display name
  PUT /api/v1/users/update-password  -- change password (current password required)

Reads go through the cache-aside repository; writes update the durable store
first and then both cache keys.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import ChangePasswordRequest, UpdateProfileRequest, UserEnvelope, UserResponse
from auth.dependencies import get_current_claims
from auth.models import AccessClaims
from auth.service import AuthService

# Auth policy:
# - all routes require a valid access token (router-level dependency)
router = APIRouter(dependencies=[Depends(get_current_claims)])


@router.get("/users/me", response_model=UserEnvelope)
def me(request: Request, claims: AccessClaims = Depends(get_current_claims)) -> UserEnvelope:
    service: AuthService = request.app.state.auth_service
    return UserEnvelope(user=UserResponse.from_user(service.get_profile(claims.id)))


@router.put("/users/update", response_model=UserEnvelope)
def update_profile(
    request: Request,
    body: UpdateProfileRequest,
    claims: AccessClaims = Depends(get_current_claims),
) -> UserEnvelope:
    """Change the caller's display name.

    The access token keeps the old name until it is next refreshed.
    """
    service: AuthService = request.app.state.auth_service
    return UserEnvelope(user=UserResponse.from_user(service.update_profile(claims.id, body.name)))


@router.put("/users/update-password", response_model=UserEnvelope)
def update_password(
    request: Request,
    body: ChangePasswordRequest,
    claims: AccessClaims = Depends(get_current_claims),
) -> UserEnvelope:
    service: AuthService = request.app.state.auth_service
    user = service.change_password(claims.id, body.current_password, body.new_password)
    return UserEnvelope(user=UserResponse.from_user(user))
