"""
api/routes/v1/auth.py -- Registration, verification, login and token endpoints.

Routes:
  POST /api/v1/auth/register                  -- create (201) or re-register unverified (200)
  POST /api/v1/auth/verify                    -- consume the registration code
  POST /api/v1/auth/login                     -- password login; sets both token cookies
  POST /api/v1/auth/forgot-password           -- issue a reset code
  POST /api/v1/auth/resend-verification-code  -- issue a fresh registration code
  POST /api/v1/auth/check-verification-code   -- confirm a code without consuming it
  POST /api/v1/auth/reset-password            -- consume a reset code; set new password
  POST /api/v1/auth/refresh-token             -- new access cookie from the refresh cookie
  POST /api/v1/auth/logout                    -- delete the session; clear both cookies

Security:
  [H2] Login, registration and every code endpoint are rate-limited per IP.
  [C1] AuthService.login runs bcrypt even for unknown emails (timing equalization).
  [M5] Cache-Control: no-store on every response that carries a token.
  Failures are raised as AuthError kinds and rendered by api/main.py.
"""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.limiter import auth_rate_limit, limiter
from api.models import (
    CheckCodeRequest,
    EmailRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RefreshResponse,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    UserResponse,
    VerifyRequest,
)
from auth.service import AuthService
from auth.tokens import ACCESS_COOKIE, REFRESH_COOKIE, clear_auth_cookies, set_auth_cookie

# Auth policy: every route in this module is public. refresh-token and
# logout authenticate with the refresh cookie instead of an access token.
router = APIRouter()


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


def _message(message: str, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=MessageResponse(message=message).model_dump())


# ---------------------------------------------------------------------------
# Registration and verification
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=RegisterResponse, status_code=201)
@limiter.limit(auth_rate_limit)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Register a new account, or re-register an email that was never verified.

    201 when a new identity is created, 200 when an unverified record is
    overwritten. A verified email is a 409.
    """
    result = _service(request).register(body.name, body.email, body.password)
    return JSONResponse(
        status_code=201 if result.created else 200,
        content=RegisterResponse(
            message="Account Successfully Registered",
            user=UserResponse.from_user(result.user),
        ).model_dump(mode="json"),
    )


@router.post("/auth/verify", response_model=MessageResponse)
@limiter.limit(auth_rate_limit)
def verify(request: Request, body: VerifyRequest) -> JSONResponse:
    _service(request).verify(body.email, body.verification_code)
    return _message("Email verified successfully")


@router.post("/auth/resend-verification-code", response_model=MessageResponse)
@limiter.limit(auth_rate_limit)
def resend_verification_code(request: Request, body: EmailRequest) -> JSONResponse:
    _service(request).resend_verification_code(body.email)
    return _message("Verification code resent to your email")


@router.post("/auth/check-verification-code", response_model=MessageResponse)
@limiter.limit(auth_rate_limit)
def check_verification_code(request: Request, body: CheckCodeRequest) -> JSONResponse:
    _service(request).check_verification_code(body.email, body.verification_code)
    return _message("Verification code is valid")


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


@router.post("/auth/forgot-password", response_model=MessageResponse)
@limiter.limit(auth_rate_limit)
def forgot_password(request: Request, body: EmailRequest) -> JSONResponse:
    _service(request).forgot_password(body.email)
    return _message("Verification code sent to your email")


@router.post("/auth/reset-password", response_model=MessageResponse)
@limiter.limit(auth_rate_limit)
def reset_password(request: Request, body: ResetPasswordRequest) -> JSONResponse:
    _service(request).reset_password(body.email, body.verification_code, body.new_password)
    return _message("Password reset successful")


# ---------------------------------------------------------------------------
# Login, refresh, logout
# ---------------------------------------------------------------------------


@router.post("/auth/login", response_model=LoginResponse)
@limiter.limit(auth_rate_limit)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; set access and refresh cookies.

    Unverified accounts get 403 before the password is checked. Unknown
    email and wrong password share one 401 message.
    """
    service = _service(request)
    result = service.login(
        body.email,
        body.password,
        ip_address=request.client.host if request.client else "",
        user_agent=request.headers.get("user-agent", ""),
    )
    tokens = service.tokens
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            message="Login Successfully",
            user=UserResponse.from_user(result.user),
            access_token=result.access_token,
            expires_in=tokens.access_expire_seconds,
        ).model_dump(mode="json"),
    )
    secure = request.app.state.settings.secure_cookies
    set_auth_cookie(resp, ACCESS_COOKIE, result.access_token, tokens.access_expire_seconds, secure)
    set_auth_cookie(resp, REFRESH_COOKIE, result.refresh_token, tokens.refresh_expire_seconds, secure)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/refresh-token", response_model=RefreshResponse)
def refresh_token(request: Request) -> JSONResponse:
    """Exchange a live refresh cookie for a new access cookie.

    The refresh token itself is not rotated. An expired or revoked session
    is a 401 even when the refresh JWT still verifies.
    """
    service = _service(request)
    result = service.refresh(request.cookies.get(REFRESH_COOKIE))
    tokens = service.tokens
    resp = JSONResponse(
        status_code=200,
        content=RefreshResponse(
            message="Access token refreshed successfully",
            access_token=result.access_token,
            expires_in=tokens.access_expire_seconds,
        ).model_dump(),
    )
    set_auth_cookie(
        resp,
        ACCESS_COOKIE,
        result.access_token,
        tokens.access_expire_seconds,
        request.app.state.settings.secure_cookies,
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request) -> JSONResponse:
    """Delete the session behind the refresh cookie (if any) and clear both cookies."""
    _service(request).logout(request.cookies.get(REFRESH_COOKIE))
    resp = _message("Logout successful")
    clear_auth_cookies(resp)
    return resp
