"""
auth/service.py -- Registration, verification, login and session flows.

AuthService composes the identity repository, the session store, the token
service and the one-time-code helpers into the account state machine:

    (none) --register--> unverified + code --verify--> verified
    verified --login--> access + refresh tokens, new Session row
    verified --forgot_password--> code set --reset_password--> code cleared
    unverified --resend_verification_code--> fresh code
    any --check_verification_code--> read-only confirmation
    refresh: live Session + valid refresh token -> new access token
    logout: delete the Session matching the presented refresh token

Every failure raises exactly one AuthError kind (auth/errors.py). Lower
layers report absence with None/False; this module decides which kind
that absence means for the caller.

Known behaviour kept as-is: registering an email whose record exists but is
not yet verified overwrites that record's name, password and code (retry of
an abandoned signup). Only a verified email is a conflict.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import IntegrityError

from auth.codes import DEFAULT_CODE_TTL_SECONDS, CodeCheck, check_code, code_expiry, issue_code
from auth.errors import Conflict, Forbidden, NotFound, Unauthorized, ValidationFailed
from auth.models import Role, Session, User
from auth.repository import IdentityRepository
from auth.store import SessionStore
from auth.tokens import DUMMY_HASH, TokenService, hash_password, verify_password

logger = logging.getLogger("storefront.auth")

USER_NOT_FOUND = "User not exist with this email"
INVALID_CODE = "Invalid verification code"
EXPIRED_CODE = "Verification code expired"
INVALID_CREDENTIALS = "Invalid credentials"
INVALID_REFRESH = "Invalid or expired refresh token"


@dataclass
class RegisterResult:
    user: User
    created: bool  # False when an unverified record was overwritten


@dataclass
class LoginResult:
    user: User
    access_token: str
    refresh_token: str
    session: Session


@dataclass
class RefreshResult:
    user: User
    access_token: str


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuthService:
    def __init__(
        self,
        identities: IdentityRepository,
        sessions: SessionStore,
        tokens: TokenService,
        code_ttl_seconds: int = DEFAULT_CODE_TTL_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.identities = identities
        self.sessions = sessions
        self.tokens = tokens
        self.code_ttl_seconds = code_ttl_seconds
        self._clock = clock

    # ------------------------------------------------------------------
    # Registration and verification
    # ------------------------------------------------------------------

    def register(self, name: str, email: str, password: str) -> RegisterResult:
        existing = self.identities.get_user_by_email(email)
        if existing is not None and existing.is_verified:
            raise Conflict(f"User already exist with this email: {email}")

        code, expiry = self._new_code()
        hashed = hash_password(password)

        if existing is None:
            try:
                user = self.identities.create_user(
                    User(
                        name=name,
                        email=email,
                        hashed_password=hashed,
                        roles=[Role.USER.value],
                        verification_code=code,
                        verification_code_expiry=expiry,
                    )
                )
            except IntegrityError as exc:
                # A concurrent registration for the same email won the insert.
                raise Conflict(f"User already exist with this email: {email}") from exc
            created = True
        else:
            user = self._update(
                existing.id,
                name=name,
                hashed_password=hashed,
                verification_code=code,
                verification_code_expiry=expiry,
                roles=[Role.USER.value],
            )
            created = False

        logger.info("verification code issued user_id=%s reason=register", user.id)
        return RegisterResult(user=user, created=created)

    def verify(self, email: str, code: str) -> User:
        user = self._require_user(email)
        self._check(user, code)
        return self._update(user.id, is_verified=True, verification_code=None, verification_code_expiry=None)

    def resend_verification_code(self, email: str) -> None:
        user = self._require_user(email)
        if user.is_verified:
            raise ValidationFailed("User already verified")
        code, expiry = self._new_code()
        self._update(user.id, verification_code=code, verification_code_expiry=expiry)
        logger.info("verification code issued user_id=%s reason=resend", user.id)

    def check_verification_code(self, email: str, code: str) -> None:
        """Confirm a code without consuming it."""
        user = self._require_user(email)
        self._check(user, code)

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def forgot_password(self, email: str) -> None:
        user = self.identities.get_user_by_email(email)
        if user is None or not user.is_verified:
            raise NotFound(USER_NOT_FOUND)
        code, expiry = self._new_code()
        self._update(user.id, verification_code=code, verification_code_expiry=expiry)
        logger.info("verification code issued user_id=%s reason=forgot_password", user.id)

    def reset_password(self, email: str, code: str, new_password: str) -> None:
        user = self.identities.get_user_by_email(email)
        if user is None or not user.is_verified:
            raise NotFound(USER_NOT_FOUND)
        self._check(user, code)
        self._update(
            user.id,
            hashed_password=hash_password(new_password),
            verification_code=None,
            verification_code_expiry=None,
        )
        logger.info("password reset user_id=%s", user.id)

    # ------------------------------------------------------------------
    # Login, refresh, logout
    # ------------------------------------------------------------------

    def login(self, email: str, password: str, ip_address: str = "", user_agent: str = "") -> LoginResult:
        """Authenticate and open a new session.

        Unverified accounts are rejected with Forbidden before the password
        is checked, so an unverified login is never reported as a bad
        password.
        """
        user = self.identities.get_user_by_email(email)
        if user is None:
            # Equalize timing -- do NOT return before running bcrypt [C1]
            verify_password(password, DUMMY_HASH)
            raise Unauthorized(INVALID_CREDENTIALS)
        if not user.is_verified:
            raise Forbidden("Please verify your email to login")
        if not verify_password(password, user.hashed_password):
            raise Unauthorized(INVALID_CREDENTIALS)

        access_token = self._access_token(user)
        refresh_token = self.tokens.create_refresh_token(user.id)
        session = self.sessions.create_session(
            Session(
                user_id=user.id,
                token_hash=self.tokens.hash_refresh_token(refresh_token),
                ip_address=ip_address,
                user_agent=user_agent,
                expire_at=self._clock() + timedelta(seconds=self.tokens.refresh_expire_seconds),
            )
        )
        logger.info("login user_id=%s session_id=%s", user.id, session.id)
        return LoginResult(user=user, access_token=access_token, refresh_token=refresh_token, session=session)

    def refresh(self, refresh_token: str | None) -> RefreshResult:
        """Issue a new access token for a live session. The refresh token is not rotated."""
        if not refresh_token:
            raise Unauthorized("Refresh token not found")
        user_id = self.tokens.decode_refresh_token(refresh_token)
        session = self.sessions.get_session_by_token(self.tokens.hash_refresh_token(refresh_token))
        if (
            user_id is None
            or session is None
            or session.user_id != user_id
            or not session.is_active(self._clock())
        ):
            raise Unauthorized(INVALID_REFRESH)

        user = self.identities.get_user_by_id(user_id)
        if user is None:
            raise NotFound("User not found")
        return RefreshResult(user=user, access_token=self._access_token(user))

    def logout(self, refresh_token: str | None) -> bool:
        """Delete the session matching refresh_token. Returns True if one was deleted."""
        if not refresh_token:
            return False
        session = self.sessions.get_session_by_token(self.tokens.hash_refresh_token(refresh_token))
        if session is None:
            return False
        return self.sessions.delete_session_by_id(session.id)

    # ------------------------------------------------------------------
    # Sessions (authenticated)
    # ------------------------------------------------------------------

    def list_sessions(self, user_id: str) -> list[Session]:
        return self.sessions.get_sessions_by_user(user_id)

    def revoke_session(self, user_id: str, session_id: str) -> None:
        if not self.sessions.delete_session_by_id(session_id, user_id=user_id):
            raise NotFound("Requested session does not exist")

    def revoke_other_sessions(self, user_id: str, current_refresh_token: str | None) -> int:
        """Revoke every session of user_id except the one behind current_refresh_token."""
        keep = self.tokens.hash_refresh_token(current_refresh_token) if current_refresh_token else None
        removed = self.sessions.delete_sessions_except(user_id, keep)
        logger.info("revoked %d other sessions user_id=%s", removed, user_id)
        return removed

    # ------------------------------------------------------------------
    # Profile (authenticated)
    # ------------------------------------------------------------------

    def get_profile(self, user_id: str) -> User:
        user = self.identities.get_user_by_id(user_id)
        if user is None:
            raise Unauthorized("User not authenticated")
        return user

    def update_profile(self, user_id: str, name: str) -> User:
        self.get_profile(user_id)
        return self._update(user_id, name=name)

    def change_password(self, user_id: str, current_password: str, new_password: str) -> User:
        user = self.get_profile(user_id)
        if not verify_password(current_password, user.hashed_password):
            raise Unauthorized("Current password is incorrect")
        return self._update(user_id, hashed_password=hash_password(new_password))

    # ------------------------------------------------------------------
    # Operator
    # ------------------------------------------------------------------

    def create_admin(self, name: str, email: str, password: str) -> User:
        """Create a verified admin account (bootstrap CLI)."""
        if self.identities.get_user_by_email(email) is not None:
            raise Conflict(f"User already exist with this email: {email}")
        return self.identities.create_user(
            User(
                name=name,
                email=email,
                hashed_password=hash_password(password),
                roles=[Role.ADMIN.value, Role.USER.value],
                is_verified=True,
            )
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _new_code(self) -> tuple[str, datetime]:
        return issue_code(), code_expiry(self._clock(), self.code_ttl_seconds)

    def _require_user(self, email: str) -> User:
        user = self.identities.get_user_by_email(email)
        if user is None:
            raise NotFound(USER_NOT_FOUND)
        return user

    def _check(self, user: User, code: str) -> None:
        result = check_code(user, code, self._clock())
        if result is CodeCheck.MISMATCH:
            raise ValidationFailed(INVALID_CODE)
        if result is CodeCheck.EXPIRED:
            raise ValidationFailed(EXPIRED_CODE)

    def _update(self, user_id: str, **fields) -> User:
        user = self.identities.update_user_by_id(user_id, **fields)
        if user is None:
            raise NotFound("User not found")
        return user

    def _access_token(self, user: User) -> str:
        return self.tokens.create_access_token(user.id, user.name, user.email, user.roles)
