"""
auth/tokens.py -- Password hashing, JWT signing/verification, and cookie helpers.

Security design decisions:
  JWT: python-jose with HS256. Two token classes with disjoint claim shapes
       and separate secrets:
         access  -- sub, name, email, roles, type="access"; 15 min default
         refresh -- sub, jti, type="refresh"; 30 day default
       Verification returns None on any failure (bad signature, expired,
       wrong type, missing claims). Callers never learn *why* a token was
       rejected -- the route layer turns None into one uniform 401.

  Passwords: bcrypt directly (no passlib wrapper). Each hash embeds its own
       random salt. verify_password never raises; malformed hashes are False.

  Refresh-token persistence: sessions store HMAC-SHA256(refresh secret, token)
       rather than the raw token, so a leaked sessions table yields no usable
       credentials. Deterministic HMAC keeps lookup O(1) via a UNIQUE index.

  Missing secrets: TokenService refuses to sign with an empty secret and
       raises TokenConfigError. Settings already rejects this at startup; the
       check here covers direct construction.

Layer rule: no imports from api/ or cache/. Import from core/ is not needed
-- TokenService takes its secrets as constructor arguments.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.models import AccessClaims

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("storefront.auth")

_ALGORITHM = "HS256"

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"


class TokenConfigError(RuntimeError):
    """A signing secret is missing. Fatal configuration error, not a 401."""


# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------

_BCRYPT_MAX_BYTES = 72


def _bcrypt_input(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes, and current bcrypt releases
    reject longer input, so the encoded password is cut to that length.
    """
    return bcrypt.hashpw(_bcrypt_input(plain), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(_bcrypt_input(plain), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


# Timing equalization dummy hash [C1]. Login runs bcrypt against this when
# the email is unknown so response time does not reveal account existence.
DUMMY_HASH: str = hash_password("storefront_timing_dummy")


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------


class TokenService:
    """Sign and verify access and refresh tokens.

    Holds only configuration; safe to share across threads.

    Usage:
        tokens = TokenService.from_settings(get_settings())
        access = tokens.create_access_token(user.id, user.name, user.email, user.roles)
        claims = tokens.decode_access_token(access)   # AccessClaims | None
    """

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_expire_seconds: int = 15 * 60,
        refresh_expire_seconds: int = 30 * 24 * 3600,
    ) -> None:
        self._access_secret = access_secret
        self._refresh_secret = refresh_secret
        self.access_expire_seconds = access_expire_seconds
        self.refresh_expire_seconds = refresh_expire_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenService:
        return cls(
            access_secret=settings.access_token_secret,
            refresh_secret=settings.refresh_token_secret,
            access_expire_seconds=settings.access_token_seconds,
            refresh_expire_seconds=settings.refresh_token_seconds,
        )

    @staticmethod
    def _require(secret: str, name: str) -> str:
        if not secret:
            raise TokenConfigError(f"{name} is not configured")
        return secret

    def create_access_token(self, user_id: str, name: str, email: str, roles: list[str], now: datetime | None = None) -> str:
        """Encode a signed access JWT carrying the identity and role claims."""
        secret = self._require(self._access_secret, "ACCESS_TOKEN_SECRET")
        issued = now or datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "name": name,
            "email": email,
            "roles": list(roles),
            "type": "access",
            "iat": issued,
            "exp": issued + timedelta(seconds=self.access_expire_seconds),
        }
        return jwt.encode(payload, secret, algorithm=_ALGORITHM)

    def create_refresh_token(self, user_id: str, now: datetime | None = None) -> str:
        """Encode a signed refresh JWT whose only identity claim is the user id.

        jti makes every refresh token unique, even two issued to the same
        user in the same second -- the token doubles as the session key.
        """
        secret = self._require(self._refresh_secret, "REFRESH_TOKEN_SECRET")
        issued = now or datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "jti": secrets.token_hex(16),
            "type": "refresh",
            "iat": issued,
            "exp": issued + timedelta(seconds=self.refresh_expire_seconds),
        }
        return jwt.encode(payload, secret, algorithm=_ALGORITHM)

    def decode_access_token(self, token: str) -> AccessClaims | None:
        """Verify an access JWT. Returns the claims or None on any failure."""
        payload = self._decode(token, self._require(self._access_secret, "ACCESS_TOKEN_SECRET"), "access")
        if payload is None:
            return None
        try:
            return AccessClaims(
                id=str(payload["sub"]),
                name=str(payload["name"]),
                email=str(payload["email"]),
                roles=tuple(payload["roles"]),
            )
        except (KeyError, TypeError):
            return None

    def decode_refresh_token(self, token: str) -> str | None:
        """Verify a refresh JWT. Returns the user id or None on any failure."""
        payload = self._decode(token, self._require(self._refresh_secret, "REFRESH_TOKEN_SECRET"), "refresh")
        if payload is None or not payload.get("sub"):
            return None
        return str(payload["sub"])

    def hash_refresh_token(self, token: str) -> str:
        """Return HMAC-SHA256(refresh secret, token) as hex -- the session lookup key."""
        secret = self._require(self._refresh_secret, "REFRESH_TOKEN_SECRET")
        return hmac.new(secret.encode(), token.encode(), hashlib.sha256).hexdigest()

    @staticmethod
    def _decode(token: str, secret: str, token_type: str) -> dict | None:
        try:
            payload = jwt.decode(token, secret, algorithms=[_ALGORITHM])
        except JWTError as exc:
            logger.debug("%s token rejected: %s", token_type, exc)
            return None
        if payload.get("type") != token_type:
            return None
        return payload


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_auth_cookie(response, name: str, token: str, max_age: int, secure: bool) -> None:
    """Write a token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="strict": never sent on cross-site requests (CSRF mitigation).
    secure: only sent over HTTPS when SECURE_COOKIES=true (production).
    max_age: matches the JWT expiry so both expire together.
    """
    response.set_cookie(
        name,
        value=token,
        httponly=True,
        samesite="strict",
        secure=secure,
        max_age=max_age,
        path="/",
    )


def clear_auth_cookies(response) -> None:
    response.delete_cookie(ACCESS_COOKIE, path="/")
    response.delete_cookie(REFRESH_COOKIE, path="/")
