"""
auth/models.py -- Domain dataclasses for identity and session entities.

Pattern: Data class (pure data container). Stores and the service do the
work; the only behaviour here is the cache DTO round-trip on User, which
lives next to the shape it serializes so the two cannot drift apart.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class Role(str, Enum):
    USER = "USER"
    VENDOR = "VENDOR"
    ADMIN = "ADMIN"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass
class User:
    """An account (identity) record.

    roles is an ordered list of Role values; a user may hold several.
    verification_code and verification_code_expiry are set together or
    cleared together -- a code never exists without an expiry.
    """

    name: str
    email: str  # stored lowercased; the lookup key as stored
    hashed_password: str
    roles: list[str] = field(default_factory=lambda: [Role.USER.value])
    id: str | None = None
    is_verified: bool = False
    verification_code: str | None = None
    verification_code_expiry: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_cache(self) -> dict[str, Any]:
        """Serialize to a JSON-safe dict. Datetimes become ISO-8601 strings."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "hashed_password": self.hashed_password,
            "roles": list(self.roles),
            "is_verified": self.is_verified,
            "verification_code": self.verification_code,
            "verification_code_expiry": _iso(self.verification_code_expiry),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    @classmethod
    def from_cache(cls, data: dict[str, Any]) -> User:
        """Rebuild a User from to_cache() output, restoring typed datetimes.

        Raises KeyError/ValueError/TypeError on a malformed payload; the
        repository treats that as a cache miss.
        """
        return cls(
            id=data["id"],
            name=data["name"],
            email=data["email"],
            hashed_password=data["hashed_password"],
            roles=list(data["roles"]),
            is_verified=bool(data["is_verified"]),
            verification_code=data.get("verification_code"),
            verification_code_expiry=_parse_iso(data.get("verification_code_expiry")),
            created_at=_parse_iso(data.get("created_at")),
            updated_at=_parse_iso(data.get("updated_at")),
        )


@dataclass
class Session:
    """One issued refresh token, i.e. one logged-in device.

    token_hash is HMAC-SHA256(refresh secret, raw token). The raw refresh
    token lives only in the client's cookie; lookups hash the presented
    value first (same scheme as the API-key lookup it replaced).
    """

    user_id: str
    token_hash: str
    expire_at: datetime
    ip_address: str = ""
    user_agent: str = ""
    id: str | None = None
    created_at: datetime | None = None

    def is_active(self, now: datetime) -> bool:
        return now < self.expire_at


@dataclass(frozen=True)
class AccessClaims:
    """Decoded access-token payload attached to an authenticated request."""

    id: str
    name: str
    email: str
    roles: tuple[str, ...]

    def has_any_role(self, required: set[str]) -> bool:
        return bool(required.intersection(self.roles))
