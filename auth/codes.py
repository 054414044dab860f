"""
auth/codes.py -- One-time verification codes.

A code is six decimal digits, uniform over 100000-999999, valid for a fixed
window (10 minutes by default) and single-use: whichever flow consumes it
clears both the code and its expiry on the User record.

Codes come from the secrets module (CSPRNG).
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta
from enum import Enum

from auth.models import User

CODE_LENGTH = 6
DEFAULT_CODE_TTL_SECONDS = 10 * 60


class CodeCheck(str, Enum):
    VALID = "valid"
    MISMATCH = "mismatch"
    EXPIRED = "expired"


def issue_code() -> str:
    """Return a fresh 6-digit code."""
    return str(100000 + secrets.randbelow(900000))


def code_expiry(now: datetime, ttl_seconds: int = DEFAULT_CODE_TTL_SECONDS) -> datetime:
    return now + timedelta(seconds=ttl_seconds)


def check_code(user: User, code: str, now: datetime) -> CodeCheck:
    """Compare a submitted code against the one stored on the user.

    A cleared (None) code never matches, so a consumed code cannot be
    replayed. The expiry is exclusive: a check at exactly expiry is still
    valid, one instant later is expired.
    """
    stored = user.verification_code
    if stored is None or not secrets.compare_digest(stored.encode(), code.encode()):
        return CodeCheck.MISMATCH
    if user.verification_code_expiry is None or user.verification_code_expiry < now:
        return CodeCheck.EXPIRED
    return CodeCheck.VALID
