"""Unit tests for auth/codes.py -- one-time code issue and checking."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from auth.codes import CodeCheck, check_code, code_expiry, issue_code
from auth.models import User

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def _user(code: str | None, expiry: datetime | None) -> User:
    return User(
        name="Alice",
        email="a@x.com",
        hashed_password="h",
        verification_code=code,
        verification_code_expiry=expiry,
    )


def test_issue_code_is_six_digits_in_range() -> None:
    for _ in range(500):
        code = issue_code()
        assert len(code) == 6
        assert code.isdigit()
        assert 100000 <= int(code) <= 999999


def test_code_expiry_is_ten_minutes_by_default() -> None:
    assert code_expiry(T0) == T0 + timedelta(minutes=10)


def test_matching_code_before_expiry_is_valid() -> None:
    user = _user("123456", code_expiry(T0))
    assert check_code(user, "123456", T0 + timedelta(minutes=10) - timedelta(seconds=1)) is CodeCheck.VALID


def test_code_after_expiry_is_expired() -> None:
    user = _user("123456", code_expiry(T0))
    assert check_code(user, "123456", T0 + timedelta(minutes=10, seconds=1)) is CodeCheck.EXPIRED


def test_wrong_code_is_mismatch_even_when_expired() -> None:
    user = _user("123456", code_expiry(T0))
    assert check_code(user, "654321", T0) is CodeCheck.MISMATCH
    assert check_code(user, "654321", T0 + timedelta(hours=1)) is CodeCheck.MISMATCH


def test_cleared_code_never_matches() -> None:
    assert check_code(_user(None, None), "123456", T0) is CodeCheck.MISMATCH
