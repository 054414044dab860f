"""
tests/test_config.py -- Settings validation and duration parsing.

Covers:
  - duration strings ("15m", "30d") become seconds; junk is rejected
  - production mode refuses to start without both signing secrets
  - dev mode generates distinct secrets
  - short or shared secrets are rejected
"""

from __future__ import annotations

import pytest

from core.config import Settings, parse_duration

ACCESS = "a" * 40
REFRESH = "r" * 40


@pytest.mark.parametrize(
    ("value", "seconds"),
    [("15m", 900), ("30d", 2_592_000), ("12h", 43_200), ("45s", 45), ("900", 900)],
)
def test_parse_duration(value: str, seconds: int) -> None:
    assert parse_duration(value) == seconds


@pytest.mark.parametrize("value", ["", "15x", "m15", "-5m", "0s"])
def test_parse_duration_rejects(value: str) -> None:
    with pytest.raises(ValueError):
        parse_duration(value)


def test_expiry_properties() -> None:
    settings = Settings(_env_file=None, access_token_secret=ACCESS, refresh_token_secret=REFRESH)
    assert settings.access_token_seconds == 15 * 60
    assert settings.refresh_token_seconds == 30 * 86400


def test_invalid_expiry_is_rejected() -> None:
    with pytest.raises(ValueError):
        Settings(
            _env_file=None,
            access_token_secret=ACCESS,
            refresh_token_secret=REFRESH,
            access_token_expiry="soon",
        )


def test_production_requires_secrets(monkeypatch) -> None:
    monkeypatch.delenv("ACCESS_TOKEN_SECRET", raising=False)
    monkeypatch.delenv("REFRESH_TOKEN_SECRET", raising=False)
    with pytest.raises(ValueError, match="ACCESS_TOKEN_SECRET is required"):
        Settings(_env_file=None, debug=False)


def test_dev_mode_generates_distinct_secrets(monkeypatch) -> None:
    monkeypatch.delenv("ACCESS_TOKEN_SECRET", raising=False)
    monkeypatch.delenv("REFRESH_TOKEN_SECRET", raising=False)
    settings = Settings(_env_file=None, debug=True)
    assert len(settings.access_token_secret) >= 32
    assert settings.access_token_secret != settings.refresh_token_secret


def test_short_secret_is_rejected() -> None:
    with pytest.raises(ValueError, match="at least 32 characters"):
        Settings(_env_file=None, access_token_secret="short", refresh_token_secret=REFRESH)


def test_shared_secret_is_rejected() -> None:
    with pytest.raises(ValueError, match="must differ"):
        Settings(_env_file=None, access_token_secret=ACCESS, refresh_token_secret=ACCESS)


def test_env_vars_are_read(monkeypatch) -> None:
    monkeypatch.setenv("ACCESS_TOKEN_SECRET", ACCESS)
    monkeypatch.setenv("REFRESH_TOKEN_SECRET", REFRESH)
    monkeypatch.setenv("CACHE_TTL_SECONDS", "60")
    settings = Settings(_env_file=None, debug=False)
    assert settings.access_token_secret == ACCESS
    assert settings.cache_ttl_seconds == 60
