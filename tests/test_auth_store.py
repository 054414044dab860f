"""Unit tests for auth/store.py -- UserStore and SessionStore on in-memory SQLite."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import Session, User
from auth.store import SessionStore, UserStore


def _user(email: str = "a@x.com") -> User:
    return User(name="Alice", email=email, hashed_password="h")


def _session(user_id: str, token_hash: str, expire_at: datetime | None = None) -> Session:
    return Session(
        user_id=user_id,
        token_hash=token_hash,
        expire_at=expire_at or datetime.now(timezone.utc) + timedelta(days=30),
        ip_address="10.0.0.1",
        user_agent="pytest",
    )


class TestUserStore:
    def test_create_fills_id_and_timestamps(self, user_store: UserStore) -> None:
        user = user_store.create_user(_user())
        assert user.id
        assert user.created_at is not None
        assert user.updated_at is not None
        assert user.roles == ["USER"]
        assert user.is_verified is False

    def test_lookups(self, user_store: UserStore) -> None:
        user = user_store.create_user(_user())
        assert user_store.get_by_id(user.id).email == "a@x.com"
        assert user_store.get_by_email("a@x.com").id == user.id
        assert user_store.get_by_email("b@x.com") is None
        assert user_store.get_by_id("missing") is None

    def test_duplicate_email_raises(self, user_store: UserStore) -> None:
        user_store.create_user(_user())
        with pytest.raises(IntegrityError):
            user_store.create_user(_user())

    def test_update_returns_post_update_record(self, user_store: UserStore) -> None:
        user = user_store.create_user(_user())
        expiry = datetime(2030, 1, 1, tzinfo=timezone.utc)
        updated = user_store.update_user(
            user.id, is_verified=True, verification_code="123456", verification_code_expiry=expiry
        )
        assert updated.is_verified is True
        assert updated.verification_code == "123456"
        assert updated.verification_code_expiry == expiry

    def test_update_clears_code(self, user_store: UserStore) -> None:
        user = user_store.create_user(_user())
        user_store.update_user(user.id, verification_code="123456", verification_code_expiry=datetime.now(timezone.utc))
        cleared = user_store.update_user(user.id, verification_code=None, verification_code_expiry=None)
        assert cleared.verification_code is None
        assert cleared.verification_code_expiry is None

    def test_update_missing_user_is_none(self, user_store: UserStore) -> None:
        assert user_store.update_user("missing", name="Bob") is None

    def test_update_rejects_unknown_fields(self, user_store: UserStore) -> None:
        user = user_store.create_user(_user())
        with pytest.raises(ValueError):
            user_store.update_user(user.id, email="other@x.com")

    def test_delete_removes_sessions(self, user_store: UserStore, session_store: SessionStore) -> None:
        user = user_store.create_user(_user())
        session_store.create_session(_session(user.id, "h1"))
        assert user_store.delete_user(user.id) is True
        assert user_store.get_by_id(user.id) is None
        assert session_store.get_sessions_by_user(user.id) == []
        assert user_store.delete_user(user.id) is False

    def test_ping(self, user_store: UserStore) -> None:
        assert user_store.ping() is True


class TestSessionStore:
    def test_create_and_lookup(self, session_store: SessionStore) -> None:
        created = session_store.create_session(_session("u1", "h1"))
        assert created.id
        assert created.created_at is not None
        assert session_store.get_session_by_id(created.id).token_hash == "h1"
        assert session_store.get_session_by_token("h1").id == created.id
        assert session_store.get_session_by_token("nope") is None

    def test_duplicate_token_hash_raises(self, session_store: SessionStore) -> None:
        session_store.create_session(_session("u1", "h1"))
        with pytest.raises(IntegrityError):
            session_store.create_session(_session("u2", "h1"))

    def test_sessions_by_user_newest_first(self, session_store: SessionStore) -> None:
        first = session_store.create_session(_session("u1", "h1"))
        second = session_store.create_session(_session("u1", "h2"))
        session_store.create_session(_session("u2", "h3"))
        ids = [s.id for s in session_store.get_sessions_by_user("u1")]
        assert ids == [second.id, first.id]

    def test_update_session(self, session_store: SessionStore) -> None:
        created = session_store.create_session(_session("u1", "h1"))
        updated = session_store.update_session(created.id, user_agent="curl")
        assert updated.user_agent == "curl"
        assert session_store.update_session("missing", user_agent="curl") is None

    def test_delete_checks_owner_when_given(self, session_store: SessionStore) -> None:
        created = session_store.create_session(_session("u1", "h1"))
        assert session_store.delete_session_by_id(created.id, user_id="u2") is False
        assert session_store.delete_session_by_id(created.id, user_id="u1") is True
        assert session_store.delete_session_by_id(created.id) is False

    def test_delete_except_keeps_current_and_other_users(self, session_store: SessionStore) -> None:
        session_store.create_session(_session("u1", "h1"))
        session_store.create_session(_session("u1", "h2"))
        session_store.create_session(_session("u1", "h3"))
        session_store.create_session(_session("u2", "h4"))
        assert session_store.delete_sessions_except("u1", "h2") == 2
        assert [s.token_hash for s in session_store.get_sessions_by_user("u1")] == ["h2"]
        assert session_store.get_session_by_token("h4") is not None

    def test_delete_except_none_revokes_all(self, session_store: SessionStore) -> None:
        session_store.create_session(_session("u1", "h1"))
        session_store.create_session(_session("u1", "h2"))
        assert session_store.delete_sessions_except("u1", None) == 2

    def test_purge_expired(self, session_store: SessionStore) -> None:
        now = datetime.now(timezone.utc)
        session_store.create_session(_session("u1", "old", expire_at=now - timedelta(seconds=1)))
        session_store.create_session(_session("u1", "live", expire_at=now + timedelta(days=1)))
        assert session_store.purge_expired(now) == 1
        assert session_store.get_session_by_token("old") is None
        assert session_store.get_session_by_token("live") is not None
