"""
auth/repository.py -- Cache-aside identity repository.

IdentityRepository wraps UserStore (system of record) with CacheStore
(look-aside cache). Every identity is cached under two independent keys:

    user:<id>             -- by primary key
    user:email:<email>    -- by email as stored

Read path: get_and_refresh the key (sliding TTL); on a hit rebuild the User
via User.from_cache(); on a miss read the store and populate that key.

Write path: the durable write always commits first, then the full
post-write record is written to both keys. Two concurrent updates can race
on the cache (last cache write wins); the window is bounded by the cache TTL.

Delete path: read the record to learn its email, drop the id key, then the
email key, then the durable row.
"""

from __future__ import annotations

import logging

from auth.models import User
from auth.store import UserStore
from cache.store import CacheStore

logger = logging.getLogger("storefront.auth")


def id_key(user_id: str) -> str:
    return f"user:{user_id}"


def email_key(email: str) -> str:
    return f"user:email:{email}"


class IdentityRepository:
    def __init__(self, store: UserStore, cache: CacheStore) -> None:
        self.store = store
        self.cache = cache

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_user_by_id(self, user_id: str) -> User | None:
        key = id_key(user_id)
        cached = self._read_cache(key)
        if cached is not None:
            return cached
        user = self.store.get_by_id(user_id)
        if user is not None:
            self.cache.set(key, user.to_cache())
        return user

    def get_user_by_email(self, email: str) -> User | None:
        key = email_key(email)
        cached = self._read_cache(key)
        if cached is not None:
            return cached
        user = self.store.get_by_email(email)
        if user is not None:
            self.cache.set(key, user.to_cache())
        return user

    def _read_cache(self, key: str) -> User | None:
        data = self.cache.get_and_refresh(key)
        if data is None:
            return None
        try:
            return User.from_cache(data)
        except (KeyError, TypeError, ValueError):
            # Stale schema or corrupted entry -- drop it and read through.
            logger.warning("discarding malformed cache entry %s", key)
            self.cache.delete(key)
            return None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> User:
        created = self.store.create_user(user)
        self._write_through(created)
        return created

    def update_user_by_id(self, user_id: str, **fields) -> User | None:
        """Persist the change, then overwrite both cache keys with the result."""
        updated = self.store.update_user(user_id, **fields)
        if updated is not None:
            self._write_through(updated)
        return updated

    def delete_user_by_id(self, user_id: str) -> bool:
        existing = self.store.get_by_id(user_id)
        self.cache.delete(id_key(user_id))
        if existing is not None:
            self.cache.delete(email_key(existing.email))
        return self.store.delete_user(user_id)

    def _write_through(self, user: User) -> None:
        payload = user.to_cache()
        self.cache.set(id_key(user.id), payload)
        self.cache.set(email_key(user.email), payload)
