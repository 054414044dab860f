"""
api/limiter.py -- Shared slowapi rate limiter instance.

api/main.py mounts it as middleware; api/routes/v1/auth.py decorates the
login, registration and code endpoints with @limiter.limit(auth_rate_limit).

Counters are per client IP and per route, held in process memory. Every
module must import this one instance; a second Limiter would keep its own
counters and the middleware would never see them.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def auth_rate_limit() -> str:
    """Limit string for login, registration and code endpoints (LOGIN_RATE_LIMIT)."""
    return get_settings().login_rate_limit
