#!/usr/bin/env python3
"""
Storefront -- operator command line.

Usage:
  python main.py serve [--host 0.0.0.0] [--port 8000] [--reload]
  python main.py purge-sessions
  python main.py create-admin --name "Site Admin" --email admin@example.com

Environment variables (see core/config.py for the full list):
  ACCESS_TOKEN_SECRET / REFRESH_TOKEN_SECRET   required unless DEBUG=true
  DATABASE_URL                                 SQLAlchemy URL (SQLite file by default)
  REDIS_URL                                    cache backend
"""

import argparse
import getpass
import sys

from auth.errors import AuthError
from auth.repository import IdentityRepository
from auth.service import AuthService
from auth.store import SessionStore, UserStore, create_store_engine
from auth.tokens import TokenService
from cache.store import CacheStore
from core.config import get_settings


def _build_service() -> tuple[AuthService, UserStore]:
    settings = get_settings()
    engine = create_store_engine(settings.database_url, timeout=settings.db_timeout_seconds)
    user_store = UserStore(engine)
    cache = CacheStore.from_url(
        settings.redis_url,
        default_ttl=settings.cache_ttl_seconds,
        timeout=settings.cache_timeout_seconds,
    )
    service = AuthService(
        IdentityRepository(user_store, cache),
        SessionStore(engine),
        TokenService.from_settings(settings),
        code_ttl_seconds=settings.code_ttl_seconds,
    )
    return service, user_store


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def cmd_purge_sessions(args: argparse.Namespace) -> int:
    service, user_store = _build_service()
    try:
        removed = service.sessions.purge_expired()
    finally:
        user_store.close()
    print(f"  [+] Removed {removed} expired session(s).")
    return 0


def cmd_create_admin(args: argparse.Namespace) -> int:
    password = args.password or getpass.getpass("  Password: ")
    if len(password) < 6:
        print("  [!] Password must be at least 6 characters long.")
        return 1
    service, user_store = _build_service()
    try:
        user = service.create_admin(args.name, args.email.strip().lower(), password)
    except AuthError as exc:
        print(f"  [!] {exc.message}")
        return 1
    finally:
        user_store.close()
    print(f"  [+] Created admin {user.email} (id={user.id}).")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Storefront operator commands.")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the API server with uvicorn.")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true")
    serve.set_defaults(func=cmd_serve)

    purge = sub.add_parser("purge-sessions", help="Delete sessions whose expiry has passed.")
    purge.set_defaults(func=cmd_purge_sessions)

    admin = sub.add_parser("create-admin", help="Create a verified ADMIN account.")
    admin.add_argument("--name", required=True)
    admin.add_argument("--email", required=True)
    admin.add_argument("--password", help="Prompted for when omitted.")
    admin.set_defaults(func=cmd_create_admin)

    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
