"""
api/main.py -- FastAPI application entry point for Storefront.

Run with:      uvicorn asgi:app --reload
               python main.py serve

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- browser origins; credentials allowed for cookies
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds every process-wide collaborator once -- database engine,
Redis client, token service, repositories, AuthService -- and hangs them on
app.state. Route handlers and dependencies read them from there, so tests
swap in doubles by replacing the lifespan.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.session import router as session_router
from api.routes.v1.users import router as users_router
from auth.dependencies import require_roles
from auth.errors import AuthError, InternalError
from auth.repository import IdentityRepository
from auth.service import AuthService
from auth.store import SessionStore, UserStore, create_store_engine
from auth.tokens import TokenService
from cache.store import CacheStore
from core.config import get_settings

VERSION = "0.3.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("storefront.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI, interval: int) -> None:
    """Delete expired sessions every `interval` seconds.

    The store call is synchronous, so it runs in a worker thread to keep the
    event loop free. CancelledError from task.cancel() during shutdown
    propagates out of asyncio.sleep and unwinds the coroutine cleanly. Any
    other failure is logged and the loop waits for the next tick.
    """
    while True:
        await asyncio.sleep(interval)
        try:
            removed = await asyncio.to_thread(app.state.session_store.purge_expired)
        except Exception:
            logger.exception("Expired session purge failed")
            continue
        if removed:
            logger.info("Purged %d expired sessions", removed)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


def build_auth_service(
    user_store: UserStore,
    session_store: SessionStore,
    cache: CacheStore,
    tokens: TokenService,
    code_ttl_seconds: int,
) -> AuthService:
    identities = IdentityRepository(user_store, cache)
    return AuthService(identities, session_store, tokens, code_ttl_seconds=code_ttl_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create the process-wide clients on startup and release them on shutdown.

    Startup order matters:
      1. Tokens first -- a missing secret should fail before any I/O.
      2. Database engine and schema.
      3. Redis client. An unreachable Redis is logged, not fatal: the cache
         degrades to misses and the database serves every read.
      4. Purge task last -- it references the session store.
    """
    settings = get_settings()
    logger.info("Storefront API starting up")
    app.state.settings = settings
    app.state.tokens = TokenService.from_settings(settings)

    engine = create_store_engine(settings.database_url, timeout=settings.db_timeout_seconds)
    app.state.user_store = UserStore(engine)
    app.state.session_store = SessionStore(engine)
    logger.info("Database initialized")

    app.state.cache = CacheStore.from_url(
        settings.redis_url,
        default_ttl=settings.cache_ttl_seconds,
        timeout=settings.cache_timeout_seconds,
    )
    if app.state.cache.ping():
        logger.info("Cache initialized")
    else:
        logger.warning("Cache unreachable at startup -- serving reads from the database")

    app.state.auth_service = build_auth_service(
        app.state.user_store,
        app.state.session_store,
        app.state.cache,
        app.state.tokens,
        settings.code_ttl_seconds,
    )
    app.state.purge_task = asyncio.create_task(_purge_loop(app, settings.session_purge_interval_seconds))

    yield

    # Shutdown
    app.state.purge_task.cancel()
    app.state.cache.close()
    app.state.user_store.close()
    logger.info("Storefront API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Storefront API",
    description="E-commerce backend: accounts, verification codes, sessions and tokens.",
    version=VERSION,
    lifespan=lifespan,
    # Built-in /docs and /redoc are replaced by admin-only routes below.
    docs_url=None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(session_router, prefix="/api/v1", tags=["Sessions"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])


# ---------------------------------------------------------------------------
# Admin-only API documentation
# ---------------------------------------------------------------------------


@app.get("/docs", include_in_schema=False)
async def docs(claims=Depends(require_roles("ADMIN"))):
    """Swagger UI -- admins only."""
    return get_swagger_ui_html(openapi_url="/openapi.json", title="Storefront API")


@app.get("/redoc", include_in_schema=False)
async def redoc(claims=Depends(require_roles("ADMIN"))):
    """ReDoc UI -- admins only."""
    return get_redoc_html(openapi_url="/openapi.json", title="Storefront API")


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, errors: dict | None = None, detail: str | None = None):
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=ErrorDetail(code=code, message=message, detail=detail, errors=errors or {})
        ).model_dump(),
    )


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render a domain error kind with its own status, code and message."""
    resp = _error(exc.status_code, exc.code, exc.message, exc.errors)
    if exc.status_code == 401:
        resp.headers["Cache-Control"] = "no-store"
    return resp


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "rate_limited", "Too many requests.", detail=str(exc))
    response.headers["Retry-After"] = str(retry_after)
    return response


def _field_errors(exc: RequestValidationError) -> dict[str, str]:
    """Flatten pydantic errors into {"field.path": "message"} (first message per field)."""
    errors: dict[str, str] = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        errors.setdefault(".".join(loc) or "body", err.get("msg", "Invalid value"))
    return errors


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with a field map when the request body fails validation."""
    return _error(400, "validation_error", "validation Error", errors=_field_errors(exc))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Structured error for framework-raised HTTP errors (404 route, 405 method)."""
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    err = InternalError("Internal server error")
    return _error(err.status_code, err.code, err.message)


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"], response_model=HealthResponse)
def health(request: Request) -> HealthResponse:
    """Return liveness plus database and cache status.

    A down cache reports "degraded", not an error: reads still succeed.
    """
    components = {"app": "ok"}
    try:
        request.app.state.user_store.ping()
        components["database"] = "ok"
    except SQLAlchemyError:
        logger.exception("Health check: database unreachable")
        components["database"] = "error"
    components["cache"] = "ok" if request.app.state.cache.ping() else "degraded"
    status = "healthy" if components["database"] == "ok" else "unhealthy"
    return HealthResponse(status=status, version=VERSION, components=components)
