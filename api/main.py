"""
api/main.py -- FastAPI application factory for Gatekeeper.

Run with:  python main.py
           uvicorn asgi:app --reload

create_app(settings, connector, auth_engine, mail_sender) builds a fresh app.
Every collaborator can be injected, which is how the tests get an isolated
database, a recording mail sender, or a fake auth engine. Left as None, the
real ones are built from settings.

Middleware stack (outermost to innermost):
  1. security_headers   -- helmet-style response headers on every reply
  2. log_requests       -- one access log line per request
  3. CORSMiddleware     -- ALLOWED_ORIGINS, credentials allowed
  4. SlowAPIMiddleware  -- application-wide limit per client address
  5. SessionMiddleware  -- signed cookie holding the OAuth state (authlib)

add_middleware() prepends, so the registration order below is the reverse
of the list above.

Lifespan builds the stores and the auth engine over the connected database,
starts the hourly purge task, and on shutdown cancels the task and closes
the database connection.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from api.limiter import build_limiter
from api.routes import health
from api.routes.auth import router as auth_router
from api.routes.items import router as items_router
from auth.config import build_auth_config
from auth.engine import AuthEngine, LocalAuthEngine
from auth.oauth import build_oauth
from auth.store import UserStore
from core.config import Settings, get_settings
from core.database import DatabaseConnector
from core.responses import INTERNAL_ERROR, RATE_LIMITED, ApiError, ErrorResponse, field_errors
from items.store import ItemStore
from mail.sender import MailSender

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("gatekeeper.api")

_PURGE_INTERVAL_SECONDS = 60 * 60

# Same defaults helmet applies.
_SECURITY_HEADERS = {
    "Content-Security-Policy": (
        "default-src 'self';base-uri 'self';font-src 'self' https: data:;"
        "form-action 'self';frame-ancestors 'self';img-src 'self' data:;"
        "object-src 'none';script-src 'self';script-src-attr 'none';"
        "style-src 'self' https: 'unsafe-inline';upgrade-insecure-requests"
    ),
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Origin-Agent-Cluster": "?1",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Permitted-Cross-Domain-Policies": "none",
    "X-XSS-Protection": "0",
}

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI) -> None:
    """Purge expired sessions, verifications and cache entries every hour.

    CancelledError from task.cancel() during shutdown propagates out of
    asyncio.sleep and unwinds the coroutine.
    """
    while True:
        await asyncio.sleep(_PURGE_INTERVAL_SECONDS)
        engine = app.state.auth_engine
        try:
            if isinstance(engine, LocalAuthEngine):
                removed = await run_in_threadpool(engine.purge_expired)
            else:
                removed = await run_in_threadpool(app.state.user_store.purge_expired)
        except SQLAlchemyError as exc:
            logger.error("Purge of expired auth records failed: %s", exc)
            continue
        if removed:
            logger.info("Purged %d expired auth records", removed)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup: connect, build stores and engine, start purge. Shutdown: reverse.

    connect() is a no-op when main.py already connected before serving; a
    failure here aborts startup, so the app never serves without a database.
    """
    settings: Settings = app.state.settings
    db: DatabaseConnector = app.state.db
    logger.info("Gatekeeper API starting up (%s)", settings.environment)

    db.connect()
    app.state.user_store = UserStore(db.engine)
    app.state.item_store = ItemStore(db.engine)
    if app.state.auth_engine is None:
        sender = app.state.mail_sender or MailSender(settings)
        app.state.auth_engine = LocalAuthEngine(
            build_auth_config(settings, sender),
            app.state.user_store,
            oauth=build_oauth(settings),
        )
    logger.info("Auth initialized (%d users)", app.state.user_store.count_users())
    purge_task = asyncio.create_task(_purge_loop(app))

    yield

    purge_task.cancel()
    db.disconnect()
    logger.info("Gatekeeper API shutdown complete")


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every handler returns the same envelope so API clients can parse errors
# uniformly.
# ---------------------------------------------------------------------------


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return exc.envelope().to_response()


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Framework HTTP errors (unknown route, wrong method) in the envelope shape."""
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return ErrorResponse(message=message, status_code=exc.status_code).to_response(headers=exc.headers)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """400 with per-field messages when a body, query or path parameter fails validation."""
    return ErrorResponse(
        message="Validation failed",
        status_code=400,
        data=field_errors(exc.errors()),
    ).to_response()


def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 when the client address is over the limit.

    Must stay synchronous: SlowAPIMiddleware calls it directly and returns
    the result without awaiting.
    """
    retry_after = max(1, request.app.state.settings.rate_limit_window_ms // 1000)
    logger.warning("Rate limit exceeded for %s", request.client.host if request.client else "unknown")
    return ErrorResponse(message=RATE_LIMITED, status_code=429).to_response(
        headers={"Retry-After": str(retry_after)}
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors.

    The traceback goes to the log. The response carries the exception type
    and message only outside production.
    """
    logger.error("Unhandled exception on %s %s", request.method, request.url.path, exc_info=exc)
    data = None
    if not request.app.state.settings.is_production:
        data = {"type": type(exc).__name__, "detail": str(exc)}
    return ErrorResponse(message=INTERNAL_ERROR, status_code=500, data=data).to_response()


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


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


async def security_headers(request: Request, call_next):
    response = await call_next(request)
    for name, value in _SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_app(
    settings: Optional[Settings] = None,
    connector: Optional[DatabaseConnector] = None,
    auth_engine: Optional[AuthEngine] = None,
    mail_sender: Optional[MailSender] = None,
) -> FastAPI:
    settings = settings or get_settings()
    logging.getLogger("gatekeeper").setLevel(settings.log_level.upper())

    docs = not settings.is_production
    app = FastAPI(
        title="Gatekeeper API",
        description="Authentication boilerplate: email/password, OAuth, email verification, 2FA.",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if docs else None,
        redoc_url="/redoc" if docs else None,
        openapi_url="/openapi.json" if docs else None,
    )

    app.state.settings = settings
    app.state.db = connector or DatabaseConnector(settings.database_url)
    app.state.auth_engine = auth_engine
    app.state.mail_sender = mail_sender
    app.state.started_at = time.monotonic()

    # SlowAPIMiddleware finds the limiter on app.state.limiter.
    limiter = build_limiter(settings)
    app.state.limiter = limiter
    for route in (health.health, health.live, health.ready):
        limiter.exempt(route)

    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.auth_secret,
        same_site="lax",
        https_only=settings.is_production,
    )
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=3600,
    )
    app.middleware("http")(log_requests)
    app.middleware("http")(security_headers)

    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(health.router, tags=["Health"])
    app.include_router(auth_router, prefix="/api", tags=["Auth"])
    app.include_router(items_router, prefix="/api", tags=["Items"])
    return app
