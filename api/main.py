"""
api/main.py -- FastAPI application entry point for Turnstile.

Exposes the account and session core in auth/ over HTTP. The handlers in
api/routes/ are thin: every decision is made by UserRegistry, SessionManager,
and the authorization gate.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware   -- adds CORS headers for allowed browser origins
  2. log_requests     -- one log line per request with latency

Lifespan builds the stores, registry, and session manager onto app.state and
starts the expired-session purge task; shutdown reverses it.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.users import router as users_router
from auth.errors import AuthError, DuplicateEmail, Forbidden, InvalidCredentials, InvalidInput, Unauthenticated
from auth.registry import UserRegistry
from auth.sessions import SessionManager
from auth.store import SessionStore, UserStore
from core.config import get_settings

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("turnstile.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------

_PURGE_INTERVAL_SECONDS = 15 * 60


async def _purge_loop(app: FastAPI) -> None:
    """Delete expired sessions every 15 minutes.

    resolve() already refuses expired tokens; this only keeps the sessions
    table from growing with rows nobody will present again. The purge itself
    is a blocking DB call, so it runs in a worker thread.
    """
    while True:
        await asyncio.sleep(_PURGE_INTERVAL_SECONDS)
        await _purge_once(app)


async def _purge_once(app: FastAPI) -> None:
    """Run one purge. A failure is logged and the loop carries on to the next round."""
    try:
        await asyncio.to_thread(app.state.sessions.purge_expired)
    except Exception:
        logger.exception("Expired-session purge failed")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Own the stores for the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown. Tests replace this with a lifespan that wires in-memory stores.
    """
    logger.info("Turnstile API starting up")
    app.state.user_store = UserStore(_settings.database_url)
    app.state.session_store = SessionStore(_settings.database_url)
    app.state.registry = UserRegistry(app.state.user_store)
    app.state.sessions = SessionManager(
        app.state.registry,
        app.state.session_store,
        ttl_seconds=_settings.session_ttl_seconds,
    )
    logger.info("Stores initialized (session_ttl=%ds)", _settings.session_ttl_seconds)
    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    app.state.purge_task.cancel()
    app.state.session_store.close()
    app.state.user_store.close()
    logger.info("Turnstile API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Turnstile API",
    description="User registration, session authentication, and role-based access control.",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)


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

app.include_router(users_router, prefix="/api/v1", tags=["Users"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly. Core errors from auth/ are mapped to status codes here and
# nowhere else.
# ---------------------------------------------------------------------------

_AUTH_ERROR_STATUS: dict[type[AuthError], tuple[int, str]] = {
    InvalidInput: (400, "invalid_input"),
    DuplicateEmail: (409, "duplicate_email"),
    InvalidCredentials: (401, "invalid_credentials"),
    Unauthenticated: (401, "unauthenticated"),
    Forbidden: (403, "forbidden"),
}


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Translate a core error into its status code and error envelope."""
    status_code, code = _AUTH_ERROR_STATUS.get(type(exc), (400, "auth_error"))
    detail = ", ".join(exc.fields) if isinstance(exc, InvalidInput) else None
    response = JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=str(exc), detail=detail)).model_dump(),
    )
    if isinstance(exc, Unauthenticated):
        response.headers["WWW-Authenticate"] = "Bearer"
    if isinstance(exc, InvalidCredentials):
        response.headers["Cache-Control"] = "no-store"
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return a structured error for routing failures (404, 405) and any other HTTP exception.

    Registered on Starlette's class: the router raises it directly, and
    fastapi.HTTPException is a subclass, so both land here.
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
        headers=exc.headers,  # keeps Allow on 405
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version, and whether the user database answers."""
    components = {"app": "ok", "database": "ok"}
    try:
        request.app.state.user_store.has_users()
    except Exception:
        logger.exception("Health check: database unreachable")
        components["database"] = "error"
    return HealthResponse(version=__version__, components=components)
