"""
api/main.py -- FastAPI application entry point for Planit.

Exposes account, session and vendor-directory operations over HTTP.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds every collaborator (store, token manager, OTP manager,
mailer, account service, vendor directory) explicitly and places it on
app.state. Nothing reads a module-level client handle. Shutdown cancels the
purge task and disposes of the DB engine.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ApiResponse, FieldError, HealthComponents
from api.routes.auth import router as auth_router
from api.routes.dashboard import router as dashboard_router
from api.routes.users import router as users_router
from api.routes.vendors import router as vendors_router
from auth.errors import ServiceError
from auth.otp import OTPManager
from auth.service import AccountService, MailSender
from auth.store import UserStore
from auth.tokens import TokenManager
from auth.vendors import VendorDirectory
from core.config import Settings, get_settings
from notify.mailer import Mailer

API_VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("planit.api")

settings = get_settings()

# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


def wire_services(app: FastAPI, store: UserStore, mailer: MailSender, cfg: Settings) -> None:
    """Construct the auth collaborators around `store` and attach them to app.state.

    Shared by the real lifespan and the test lifespan, so both run the same
    object graph and differ only in the store URL and the mailer.
    """
    token_manager = TokenManager(
        store,
        cfg.access_secret_key,
        cfg.refresh_secret_key,
        access_expire_seconds=cfg.access_token_expire_seconds,
        refresh_expire_days=cfg.refresh_token_expire_days,
    )
    otp_manager = OTPManager(store, cfg.otp_secret_key, expire_minutes=cfg.otp_expire_minutes)
    app.state.user_store = store
    app.state.token_manager = token_manager
    app.state.otp_manager = otp_manager
    app.state.mailer = mailer
    app.state.account_service = AccountService(
        store,
        otp_manager,
        token_manager,
        mailer,
        require_verified_login=cfg.require_verified_login,
    )
    app.state.vendor_directory = VendorDirectory(store)


# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI) -> None:
    """Delete expired refresh tokens and spent OTP codes every hour.

    CancelledError from task.cancel() during shutdown propagates out of
    asyncio.sleep and unwinds the coroutine cleanly. A failed purge is
    logged and retried on the next tick.
    """
    while True:
        await asyncio.sleep(60 * 60)
        try:
            removed = await asyncio.to_thread(app.state.user_store.purge_expired)
        except SQLAlchemyError:
            logger.exception("Purge of expired auth records failed")
            continue
        logger.info("Purged %d expired auth records", removed)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown. The store must exist before the purge task references it.
    """
    logger.info("Planit API starting up")
    store = UserStore(settings.database_url)
    mailer = Mailer.from_settings(settings)
    wire_services(app, store, mailer, settings)
    logger.info("Auth initialized (mail configured=%s)", mailer.is_configured)
    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    app.state.purge_task.cancel()
    app.state.user_store.close()
    logger.info("Planit API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title=settings.project_name,
    description="Accounts, sessions and vendor directory for the Planit event-planning platform.",
    version=API_VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


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

app.include_router(auth_router, tags=["Auth"])
app.include_router(users_router, tags=["Users"])
app.include_router(vendors_router, tags=["Vendors"])
app.include_router(dashboard_router, tags=["Dashboard"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every handler returns the same {success, message, data?, errors?} envelope
# so clients parse failures uniformly.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, message: str, errors=None, data=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ApiResponse(success=False, message=message, errors=errors, data=data).to_wire(),
    )


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Render a typed service error with the status it carries."""
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.error_code, request.method, request.url.path, exc.message)
    errors = [FieldError(**e) for e in exc.errors] if exc.errors else None
    return _error_response(exc.status_code, exc.message, errors=errors, data=exc.data)


def _field_name(loc: tuple) -> str:
    # ("body", "address", "zipCode") -> "address.zipCode"
    parts = [str(p) for p in loc[1:]] if len(loc) > 1 else [str(p) for p in loc]
    return ".".join(parts)


def _clean_message(msg: str) -> str:
    prefix = "Value error, "
    return msg[len(prefix) :] if msg.startswith(prefix) else msg


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with one {field, message} entry per failed constraint."""
    errors = [
        FieldError(field=_field_name(tuple(e.get("loc", ()))), message=_clean_message(e["msg"]))
        for e in exc.errors()
    ]
    return _error_response(400, "Validation failed", errors=errors)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429; Retry-After tells clients how many seconds to wait."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error_response(429, "Too many requests. Please try again later.")
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return _error_response(exc.status_code, message)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors.

    The traceback goes to the server log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py so it is always reachable regardless of router
# registration. No rate limit -- monitors must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/health", tags=["Health"])
def health(request: Request) -> JSONResponse:
    """Return liveness, version, and a database round-trip check."""
    try:
        request.app.state.user_store.ping()
        database = "ok"
    except SQLAlchemyError:
        logger.exception("Health check: database unreachable")
        database = "error"
    components = HealthComponents(database=database)
    return JSONResponse(
        content=ApiResponse(
            success=True,
            message="Server is running",
            data={
                "status": "healthy" if database == "ok" else "degraded",
                "version": API_VERSION,
                "components": components.model_dump(),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        ).to_wire()
    )
