"""
api/main.py -- FastAPI application factory for SessionKeeper.

create_app(settings) wires the authentication core together:

    CredentialStore(users_path) ---+
    SessionRegistry(ttl) ----------+--> AuthenticationService --> SessionMiddleware
    CookieCodec(secret, block) ----+

Settings are injected, never read from a module-level singleton, so every app
instance (production or test) owns its own registry, limiter and key material.

Middleware stack (outermost to innermost):
  1. log_requests       -- method, path, status, latency per request
  2. SessionMiddleware  -- resolves the session cookie before the handler and
                           emits the Set-Cookie directive after it

Error envelope: {"data": false, "errors": "<message>"}. AuthError subclasses
map to their own status; anything unrecognized is answered with 404 and a
generic message rather than leaking internals (fail-closed default).
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import make_limiter
from api.models import BoolResponse, HealthResponse
from api.routes.session import build_router
from auth.codec import CookieCodec
from auth.errors import AuthError
from auth.middleware import SessionMiddleware
from auth.service import AuthenticationService
from auth.sessions import SessionRegistry
from auth.store import CredentialStore
from core.config import Settings

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("sessionkeeper.api")


def _error(status_code: int, message: str) -> JSONResponse:
    resp = JSONResponse(status_code=status_code, content=BoolResponse(data=False, errors=message).model_dump())
    resp.headers["Cache-Control"] = "no-store"
    return resp


def build_service(settings: Settings, registry: SessionRegistry | None = None) -> AuthenticationService:
    """Construct the authentication core from settings.

    registry may be supplied by tests that need a controllable clock.
    """
    block_key = bytes.fromhex(settings.cookie_block_key) if settings.cookie_block_key else None
    # An empty registry is falsy (it defines __len__), so test against None.
    if registry is None:
        registry = SessionRegistry(ttl=timedelta(seconds=settings.session_ttl_seconds))
    return AuthenticationService(
        credentials=CredentialStore(settings.users_path),
        sessions=registry,
        codec=CookieCodec(settings.cookie_name, settings.secret_key, block_key=block_key),
        secret_key=settings.secret_key,
    )


def create_app(settings: Settings, service: AuthenticationService | None = None) -> FastAPI:
    """Build the ASGI application.

    Args:
        settings: Resolved configuration, built once by the entry point.
        service:  Optional pre-built AuthenticationService (tests inject one
                  with a fake clock). Defaults to build_service(settings).
    """
    if service is None:
        service = build_service(settings)
    limiter = make_limiter(enabled=settings.rate_limit_enabled)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "SessionKeeper API starting up (users_path=%s, ttl=%ss)",
            settings.users_path,
            settings.session_ttl_seconds,
        )
        yield
        logger.info("SessionKeeper API shutdown complete")

    app = FastAPI(
        title="SessionKeeper API",
        description="Email/password login with server-side sessions carried in an encrypted cookie.",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
    )
    app.state.settings = settings
    app.state.auth_service = service
    # slowapi looks for app.state.limiter by convention.
    app.state.limiter = limiter

    # -----------------------------------------------------------------------
    # Middleware. add_middleware() wraps the existing stack, so the last one
    # registered is outermost; the http middleware below wraps both.
    # -----------------------------------------------------------------------

    app.add_middleware(SessionMiddleware, service=service, secure_cookies=settings.secure_cookies)

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

    # -----------------------------------------------------------------------
    # Routes
    # -----------------------------------------------------------------------

    app.include_router(build_router(limiter, settings.login_rate_limit), tags=["Session"])

    @app.get("/health", tags=["Health"])
    async def health() -> HealthResponse:
        """Return liveness and current version. Never rate limited."""
        return HealthResponse(version=__version__)

    # -----------------------------------------------------------------------
    # Exception handlers -- all return the same envelope.
    # -----------------------------------------------------------------------

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.detail)
        return _error(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Undecodable JSON or missing fields are a bad request, not 422."""
        return _error(400, "Bad request.")

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        """Return 429 with Retry-After when the login limit is exceeded."""
        retry_after = int(getattr(exc, "retry_after", 60))
        logger.warning("Login rate limit exceeded for %s", request.client.host if request.client else "unknown")
        response = _error(429, "Too many requests.")
        response.headers["Retry-After"] = str(retry_after)
        return response

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unexpected failures.

        The exception is logged server-side only. The client receives the
        NotFound status and a generic message.
        """
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return _error(404, "Resource not found.")

    return app
