"""
api/main.py -- FastAPI application entry point for the user authentication service.

Run with:      uvicorn asgi:app --reload
               python main.py serve

Middleware stack (outermost to innermost):
  0. log_requests          -- access log line for every response, rejections included
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds the UserStore and TokenIssuer from Settings on startup and
closes the store on shutdown. The signing secret is handed to TokenIssuer
here; nothing else reads it.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, FieldErrorDetail, HealthResponse
from api.routes.users import router as users_router
from auth.errors import (
    AuthenticationError,
    AuthServiceError,
    DuplicateUserError,
    InvalidTokenError,
    PersistenceError,
    ValidationError,
)
from auth.store import UserStore
from auth.tokens import TokenIssuer
from core.config import get_settings

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("userauth.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Lifespan -- startup / shutdown
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage the store and the token issuer across the server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown. The issuer depends on the store, so the store is built first.
    """
    logger.info("User auth API starting up")
    settings = get_settings()
    app.state.user_store = UserStore(settings.database_url, bcrypt_rounds=settings.bcrypt_rounds)
    app.state.token_issuer = TokenIssuer(
        secret_key=settings.secret_key,
        store=app.state.user_store,
        expire_seconds=settings.token_expire_seconds,
    )
    logger.info("Store initialized (bcrypt rounds=%d)", settings.bcrypt_rounds)

    yield

    app.state.user_store.close()
    logger.info("User auth API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="User Auth API",
    description="Registration, login, fetch-self and logout with revocable bearer tokens.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Starlette wraps each add_middleware() call around the ones added before it,
# so the last one added is outermost. Added innermost first so requests meet
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

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

app.include_router(users_router, prefix="/api", tags=["Users"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------

# Domain error -> (status, code, client-facing message). The message is fixed
# per error type so internal detail never reaches the client.
_DOMAIN_ERRORS: dict[type[AuthServiceError], tuple[int, str, str]] = {
    ValidationError: (400, "validation_error", "Request validation failed."),
    DuplicateUserError: (500, "user_exists", "User already exists"),
    AuthenticationError: (500, "bad_credentials", "Incorrect email or password."),
    InvalidTokenError: (401, "unauthorized", "Please authenticate."),
    PersistenceError: (500, "internal_error", "Server error."),
}


def _error_response(status_code: int, detail: ErrorDetail) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=detail).model_dump(exclude_none=True),
    )


@app.exception_handler(AuthServiceError)
async def auth_error_handler(request: Request, exc: AuthServiceError) -> JSONResponse:
    """Translate auth/ domain errors into the error envelope."""
    status_code, code, message = _DOMAIN_ERRORS.get(
        type(exc), (500, "internal_error", "An unexpected error occurred.")
    )
    fields = None
    if isinstance(exc, ValidationError):
        fields = [FieldErrorDetail(field=f.field, message=f.message) for f in exc.fields]
    if isinstance(exc, PersistenceError):
        logger.error("Persistence failure on %s %s: %s", request.method, request.url.path, exc)
    response = _error_response(status_code, ErrorDetail(code=code, message=message, fields=fields))
    if isinstance(exc, InvalidTokenError):
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error_response(
        429,
        ErrorDetail(code="rate_limited", message="Too many requests.", detail=str(exc)),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with one message per offending field.

    Messages raised by our own field validators (ValueError) are passed
    through verbatim; pydantic's built-in messages are used otherwise.
    """
    fields: list[FieldErrorDetail] = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        field = ".".join(loc) or "body"
        ctx_error = (err.get("ctx") or {}).get("error")
        message = str(ctx_error) if err.get("type") == "value_error" and ctx_error else err.get("msg", "")
        fields.append(FieldErrorDetail(field=field, message=message))
    return _error_response(
        400,
        ErrorDetail(code="validation_error", message="Request validation failed.", fields=fields),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Route handlers raise HTTPException with a dict detail; use it directly as
    the error field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )
    return _error_response(
        exc.status_code,
        ErrorDetail(code=f"http_{exc.status_code}", message=str(exc.detail)),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is logged only, never written to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(
        500,
        ErrorDetail(code="internal_error", message="An unexpected error occurred."),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit applied.
# ---------------------------------------------------------------------------


@app.get("/api/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version and database reachability."""
    user_store: UserStore = request.app.state.user_store
    database = "ok" if user_store.ping() else "error"
    return HealthResponse(
        status="healthy" if database == "ok" else "degraded",
        version=VERSION,
        components={"app": "ok", "database": database},
    )
