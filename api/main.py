"""
api/main.py -- FastAPI application entry point for TokenGate.

Exposes the credential core over HTTP: register, login, refresh, me and
revoke. Token extraction and error-to-status mapping live here and in
auth/dependencies.py; the core itself knows nothing about HTTP.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware  -- adds CORS headers for allowed browser origins
  2. log_requests    -- one line per request with status and latency

Lifespan builds the components once at startup, in dependency order, from
Settings, and stores them on app.state. A production configuration with the
placeholder JWT_SECRET fails inside get_settings(), so the server refuses to
start rather than issue forgeable tokens.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.exceptions import (
    AuthenticationError,
    AuthError,
    ConflictError,
    InvalidTokenError,
    NotFoundError,
    ValidationError,
)
from auth.passwords import PasswordHasher
from auth.service import CredentialService
from auth.store import UserStore
from auth.tokens import TokenCodec
from core.config import get_settings

API_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("tokengate.api")

# Most specific first: InvalidTokenError covers ExpiredTokenError.
_STATUS_BY_ERROR: list[tuple[type[AuthError], int]] = [
    (ValidationError, 400),
    (ConflictError, 409),
    (AuthenticationError, 401),
    (InvalidTokenError, 401),
    (NotFoundError, 404),
]


def build_credential_service(settings) -> tuple[CredentialService, UserStore]:
    """Wire store, hasher and codec from settings. The secret is passed by reference, never re-read."""
    store = UserStore(db_url=settings.database_url)
    hasher = PasswordHasher(rounds=settings.bcrypt_rounds)
    codec = TokenCodec(
        secret=settings.jwt_secret,
        lifetime_seconds=settings.jwt_expires_in,
        issuer=settings.jwt_issuer,
        audience=settings.jwt_audience,
    )
    return CredentialService(store, hasher, codec), store


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build components on startup, release the DB engine on shutdown."""
    settings = get_settings()
    logging.getLogger("tokengate").setLevel(settings.log_level.upper())
    logger.info("TokenGate API starting up (environment=%s)", settings.environment)
    app.state.credentials, app.state.user_store = build_credential_service(settings)
    logger.info(
        "Auth initialized (token lifetime=%ds, bcrypt rounds=%d)",
        settings.jwt_expires_in,
        settings.bcrypt_rounds,
    )

    yield

    app.state.user_store.close()
    logger.info("TokenGate API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="TokenGate API",
    description="Username/password registration and login with signed, time-bounded bearer tokens.",
    version=API_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost", "http://localhost:3000", "http://127.0.0.1"],
    allow_methods=["GET", "POST"],
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


app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Map credential-core errors to HTTP statuses.

    The message comes from the core and is safe to show: it never carries a
    password, hash or token.
    """
    status_code = next((code for cls, code in _STATUS_BY_ERROR if isinstance(exc, cls)), 400)
    response = JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=exc.code, message=exc.message)).model_dump(),
    )
    if status_code == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    response.headers["Cache-Control"] = "no-store"
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when the request body fails validation.

    Input values are dropped from the detail so a rejected password is never
    echoed back.
    """
    errors = [{"loc": list(err.get("loc", ())), "msg": err.get("msg", "")} for err in exc.errors()]
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(errors),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    When detail is already a structured dict, use it directly as the error
    field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
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


@app.get("/api/v1/health", tags=["Health"])
async def health() -> HealthResponse:
    """Return API liveness and current version. No auth required."""
    return HealthResponse(version=API_VERSION)
