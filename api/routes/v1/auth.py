"""
api/routes/v1/auth.py -- Registration, login and token endpoints.

Routes:
  POST /api/v1/auth/register   -- create account; returns user + token (201)
  POST /api/v1/auth/login      -- password login; returns user + token
  POST /api/v1/auth/refresh    -- exchange a valid Bearer token for a fresh one
  GET  /api/v1/auth/me         -- current user (requires auth)
  POST /api/v1/auth/revoke     -- invalidate all of the caller's tokens (requires auth)

Error mapping lives in api/main.py: every auth.exceptions.AuthError becomes a
structured JSON error with the status for its class.

Threading: register and login are plain `def` handlers. bcrypt is CPU-bound,
and FastAPI runs sync handlers in its worker thread pool, so password hashing
never blocks the event loop. Routes that touch the store are `def` for the
same reason; /auth/me resolves the user in its (sync) dependency.

Security:
  [C1] login() equalizes timing between unknown user and wrong password.
  [M5] Cache-Control: no-store on every response that carries a token.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from api.models import (
    AuthResponse,
    LoginRequest,
    MeResponse,
    RegisterRequest,
    RevokeResponse,
    TokenResponse,
    UserResponse,
)
from auth.dependencies import get_credential_service, get_current_user, require_bearer_token
from auth.models import AuthResult, PublicUser
from auth.service import CredentialService

# Auth policy:
# - POST /api/v1/auth/register: public
# - POST /api/v1/auth/login:    public
# - POST /api/v1/auth/refresh:  requires a Bearer token (expired tokens are rejected, not extended)
# - GET  /api/v1/auth/me:       requires auth (get_current_user)
# - POST /api/v1/auth/revoke:   requires auth (get_current_user)
router = APIRouter()


@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(body: RegisterRequest, service: CredentialService = Depends(get_credential_service)) -> JSONResponse:
    """Create an account and log it in."""
    result = service.register(body.username, body.password, body.email)
    return _auth_response(result, service, status_code=201)


@router.post("/auth/login", response_model=AuthResponse)
def login(body: LoginRequest, service: CredentialService = Depends(get_credential_service)) -> JSONResponse:
    """Authenticate with username and password.

    Returns the same "bad_credentials" error for wrong username and wrong
    password to avoid leaking username existence.
    """
    result = service.login(body.username, body.password)
    return _auth_response(result, service)


@router.post("/auth/refresh", response_model=TokenResponse)
def refresh(
    token: str = Depends(require_bearer_token),
    service: CredentialService = Depends(get_credential_service),
) -> JSONResponse:
    """Re-issue the presented token with a new expiry.

    An expired token yields 401 token_expired (client should prompt a fresh
    login); a forged or revoked one yields 401 invalid_token.
    """
    new_token = service.refresh_token(token)
    resp = JSONResponse(
        content=TokenResponse(token=new_token, expires_in=service.codec.lifetime_seconds).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.get("/auth/me", response_model=MeResponse)
async def me(current_user: PublicUser = Depends(get_current_user)) -> MeResponse:
    """Return identity information for the currently authenticated user."""
    return MeResponse(user=UserResponse.from_public(current_user))


@router.post("/auth/revoke", response_model=RevokeResponse)
def revoke(
    current_user: PublicUser = Depends(get_current_user),
    service: CredentialService = Depends(get_credential_service),
) -> RevokeResponse:
    """Log out everywhere: every token issued to the caller so far stops working."""
    return RevokeResponse(token_epoch=service.revoke_sessions(current_user.id))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _auth_response(result: AuthResult, service: CredentialService, status_code: int = 200) -> JSONResponse:
    resp = JSONResponse(
        status_code=status_code,
        content=AuthResponse(
            user=UserResponse.from_public(result.user),
            token=result.token,
            expires_in=service.codec.lifetime_seconds,
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp
