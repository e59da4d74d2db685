"""
auth/dependencies.py -- FastAPI Depends() helpers for bearer-token auth.

Tokens are read from the Authorization: Bearer <token> header only. The
CredentialService instance lives on app.state.credentials (set in the
lifespan in api/main.py).

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.

Layer rule: no imports from api/ or core/.
  auth/dependencies.py may import from fastapi because this module is part
  of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import PublicUser
from auth.service import CredentialService

_UNAUTHORIZED = {"code": "unauthorized", "message": "Authentication required."}


def get_credential_service(request: Request) -> CredentialService:
    return request.app.state.credentials


def bearer_token(request: Request) -> str | None:
    """Return the raw token from the Authorization header, or None."""
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def require_bearer_token(request: Request) -> str:
    """Like bearer_token() but raises HTTP 401 when the header is missing."""
    token = bearer_token(request)
    if token is None:
        raise HTTPException(
            status_code=401,
            detail=_UNAUTHORIZED,
            headers={"WWW-Authenticate": "Bearer"},
        )
    return token


def try_get_current_user(request: Request) -> PublicUser | None:
    """Authenticate the request from its bearer token. Never raises."""
    token = bearer_token(request)
    if token is None:
        return None
    return get_credential_service(request).validate_token(token)


def get_current_user(request: Request) -> PublicUser:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: PublicUser = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail=_UNAUTHORIZED,
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user
