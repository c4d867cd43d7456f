"""
auth/dependencies.py -- FastAPI Depends() helpers for the bearer-token auth gate.

get_current_user() reads "Authorization: Bearer <token>", verifies the token
through the TokenIssuer on app.state, and loads the User. The presented token
is stored on request.state.token so the logout route can revoke exactly the
token the client used.

Every failure raises InvalidTokenError; api/main.py turns that into a 401
with a generic body. The specific reason is logged, never returned.

auth/dependencies.py may import from fastapi because this module is part of
the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging

from fastapi import Request

from auth.errors import InvalidTokenError
from auth.models import User
from auth.store import UserStore
from auth.tokens import TokenIssuer

logger = logging.getLogger("userauth.auth")


def get_bearer_token(request: Request) -> str:
    """Extract the raw token from the Authorization header. Raises InvalidTokenError if absent."""
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise InvalidTokenError("missing bearer token")
    return token.strip()


def get_current_user(request: Request) -> User:
    """Require a valid, unrevoked bearer token and return its user.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    issuer: TokenIssuer = request.app.state.token_issuer
    user_store: UserStore = request.app.state.user_store

    token = get_bearer_token(request)
    try:
        user_id = issuer.verify(token)
    except InvalidTokenError as exc:
        logger.warning("Rejected bearer token on %s: %s", request.url.path, exc.reason)
        raise

    user = user_store.get_by_id(user_id)
    if user is None:
        logger.warning("Bearer token for unknown user id=%s on %s", user_id, request.url.path)
        raise InvalidTokenError("user no longer exists")

    request.state.token = token
    return user
