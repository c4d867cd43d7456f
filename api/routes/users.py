"""
api/routes/users.py -- Registration, login, fetch-self and logout endpoints.

Routes:
  POST /api/users          -- register; returns {user, token} (201)
  POST /api/users/login    -- password login; returns {msg, user, token}
  GET  /api/users          -- current user (requires bearer token)
  POST /api/users/logout   -- revoke the presented token (requires bearer token)

Error mapping (see api/main.py for the domain error handler):
  request body invalid       -> 400 validation_error with field messages
  passwords differ           -> 500 password_mismatch
  email already registered   -> 500 user_exists
  bad email or password      -> 500 bad_credentials (one message for both)
  missing/invalid token      -> 401 unauthorized
  store failure              -> 500 internal_error

Security:
  [H2] POST /users and POST /users/login are rate-limited per client address.
  [C1] UserStore.find_by_credentials() equalizes timing -- never inline a
       lookup plus password check here.
  [M5] Cache-Control: no-store on responses that carry a token.

Handlers are plain `def` so FastAPI runs them in its thread pool; bcrypt is
CPU-bound and would otherwise block the event loop.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.limiter import credential_rate_limit, limiter
from api.models import LoginRequest, LoginResponse, MessageResponse, RegisterRequest, RegisterResponse, UserResponse
from auth.dependencies import get_current_user
from auth.errors import AuthenticationError
from auth.models import User
from auth.store import UserStore
from auth.tokens import TokenIssuer

logger = logging.getLogger("userauth.api")

# Auth policy:
# - POST /api/users:          public
# - POST /api/users/login:    public
# - GET  /api/users:          requires bearer token (get_current_user)
# - POST /api/users/logout:   requires bearer token (get_current_user)
router = APIRouter()


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(credential_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/users", response_model=RegisterResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create a user and log them in with a fresh token.

    The duplicate-email check is the store's UNIQUE constraint, not a
    lookup here, so concurrent registrations cannot both succeed.
    """
    if body.password1 != body.password2:
        raise HTTPException(
            status_code=500,
            detail={"code": "password_mismatch", "message": "Passwords don't match"},
        )

    user_store: UserStore = request.app.state.user_store
    issuer: TokenIssuer = request.app.state.token_issuer

    # User row and first token commit together; a failed token write leaves no account.
    user = user_store.create_user(body.name, body.email, body.password1, body.gender, issue_token=issuer.sign)
    token = user.tokens[-1]

    resp = JSONResponse(
        status_code=201,
        content=RegisterResponse(user=UserResponse.from_user(user), token=token).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@limiter.limit(credential_rate_limit)  # [H2]
@router.post("/users/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Verify email and password, then append a new token to the user's list.

    Unknown email and wrong password produce the same bad_credentials error.
    """
    user_store: UserStore = request.app.state.user_store
    issuer: TokenIssuer = request.app.state.token_issuer

    try:
        user = user_store.find_by_credentials(body.email, body.password)
    except AuthenticationError:
        logger.warning("Failed login attempt for email: %s", body.email)
        raise

    token = issuer.issue(user)
    logger.info("Successful login: user id=%s", user.id)

    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            msg="User logged in successfully!",
            user=UserResponse.from_user(user),
            token=token,
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/users", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)) -> UserResponse:
    """Return the user the bearer token belongs to."""
    return UserResponse.from_user(current_user)


@router.post("/users/logout", response_model=MessageResponse)
def logout(request: Request, current_user: User = Depends(get_current_user)) -> MessageResponse:
    """Revoke the token presented with this request. Other tokens stay valid."""
    issuer: TokenIssuer = request.app.state.token_issuer
    issuer.revoke(current_user, request.state.token)
    logger.info("User logged out: user id=%s", current_user.id)
    return MessageResponse(msg="User logged out successfully!")
