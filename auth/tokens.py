"""
auth/tokens.py -- Bearer token issuance, verification and revocation.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry {"user": {"id": ...}} plus iat,
       exp and a random jti. The jti makes every token string unique, even
       two issued to the same user in the same second, so revoking one token
       by exact match never touches another.

  Secret: injected through the constructor. TokenIssuer never reads
       configuration; api/main.py and main.py build it from Settings.

  Revocation: a token is only valid while it is in the user's active list.
       verify() checks the signature and expiry first, then asks the store
       whether the token is still listed. Expiry is checked only here, at
       verification time -- there is no background sweep.

Token lifecycle:
  issued -> active -> revoked   (logout; terminal)
            active -> expired   (exp passed; terminal)

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from jose import ExpiredSignatureError, JWTError, jwt

from auth.errors import InvalidTokenError

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("userauth.auth")

ALGORITHM = "HS256"
DEFAULT_EXPIRE_SECONDS = 2 * 24 * 60 * 60


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenIssuer:
    """Mints, verifies and revokes bearer tokens for users held in a UserStore.

    Usage:
        issuer = TokenIssuer(secret_key=settings.secret_key, store=store)
        token = issuer.issue(user)
        assert issuer.verify(token) == user.id
        issuer.revoke(user, token)
    """

    def __init__(
        self,
        secret_key: str,
        store: UserStore,
        expire_seconds: int = DEFAULT_EXPIRE_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if not secret_key:
            raise ValueError("TokenIssuer requires a non-empty secret_key")
        self._secret_key = secret_key
        self._store = store
        self.expire_seconds = expire_seconds
        self._clock = clock

    def sign(self, user_id: int) -> str:
        """Return a new signed token for user_id without recording it anywhere.

        Used on its own only where the caller persists the token itself, as
        UserStore.create_user(issue_token=...) does during registration.
        """
        now = self._clock()
        payload = {
            "user": {"id": user_id},
            "iat": now,
            "exp": now + timedelta(seconds=self.expire_seconds),
            "jti": secrets.token_hex(16),
        }
        return jwt.encode(payload, self._secret_key, algorithm=ALGORITHM)

    def issue(self, user: User) -> str:
        """Sign a new token for user, append it to the user's list and persist it."""
        if user.id is None:
            raise ValueError("Cannot issue a token for a user that has not been stored")
        token = self.sign(user.id)
        self._store.add_token(user.id, token)
        user.tokens.append(token)
        logger.debug("Token issued for user id=%s", user.id)
        return token

    def revoke(self, user: User, token: str) -> None:
        """Remove token from the user's active list. No-op if it is already gone."""
        removed = self._store.remove_token(user.id, token)
        user.tokens = [t for t in user.tokens if t != token]
        if removed:
            logger.debug("Token revoked for user id=%s", user.id)

    def verify(self, token: str) -> int:
        """Return the user id a token was issued to.

        Raises InvalidTokenError if the token is empty, badly signed, expired,
        malformed, or no longer in the user's active list.
        """
        if not token:
            raise InvalidTokenError("missing token")
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[ALGORITHM])
        except ExpiredSignatureError as exc:
            raise InvalidTokenError("token expired") from exc
        except JWTError as exc:
            raise InvalidTokenError("token signature or format invalid") from exc

        user_claim = payload.get("user")
        user_id = user_claim.get("id") if isinstance(user_claim, dict) else None
        if not isinstance(user_id, int):
            raise InvalidTokenError("token payload has no user id")

        if not self._store.has_token(user_id, token):
            raise InvalidTokenError("token revoked")
        return user_id
