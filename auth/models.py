"""
auth/models.py -- Domain dataclass for the user record.

Pattern: Data class (pure data container, zero logic). The store and the
token issuer do the work; routes map this onto the API response model.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class User:
    """A registered identity.

    password_hash is always a bcrypt hash. It is only ever written by
    UserStore.set_password(), never assigned from user input directly.

    tokens holds the active bearer tokens in issue order. TokenIssuer.issue()
    appends to it and TokenIssuer.revoke() removes a single exact match; no
    other code mutates it.
    """

    name: str
    email: str
    id: int | None = None
    password_hash: str | None = None
    gender: str | None = None
    tokens: list[str] = field(default_factory=list)
    created_at: str | None = None
