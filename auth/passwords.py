"""
auth/passwords.py -- bcrypt password hashing and verification.

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection creates a password longer than 72 bytes, which current
bcrypt releases reject with an explicit error.

The work factor is a parameter rather than a module constant so the store can
take it from Settings.bcrypt_rounds (10 in production, 4 in tests).

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import bcrypt

DEFAULT_ROUNDS = 10


def hash_password(plain: str, rounds: int = DEFAULT_ROUNDS) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    bcrypt raises ValueError for input longer than 72 bytes. Callers validate
    with auth.validation.check_password first, which rejects such passwords.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash, or a password bcrypt refuses as too long, counts
    as a mismatch.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False
