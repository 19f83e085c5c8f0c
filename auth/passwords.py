"""
auth/passwords.py -- bcrypt password hashing and verification.

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection creates a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error. Direct bcrypt usage is simpler and has no
compatibility shim.

Cost factor 11 (one above bcrypt's default of 10) is what existing credential
records were hashed with; checkpw reads the cost from the stored hash, so
older or newer costs keep verifying.

Layer rule: no imports from api/ or other auth/ modules.
"""

from __future__ import annotations

import bcrypt

BCRYPT_ROUNDS = 11

# bcrypt only reads the first 72 bytes of input; bcrypt 5.x refuses longer input.
MAX_PASSWORD_BYTES = 72


def password_too_long(plain: str) -> bool:
    """True if the UTF-8 encoding of plain exceeds what bcrypt accepts."""
    return len(plain.encode("utf-8")) > MAX_PASSWORD_BYTES


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Raises ValueError for passwords over MAX_PASSWORD_BYTES, whatever the
    installed bcrypt version does with them. Callers validate first, so this
    only fires on a programming error.
    """
    if password_too_long(plain):
        raise ValueError(f"password exceeds {MAX_PASSWORD_BYTES} bytes")
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash makes bcrypt raise ValueError; that is treated as
    a mismatch rather than an internal error so a corrupt record cannot be
    used to probe the login endpoint.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Timing equalization dummy hash [C1].
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones. The service verifies against it when the email
# is unknown so response time does not reveal whether an account exists.
DUMMY_HASH: str = hash_password("sessionkeeper_timing_dummy")
