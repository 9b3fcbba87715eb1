"""
auth/credentials.py -- Password hashing and verification.

Passwords: bcrypt used directly (no passlib wrapper). bcrypt generates a fresh
salt on every hash_password() call and embeds it in the result, so two users
with the same password end up with different stored hashes. checkpw()
compares digests in constant time.

bcrypt only looks at the first 72 bytes of its input and current releases
refuse longer input outright. The registry rejects such passwords up front
(MAX_PASSWORD_BYTES) so hash_password() never sees one.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import bcrypt

from core.config import get_settings

MAX_PASSWORD_BYTES = 72


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password."""
    rounds = get_settings().bcrypt_rounds
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash or an over-long password verifies as False rather
    than raising, so a corrupt record reads as a failed login.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Timing equalization dummy hash.
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones. SessionManager.login() verifies against it when
# the email is unknown, so an unknown email costs one bcrypt check just like a
# wrong password does.
DUMMY_HASH: str = hash_password("turnstile_timing_dummy")
