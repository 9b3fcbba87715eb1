"""
auth/tokens.py -- Session token generation, hashing, and the cookie helper.

Security design decisions:
  Tokens: secrets.token_urlsafe(32) gives 256 bits of entropy -- guessing a
       live token is computationally infeasible. Tokens are opaque: they carry
       no identity, so revoking one is just deleting its row.

  Storage: we store HMAC-SHA256(SECRET_KEY, raw_token) so lookup is O(1) by
       hash. An attacker who reads the sessions table still needs SECRET_KEY
       to turn a row back into a usable token. bcrypt's intentional slowness
       is unnecessary for high-entropy secrets.

  SECRET_KEY: sourced from core.config.get_settings(). The Settings class
       validates it at startup (see core/config.py).

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets

from core.config import get_settings

SESSION_COOKIE = "session_token"

_settings = get_settings()


def generate_session_token() -> str:
    """Return a new URL-safe session token (43 chars, 256 bits of entropy)."""
    return secrets.token_urlsafe(32)


def hash_session_token(raw_token: str) -> str:
    """Return HMAC-SHA256(SECRET_KEY, raw_token) as a hex string.

    Deterministic, so the store can look a session up by hash directly.
    """
    return hmac.new(
        _settings.secret_key.encode(),
        raw_token.encode(),
        hashlib.sha256,
    ).hexdigest()


def set_session_cookie(response, token: str) -> None:
    """Write the session token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation for most cases.
    secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
    max_age: matches the session TTL so cookie and session expire together.
    """
    response.set_cookie(
        SESSION_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=_settings.session_ttl_seconds,
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(SESSION_COOKIE, httponly=True, samesite="lax", secure=_settings.secure_cookies)
