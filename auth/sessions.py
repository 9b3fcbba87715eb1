"""
auth/sessions.py -- Session lifecycle: login, resolve, logout.

A session is either absent or active. login() makes one active, logout() or
expiry makes it absent again, and an absent token never comes back: the row
is deleted and new logins always mint new random tokens.

Security design decisions:
  [timing] login() always runs bcrypt once, against DUMMY_HASH when the email
       is unknown, so response time does not reveal whether an account exists.
       Unknown email and wrong password raise the same InvalidCredentials.

  [storage] Only HMAC(SECRET_KEY, token) is stored (see auth/tokens.py).

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import IntegrityError

from auth.credentials import DUMMY_HASH, verify_password
from auth.errors import InvalidCredentials, Unauthenticated
from auth.models import Identity, IssuedSession, Session
from auth.registry import UserRegistry
from auth.store import SessionStore
from auth.tokens import generate_session_token, hash_session_token

logger = logging.getLogger("turnstile.auth")

# Attempts at inserting a fresh token before giving up. A collision between
# two 256-bit random tokens does not happen in practice; the loop exists so
# the primary key, not luck, is what guarantees uniqueness.
_TOKEN_ATTEMPTS = 3


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(moment: datetime) -> str:
    return moment.isoformat(timespec="microseconds")


class SessionManager:
    """Issues, resolves, and revokes session tokens.

    Usage:
        sessions = SessionManager(registry, SessionStore(url), ttl_seconds=3600)
        issued = sessions.login("a@x.com", "p")
        identity = sessions.resolve(issued.token)
        sessions.logout(issued.token)
    """

    def __init__(self, registry: UserRegistry, store: SessionStore, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.registry = registry
        self.store = store
        self.ttl = timedelta(seconds=ttl_seconds)

    def login(self, email: str, password: str) -> IssuedSession:
        """Verify credentials and open a new session.

        Raises InvalidCredentials if the email is unknown or the password is
        wrong -- the two cases are indistinguishable to the caller.
        """
        user = self.registry.find_by_email(email)
        if user is None:
            # Equalize timing -- do NOT return before running bcrypt.
            verify_password(password, DUMMY_HASH)
            logger.warning("Failed login attempt")
            raise InvalidCredentials()
        if not verify_password(password, user.hashed_password):
            logger.warning("Failed login attempt")
            raise InvalidCredentials()

        created = _now()
        expires_at = _iso(created + self.ttl)
        for attempt in range(1, _TOKEN_ATTEMPTS + 1):
            token = generate_session_token()
            try:
                self.store.create_session(
                    Session(
                        token_hash=hash_session_token(token),
                        user_id=user.id or "",
                        created_at=_iso(created),
                        expires_at=expires_at,
                    )
                )
            except IntegrityError:
                if attempt == _TOKEN_ATTEMPTS:
                    raise
                logger.warning("Session token collision, retrying (attempt %d)", attempt)
                continue
            break

        logger.info("User %s logged in (%d open sessions)", user.id, self.store.count_sessions(user.id or ""))
        return IssuedSession(token=token, user_id=user.id or "", expires_at=expires_at)

    def resolve(self, token: str | None) -> Identity:
        """Return the identity behind an active token.

        Raises Unauthenticated if the token is missing, was never issued, has
        been revoked, has expired, or belongs to a user that no longer exists.
        """
        if not token:
            raise Unauthenticated()
        token_hash = hash_session_token(token)
        session = self.store.get_session(token_hash)
        if session is None:
            raise Unauthenticated()
        if session.expires_at <= _iso(_now()):
            self.store.delete_session(token_hash)
            raise Unauthenticated("Session expired.")
        user = self.registry.get(session.user_id)
        if user is None:
            self.store.delete_session(token_hash)
            raise Unauthenticated()
        return Identity.from_user(user)

    def logout(self, token: str | None) -> bool:
        """Revoke a token. Idempotent: returns False if nothing was active."""
        if not token:
            return False
        revoked = self.store.delete_session(hash_session_token(token))
        if revoked:
            logger.info("Session revoked")
        return revoked

    def purge_expired(self) -> int:
        """Delete every expired session. Returns how many were removed."""
        purged = self.store.delete_expired(_iso(_now()))
        if purged:
            logger.info("Purged %d expired sessions", purged)
        return purged
