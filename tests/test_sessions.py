"""Unit tests for auth/sessions.py -- login, resolve, logout, expiry.

Covers:
- login succeeds iff the email exists and the password matches
- unknown email and wrong password raise the same InvalidCredentials
- an unknown email still pays for one bcrypt check against DUMMY_HASH
- resolve returns the identity of the user who logged in
- never-issued, logged-out, and expired tokens raise Unauthenticated
- logout is idempotent and permanent
- token collisions are retried, not silently shared
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import pytest

import auth.sessions as sessions_module
from auth.credentials import DUMMY_HASH
from auth.errors import InvalidCredentials, Unauthenticated
from auth.models import Role, Session
from auth.registry import UserRegistry
from auth.sessions import SessionManager
from auth.store import SessionStore
from auth.tokens import hash_session_token


@pytest.fixture
def registered(registry: UserRegistry, mock_user: dict) -> dict:
    registry.create(mock_user)
    return mock_user


class TestLogin:
    def test_login_returns_token(self, sessions: SessionManager, registered: dict) -> None:
        issued = sessions.login(registered["email"], registered["password"])
        assert issued.token
        assert issued.user_id
        assert issued.expires_at > datetime.now(timezone.utc).isoformat()

    def test_each_login_gets_a_new_token(self, sessions: SessionManager, registered: dict) -> None:
        first = sessions.login(registered["email"], registered["password"])
        second = sessions.login(registered["email"], registered["password"])
        assert first.token != second.token
        assert sessions.resolve(first.token).email == sessions.resolve(second.token).email

    def test_token_is_not_stored_raw(
        self, sessions: SessionManager, session_store: SessionStore, registered: dict
    ) -> None:
        issued = sessions.login(registered["email"], registered["password"])
        assert session_store.get_session(issued.token) is None
        assert session_store.get_session(hash_session_token(issued.token)) is not None

    def test_unknown_email_and_wrong_password_are_indistinguishable(
        self, sessions: SessionManager, registered: dict
    ) -> None:
        with pytest.raises(InvalidCredentials) as unknown:
            sessions.login("nobody@example.com", registered["password"])
        with pytest.raises(InvalidCredentials) as wrong:
            sessions.login(registered["email"], "wrong")
        assert type(unknown.value) is type(wrong.value)
        assert str(unknown.value) == str(wrong.value)

    def test_failed_login_creates_no_session(
        self, sessions: SessionManager, session_store: SessionStore, registry: UserRegistry, registered: dict
    ) -> None:
        with pytest.raises(InvalidCredentials):
            sessions.login(registered["email"], "wrong")
        user = registry.find_by_email(registered["email"])
        assert session_store.count_sessions(user.id) == 0

    def test_unknown_email_still_runs_bcrypt_against_dummy_hash(
        self, sessions: SessionManager, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """An unknown email costs one bcrypt check, the same as a wrong password."""
        calls: list[tuple[str, str]] = []

        def recording_verify(plain: str, hashed: str) -> bool:
            calls.append((plain, hashed))
            return False

        monkeypatch.setattr(sessions_module, "verify_password", recording_verify)
        with pytest.raises(InvalidCredentials):
            sessions.login("nobody@example.com", "guess")
        assert calls == [("guess", DUMMY_HASH)]

    def test_wrong_password_checks_the_stored_hash(
        self, sessions: SessionManager, registry: UserRegistry, registered: dict, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        calls: list[str] = []

        def recording_verify(plain: str, hashed: str) -> bool:
            calls.append(hashed)
            return False

        monkeypatch.setattr(sessions_module, "verify_password", recording_verify)
        with pytest.raises(InvalidCredentials):
            sessions.login(registered["email"], "wrong")
        assert calls == [registry.find_by_email(registered["email"]).hashed_password]

    def test_login_logs_open_session_count(self, sessions: SessionManager, registered: dict, caplog) -> None:
        with caplog.at_level(logging.INFO, logger="turnstile.auth"):
            sessions.login(registered["email"], registered["password"])
            sessions.login(registered["email"], registered["password"])
        assert "(2 open sessions)" in caplog.text
        assert registered["password"] not in caplog.text

    def test_token_collision_is_retried(
        self, sessions: SessionManager, registered: dict, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        tokens = iter(["same-token", "same-token", "fresh-token"])
        monkeypatch.setattr(sessions_module, "generate_session_token", lambda: next(tokens))

        first = sessions.login(registered["email"], registered["password"])
        second = sessions.login(registered["email"], registered["password"])
        assert first.token == "same-token"
        assert second.token == "fresh-token"


class TestResolve:
    def test_resolve_returns_logged_in_user(self, sessions: SessionManager, registered: dict) -> None:
        issued = sessions.login(registered["email"], registered["password"])
        identity = sessions.resolve(issued.token)
        assert identity.email == registered["email"]
        assert identity.user_id == issued.user_id
        assert identity.role is Role.STANDARD
        assert identity.public().username == registered["username"]

    @pytest.mark.parametrize("token", [None, "", "never-issued"])
    def test_resolve_rejects_missing_or_unknown(self, sessions: SessionManager, token) -> None:
        with pytest.raises(Unauthenticated):
            sessions.resolve(token)

    def test_resolve_rejects_expired_and_deletes_it(
        self, sessions: SessionManager, session_store: SessionStore, registry: UserRegistry, registered: dict
    ) -> None:
        user = registry.find_by_email(registered["email"])
        past = datetime.now(timezone.utc) - timedelta(hours=2)
        session_store.create_session(
            Session(
                token_hash=hash_session_token("stale"),
                user_id=user.id,
                created_at=past.isoformat(timespec="microseconds"),
                expires_at=(past + timedelta(hours=1)).isoformat(timespec="microseconds"),
            )
        )
        with pytest.raises(Unauthenticated):
            sessions.resolve("stale")
        assert session_store.get_session(hash_session_token("stale")) is None

    def test_resolve_rejects_session_of_unknown_user(
        self, sessions: SessionManager, session_store: SessionStore
    ) -> None:
        now = datetime.now(timezone.utc)
        session_store.create_session(
            Session(
                token_hash=hash_session_token("orphan"),
                user_id="no-such-user",
                created_at=now.isoformat(timespec="microseconds"),
                expires_at=(now + timedelta(hours=1)).isoformat(timespec="microseconds"),
            )
        )
        with pytest.raises(Unauthenticated):
            sessions.resolve("orphan")


class TestLogout:
    def test_logout_then_resolve_fails(self, sessions: SessionManager, registered: dict) -> None:
        issued = sessions.login(registered["email"], registered["password"])
        assert sessions.logout(issued.token) is True
        with pytest.raises(Unauthenticated):
            sessions.resolve(issued.token)

    def test_logout_is_idempotent(self, sessions: SessionManager, registered: dict) -> None:
        issued = sessions.login(registered["email"], registered["password"])
        sessions.logout(issued.token)
        assert sessions.logout(issued.token) is False
        assert sessions.logout("never-issued") is False
        assert sessions.logout(None) is False

    def test_logout_only_revokes_that_token(self, sessions: SessionManager, registered: dict) -> None:
        first = sessions.login(registered["email"], registered["password"])
        second = sessions.login(registered["email"], registered["password"])
        sessions.logout(first.token)
        assert sessions.resolve(second.token).email == registered["email"]


def test_purge_expired(
    sessions: SessionManager, session_store: SessionStore, registry: UserRegistry, registered: dict
) -> None:
    live = sessions.login(registered["email"], registered["password"])
    user = registry.find_by_email(registered["email"])
    past = datetime.now(timezone.utc) - timedelta(minutes=5)
    session_store.create_session(
        Session(
            token_hash=hash_session_token("expired"),
            user_id=user.id,
            created_at=past.isoformat(timespec="microseconds"),
            expires_at=past.isoformat(timespec="microseconds"),
        )
    )
    assert sessions.purge_expired() == 1
    assert sessions.resolve(live.token).email == registered["email"]


def test_ttl_must_be_positive(registry: UserRegistry, session_store: SessionStore) -> None:
    with pytest.raises(ValueError):
        SessionManager(registry, session_store, ttl_seconds=0)
