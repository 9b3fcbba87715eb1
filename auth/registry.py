"""
auth/registry.py -- User registration and lookup.

UserRegistry validates registration input, assigns the role, hashes the
password, and hands a complete User to the UserStore. It is the only writer
of user records.

Role policy: a registrant whose email is exactly "admin" becomes an admin;
everyone else is standard. There is no other way to obtain the admin role.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from datetime import datetime, timezone

from auth.credentials import MAX_PASSWORD_BYTES, hash_password
from auth.errors import InvalidInput
from auth.models import PublicUser, Role, User
from auth.store import UserStore

logger = logging.getLogger("turnstile.auth")

ADMIN_EMAIL = "admin"

REQUIRED_FIELDS = ("username", "first_name", "last_name", "email", "password")


class UserRegistry:
    def __init__(self, store: UserStore) -> None:
        self.store = store

    def create(self, fields: Mapping[str, object]) -> PublicUser:
        """Register a new user and return its public view.

        Raises InvalidInput if any required field is missing, not a string,
        or blank, or if the password exceeds bcrypt's 72-byte limit.
        Raises DuplicateEmail if the email is already registered.

        The password is hashed before the store is called, so no transaction
        is open during the (deliberately slow) bcrypt run.
        """
        missing = [
            name for name in REQUIRED_FIELDS if not isinstance(fields.get(name), str) or not fields[name].strip()
        ]
        if missing:
            raise InvalidInput(missing)

        password: str = fields["password"]  # type: ignore[assignment]
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise InvalidInput(["password"], f"Password must be at most {MAX_PASSWORD_BYTES} bytes.")

        email: str = fields["email"]  # type: ignore[assignment]
        user = User(
            id=str(uuid.uuid4()),
            email=email,
            username=fields["username"],  # type: ignore[arg-type]
            first_name=fields["first_name"],  # type: ignore[arg-type]
            last_name=fields["last_name"],  # type: ignore[arg-type]
            hashed_password=hash_password(password),
            role=Role.ADMIN if email == ADMIN_EMAIL else Role.STANDARD,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        self.store.create_user(user)
        logger.info("Registered user %s (role=%s)", user.id, user.role.value)
        return user.public()

    def find_by_email(self, email: str) -> User | None:
        """Return the full internal record, hash and role included. Never expose it."""
        return self.store.get_by_email(email)

    def get(self, user_id: str) -> User | None:
        return self.store.get_by_id(user_id)

    def list_users(self) -> list[PublicUser]:
        return [u.public() for u in self.store.list_users()]
