"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, almost zero logic). Dataclasses own
the domain shape; stores, the registry and the session manager do the work.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    STANDARD = "standard"
    ADMIN = "admin"


class Action(str, Enum):
    """Operations the authorization gate knows how to decide on."""

    LIST_USERS = "list_users"
    VIEW_SELF = "view_self"


@dataclass
class User:
    """A registered account, exactly as the store holds it.

    hashed_password is a bcrypt hash with its salt embedded. This record never
    leaves auth/ -- anything returned to a caller goes through PublicUser.
    """

    username: str
    first_name: str
    last_name: str
    email: str
    hashed_password: str
    role: Role = Role.STANDARD
    id: str | None = None
    created_at: str | None = None

    def public(self) -> PublicUser:
        return PublicUser(
            id=self.id or "",
            email=self.email,
            username=self.username,
            first_name=self.first_name,
            last_name=self.last_name,
        )


@dataclass(frozen=True)
class PublicUser:
    """The part of a User that is safe to hand to any caller."""

    id: str
    email: str
    username: str
    first_name: str
    last_name: str


@dataclass(frozen=True)
class Identity:
    """The caller behind a resolved session token.

    Produced only by SessionManager.resolve(); the authorization gate takes
    nothing else.
    """

    user_id: str
    email: str
    username: str
    first_name: str
    last_name: str
    role: Role

    @classmethod
    def from_user(cls, user: User) -> Identity:
        return cls(
            user_id=user.id or "",
            email=user.email,
            username=user.username,
            first_name=user.first_name,
            last_name=user.last_name,
            role=user.role,
        )

    def public(self) -> PublicUser:
        return PublicUser(
            id=self.user_id,
            email=self.email,
            username=self.username,
            first_name=self.first_name,
            last_name=self.last_name,
        )


@dataclass
class Session:
    """An active login.

    Security design:
    - token_hash is HMAC-SHA256(SECRET_KEY, raw_token). The raw token is
      returned ONCE by login() and never persisted, so a leaked database does
      not hand out live sessions.
    - Revocation deletes the row. A new login always mints a fresh 256-bit
      token, so a revoked token can never resolve again.
    """

    token_hash: str
    user_id: str
    created_at: str
    expires_at: str


@dataclass(frozen=True)
class IssuedSession:
    """What login() hands back: the raw token and when it stops working."""

    token: str
    user_id: str
    expires_at: str
