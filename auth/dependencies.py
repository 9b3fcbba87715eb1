"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The session token is read from, in priority order:
  1. the "session_token" cookie -- set by POST /users/sessions.
  2. an Authorization: Bearer <token> header -- API clients.

Both converge on SessionManager.resolve(); the core never learns which one
was used.

get_session_token() is the soft variant (returns None if no token was sent).
get_session_tokens() returns both tokens when both are sent; logout revokes
all of them so neither stays live.
get_current_identity() resolves it and raises Unauthenticated.
require_admin() wraps get_current_identity() and raises Forbidden if the
authorization gate refuses LIST_USERS (the only admin-only action).

The core errors propagate to the exception handlers in api/main.py, which
turn them into 401 / 403 responses.

Layer rule: no imports from api/. This module may import from fastapi
because it is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.models import Action, Identity
from auth.policy import authorize
from auth.sessions import SessionManager
from auth.tokens import SESSION_COOKIE


def get_session_tokens(request: Request) -> list[str]:
    """Return every distinct session token the request carries, cookie first."""
    tokens: list[str] = []
    cookie_token = request.cookies.get(SESSION_COOKIE, "")
    if cookie_token:
        tokens.append(cookie_token)
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        bearer_token = auth_header[7:].strip()
        if bearer_token and bearer_token not in tokens:
            tokens.append(bearer_token)
    return tokens


def get_session_token(request: Request) -> str | None:
    """Return the token used for authentication: the cookie if set, else the Bearer header."""
    tokens = get_session_tokens(request)
    return tokens[0] if tokens else None


def get_current_identity(request: Request) -> Identity:
    """Require an active session. Raises Unauthenticated otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(identity: Identity = Depends(get_current_identity)): ...
    """
    sessions: SessionManager = request.app.state.sessions
    return sessions.resolve(get_session_token(request))


def require_admin(request: Request) -> Identity:
    """Require the admin role. Unauthenticated first, then Forbidden."""
    identity = get_current_identity(request)
    authorize(identity, Action.LIST_USERS)
    return identity
