"""
api/routes/v1/users.py -- Registration, session, and user listing endpoints.

Routes:
  POST   /api/v1/users            -- register; returns the public user
  POST   /api/v1/users/sessions   -- login; sets the session cookie
  DELETE /api/v1/users/sessions   -- logout; revokes the token, clears cookie, 204
  GET    /api/v1/users/me         -- current user (requires a session)
  GET    /api/v1/users            -- list all users (admin only)

Every decision is made by the core in auth/. Handlers translate bodies into
core calls and core results into response models; core errors propagate to
the exception handlers in api/main.py.

Security:
  Login failures return the same error for an unknown email and a wrong
  password (SessionManager guarantees it; do not add detail here).
  Cache-Control: no-store on login responses so the token is never cached.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.models import LoginRequest, LoginResponse, UserCreate, UserResponse
from auth.dependencies import get_current_identity, get_session_tokens, require_admin
from auth.models import Action, Identity
from auth.policy import authorize
from auth.registry import UserRegistry
from auth.sessions import SessionManager
from auth.tokens import clear_session_cookie, set_session_cookie

# Auth policy:
# - POST   /api/v1/users:           public -- registration
# - POST   /api/v1/users/sessions:  public -- login must be unauthenticated
# - DELETE /api/v1/users/sessions:  public -- revoking an absent token is a no-op
# - GET    /api/v1/users/me:        requires a session (get_current_identity)
# - GET    /api/v1/users:           requires admin (require_admin)
router = APIRouter()


@router.post("/users", response_model=UserResponse)
def register(request: Request, body: UserCreate) -> UserResponse:
    """Create an account and return its public view."""
    registry: UserRegistry = request.app.state.registry
    user = registry.create(body.model_dump())
    return UserResponse.from_public(user)


@router.post("/users/sessions", response_model=LoginResponse)
def login(request: Request, response: Response, body: LoginRequest) -> LoginResponse:
    """Authenticate with email and password; set the session cookie."""
    sessions: SessionManager = request.app.state.sessions
    issued = sessions.login(body.email, body.password)
    set_session_cookie(response, issued.token)
    response.headers["Cache-Control"] = "no-store"
    return LoginResponse(token=issued.token, expires_at=issued.expires_at)


@router.delete("/users/sessions", status_code=204)
def logout(request: Request) -> Response:
    """Revoke every presented token (cookie and Bearer) and clear the cookie."""
    sessions: SessionManager = request.app.state.sessions
    for token in get_session_tokens(request):
        sessions.logout(token)
    resp = Response(status_code=204)
    clear_session_cookie(resp)
    return resp


@router.get("/users/me", response_model=UserResponse)
def me(identity: Identity = Depends(get_current_identity)) -> UserResponse:
    """Return the public view of the caller."""
    authorize(identity, Action.VIEW_SELF)
    return UserResponse.from_public(identity.public())


@router.get("/users", response_model=list[UserResponse])
def list_users(request: Request, identity: Identity = Depends(require_admin)) -> list[UserResponse]:
    """List every registered user. Admin only."""
    registry: UserRegistry = request.app.state.registry
    return [UserResponse.from_public(u) for u in registry.list_users()]
