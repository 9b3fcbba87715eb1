"""
auth/policy.py -- Role-based authorization decisions.

authorize() only ever sees an Identity that SessionManager.resolve() already
produced. Authentication (who are you) and authorization (what may you do)
stay separate and can be tested on their own.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from auth.errors import Forbidden
from auth.models import Action, Identity, Role

# Role required per action. None = any authenticated identity.
_REQUIRED_ROLE: dict[Action, Role | None] = {
    Action.LIST_USERS: Role.ADMIN,
    Action.VIEW_SELF: None,  # target is always the caller
}


def authorize(identity: Identity, action: Action) -> None:
    """Return None if identity may perform action, raise Forbidden otherwise."""
    required = _REQUIRED_ROLE[action]
    if required is not None and identity.role != required:
        raise Forbidden()
