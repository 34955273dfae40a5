"""
Authorization

Routes are guarded by an action (resource, operation). The caller's user and
permission set come from request state, put there by whatever authentication
layer fronts the server; the authorizer only decides allow or deny.

Permissions are strings of the form "resource:operation", with "*" as a
wildcard for either part.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Protocol

from errors import Unauthorized

logger = logging.getLogger(__name__)

READ = "read"
CREATE = "create"
UPDATE = "update"
DELETE = "delete"


@dataclass(frozen=True)
class Action:
    resource: str
    operation: str

    def __str__(self) -> str:
        return f"{self.resource}:{self.operation}"


@dataclass
class User:
    """The authenticated caller."""
    id: Any
    permissions: Optional[list[str]] = field(default=None)

    @classmethod
    def from_state(cls, value: Any) -> Optional["User"]:
        if value is None or isinstance(value, User):
            return value
        if isinstance(value, dict):
            return cls(id=value.get("id"), permissions=value.get("permissions"))
        raise TypeError(f"Unsupported user object in request state: {type(value).__name__}")


class Authorizer(Protocol):
    def is_authorized(self, permissions: Iterable[str], action: Action) -> bool:
        ...


class PermissionAuthorizer:
    """Grants an action when the permission set holds it or a wildcard covering it."""

    def is_authorized(self, permissions: Iterable[str], action: Action) -> bool:
        granted = set(permissions)
        return bool(granted & {
            str(action),
            f"{action.resource}:*",
            "*:*",
        })


class AllowAllAuthorizer:
    """Grants everything. For local development only."""

    def is_authorized(self, permissions: Iterable[str], action: Action) -> bool:
        return True


def request_state_user(request) -> Optional[User]:
    """Default user provider: the user an authentication middleware stored on request.state."""
    return User.from_state(getattr(request.state, "user", None))


def authorize(user: Optional[User], action: Action, authorizer: Authorizer) -> None:
    """
    Raise Unauthorized unless `user` may perform `action`.

    Codes:
        NO_USER: no authenticated user
        NO_PERMISSIONS: the user carries no permission set
        NOT_AUTHORIZED: the permission set does not cover the action
    """
    if user is None:
        raise Unauthorized("No user", code="NO_USER")
    if user.permissions is None:
        raise Unauthorized("User has no permissions", code="NO_PERMISSIONS")
    if not authorizer.is_authorized(user.permissions, action):
        logger.info(f"User {user.id} denied {action}")
        raise Unauthorized(f"Not authorized to {action.operation} {action.resource}", code="NOT_AUTHORIZED")
