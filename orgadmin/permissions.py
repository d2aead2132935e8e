"""Central role-based access decisions.

Every access decision in the organisation tooling is expressed here once, as
``AccessPolicy.can(principal, permission, resource)``, instead of comparing
role strings at each call site.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional

from .errors import ForbiddenError
from .models import Profile, Role


class Permission(str, Enum):
    DELETE_USER = "delete_user"
    DELETE_ALL_USERS = "delete_all_users"
    LIST_USERS = "list_users"
    VIEW_ANALYTICS = "view_analytics"
    CREATE_TASK = "create_task"
    CREATE_EVENT = "create_event"
    SUBMIT_REPORT = "submit_report"
    CREATE_ASSIGNMENT = "create_assignment"
    CREATE_CHAT_ROOM = "create_chat_room"
    MANAGE_PROPOSALS = "manage_proposals"
    MANAGE_TOOLS = "manage_tools"
    VIEW_FEEDBACK_REPORTS = "view_feedback_reports"


_BOARD: FrozenSet[Role] = frozenset({Role.MANAGEMENT_BOARD})
_BOARDS: FrozenSet[Role] = frozenset({Role.MANAGEMENT_BOARD, Role.HIGH_BOARD})

_GRANTS: Dict[Permission, FrozenSet[Role]] = {
    Permission.DELETE_USER: _BOARD,
    Permission.DELETE_ALL_USERS: _BOARD,
    Permission.LIST_USERS: _BOARD,
    Permission.VIEW_ANALYTICS: _BOARD,
    Permission.CREATE_CHAT_ROOM: _BOARD,
    Permission.MANAGE_PROPOSALS: _BOARD,
    Permission.MANAGE_TOOLS: _BOARD,
    Permission.VIEW_FEEDBACK_REPORTS: _BOARD,
    Permission.CREATE_TASK: _BOARDS,
    Permission.CREATE_EVENT: _BOARDS,
    Permission.SUBMIT_REPORT: _BOARDS,
    Permission.CREATE_ASSIGNMENT: _BOARDS,
}

# Permissions whose resource is a user id that the principal may act on for itself.
_SELF_SERVICE: FrozenSet[Permission] = frozenset({Permission.DELETE_USER})


@dataclass(frozen=True)
class Principal:
    """The authenticated caller an access decision is made for."""

    user_id: str
    role: Optional[Role] = None

    @staticmethod
    def from_profile(user_id: str, profile: Optional[Profile]) -> "Principal":
        return Principal(user_id=user_id, role=profile.role if profile else None)


class AccessPolicy:
    """Answer ``can(principal, permission, resource)`` for the whole application."""

    def __init__(self, grants: Optional[Dict[Permission, FrozenSet[Role]]] = None) -> None:
        self._grants = dict(grants or _GRANTS)

    def can(self, principal: Principal, permission: Permission, resource: Optional[str] = None) -> bool:
        if permission in _SELF_SERVICE and resource is not None and resource == principal.user_id:
            return True
        if principal.role is None:
            return False
        return principal.role in self._grants.get(permission, frozenset())

    def require(self, principal: Principal, permission: Permission, resource: Optional[str] = None) -> None:
        if not self.can(principal, permission, resource):
            raise ForbiddenError("Forbidden")

    def capabilities(self, principal: Principal) -> Dict[str, bool]:
        return {permission.value: self.can(principal, permission) for permission in Permission}


__all__ = ["AccessPolicy", "Permission", "Principal"]
