"""Role-based access decisions for the admin console.

Every check in the routes goes through :func:`authorize` so that what the API
allows and what the console offers cannot drift apart.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional


class Role(str, Enum):
    SUPERADMIN = "superadmin"
    ADMIN = "admin"
    MANAGER = "manager"


class Action(str, Enum):
    VIEW_DASHBOARD = "view_dashboard"
    VIEW_ALL_LEADS = "view_all_leads"
    VIEW_LEAD = "view_lead"
    EDIT_LEAD = "edit_lead"
    ANNOTATE_LEAD = "annotate_lead"
    DELETE_LEAD = "delete_lead"
    MANAGE_USERS = "manage_users"
    ASSIGN_ROLE = "assign_role"
    TOGGLE_CRUD = "toggle_crud"
    EDIT_PROFILE = "edit_profile"
    MANAGE_CONTENT = "manage_content"


@dataclass(frozen=True)
class Identity:
    user_id: str
    email: Optional[str] = None
    role: Optional[Role] = None
    can_manage_crud: bool = False

    @property
    def is_superadmin(self) -> bool:
        return self.role is Role.SUPERADMIN

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    @property
    def is_manager(self) -> bool:
        return self.role is Role.MANAGER

    @property
    def sees_all_leads(self) -> bool:
        return self.role in (Role.SUPERADMIN, Role.ADMIN)


class AccessDenied(Exception):
    def __init__(self, action: Action, reason: str = "Access denied"):
        self.action = action
        self.reason = reason
        super().__init__(f"{reason}: {action.value}")


def _resource_value(resource: Any, key: str) -> Any:
    if resource is None:
        return None
    if isinstance(resource, Mapping):
        return resource.get(key)
    return getattr(resource, key, None)


def _assigned_to(identity: Identity, lead: Any) -> bool:
    manager_id = _resource_value(lead, "assigned_manager_id")
    return manager_id is not None and str(manager_id) == identity.user_id


def authorize(identity: Optional[Identity], action: Action, resource: Any = None) -> bool:
    if identity is None or identity.role is None:
        return False

    if action is Action.VIEW_DASHBOARD:
        return True
    if action in (Action.ASSIGN_ROLE, Action.TOGGLE_CRUD):
        return identity.is_superadmin
    if action is Action.DELETE_LEAD:
        return identity.is_superadmin or (identity.is_admin and identity.can_manage_crud)
    if action is Action.MANAGE_CONTENT:
        return identity.can_manage_crud
    if action in (Action.EDIT_LEAD, Action.VIEW_ALL_LEADS, Action.MANAGE_USERS):
        return identity.sees_all_leads
    if action in (Action.VIEW_LEAD, Action.ANNOTATE_LEAD):
        return identity.sees_all_leads or _assigned_to(identity, resource)
    if action is Action.EDIT_PROFILE:
        target = _resource_value(resource, "id")
        return identity.sees_all_leads or (target is not None and str(target) == identity.user_id)
    return False


def require(identity: Optional[Identity], action: Action, resource: Any = None) -> None:
    if not authorize(identity, action, resource):
        raise AccessDenied(action)


def lead_scope(identity: Identity) -> Optional[str]:
    """Manager id that every lead query must be restricted to, or None for all leads."""
    if identity.sees_all_leads:
        return None
    return identity.user_id
