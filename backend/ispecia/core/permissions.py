"""
Role permission checks.

A role's permissions blob is flat: dotted resource paths mapped to lists of
allowed actions. A path is granted when the exact key has actions, or when any
key below it ("path.") does. Administrators bypass every check.
"""
from typing import Any, Iterable, Optional
from fastapi import Depends, HTTPException, status

from ispecia.models.role import Role, PermissionType
from ispecia.models.user import User
from ispecia.core.deps import get_current_user

ADMINISTRATOR_ROLE = "administrator"

PERMISSIONS_TREE: dict[str, Any] = {
    "dashboard": {"label": "Dashboard", "permissions": ["view"]},
    "leads": {"label": "Leads", "permissions": ["create", "view", "edit", "delete"]},
    "deals": {"label": "Deals", "permissions": ["create", "view", "edit", "delete"]},
    "quotes": {"label": "Quotes", "permissions": ["create", "view", "edit", "print", "delete"]},
    "mail": {
        "label": "Mail",
        "permissions": ["inbox", "draft", "outbox", "sent", "trash", "create", "view", "edit", "delete"],
    },
    "activities": {"label": "Activities", "permissions": ["create", "view", "edit", "delete"]},
    "tasks": {"label": "Tasks", "permissions": ["create", "view", "edit", "delete", "assign", "manage_all"]},
    "contacts": {
        "label": "Contacts",
        "children": {
            "persons": {"label": "Persons", "permissions": ["create", "view", "edit", "delete"]},
            "organizations": {"label": "Organizations", "permissions": ["create", "view", "edit", "delete"]},
        },
    },
    "products": {"label": "Products", "permissions": ["create", "view", "edit", "delete"]},
    "settings": {
        "label": "Settings",
        "children": {
            "user": {
                "label": "User",
                "children": {
                    "groups": {"label": "Groups", "permissions": ["create", "edit", "delete"]},
                    "roles": {"label": "Roles", "permissions": ["create", "edit", "delete"]},
                    "users": {"label": "Users", "permissions": ["create", "view", "edit", "delete"]},
                },
            },
            "lead": {
                "label": "Lead",
                "children": {
                    "pipelines": {"label": "Pipelines", "permissions": ["create", "edit", "delete"]},
                    "sources": {"label": "Sources", "permissions": ["create", "edit", "delete"]},
                    "types": {"label": "Types", "permissions": ["create", "edit", "delete"]},
                },
            },
            "automation": {
                "label": "Automation",
                "children": {
                    "attributes": {"label": "Attributes", "permissions": ["create", "edit", "delete"]},
                    "webhook": {"label": "Webhook", "permissions": ["create", "edit", "delete"]},
                    "workflows": {"label": "Workflows", "permissions": ["create", "edit", "delete"]},
                    "events": {"label": "Event", "permissions": ["create", "edit", "delete"]},
                    "campaigns": {"label": "Campaigns", "permissions": ["create", "edit", "delete"]},
                    "emailTemplates": {"label": "Email Templates", "permissions": ["create", "edit", "delete"]},
                    "emailAccounts": {"label": "Email Accounts", "permissions": ["create", "edit", "delete"]},
                },
            },
            "otherSettings": {
                "label": "Other Settings",
                "children": {
                    "webForms": {"label": "Web Forms", "permissions": ["view", "create", "edit", "delete"]},
                    "tags": {"label": "Tags", "permissions": ["create", "edit", "delete"]},
                    "dataTransfer": {"label": "Data Transfer", "permissions": ["import", "export"]},
                },
            },
        },
    },
    "voip": {
        "label": "VoIP",
        "children": {
            "providers": {"label": "Providers", "permissions": ["create", "edit", "delete"]},
            "trunks": {"label": "Trunks", "permissions": ["create", "edit", "delete"]},
            "inboundRoutes": {"label": "Inbound Routes", "permissions": ["create", "edit", "delete"]},
            "callRecordings": {"label": "Call Recordings", "permissions": ["play", "download", "delete"]},
            "calls": {"label": "Calls", "permissions": ["initiate", "all_calls"]},
        },
    },
    "configuration": {"label": "Configuration", "permissions": ["view", "edit"]},
}


def flatten_permissions_tree(tree: Optional[dict] = None, prefix: str = "") -> dict[str, list[str]]:
    """Return {dotted.path: [actions]} for every leaf of the tree."""
    tree = PERMISSIONS_TREE if tree is None else tree
    flat: dict[str, list[str]] = {}
    for key, node in tree.items():
        path = f"{prefix}.{key}" if prefix else key
        if "permissions" in node:
            flat[path] = list(node["permissions"])
        if "children" in node:
            flat.update(flatten_permissions_tree(node["children"], path))
    return flat


def is_administrator(role: Optional[Role]) -> bool:
    if role is None:
        return False
    if (role.name or "").strip().lower() == ADMINISTRATOR_ROLE:
        return True
    return role.permission_type == PermissionType.ALL


def _granted(value: Any) -> bool:
    return isinstance(value, list) and len(value) > 0


def has_permission(role: Optional[Role], permission_path: Optional[str]) -> bool:
    """Check whether the role grants a path or anything beneath it."""
    if not permission_path:
        return True
    if role is None:
        return False
    if is_administrator(role):
        return True

    permissions = role.permissions
    if not isinstance(permissions, dict):
        return False

    if _granted(permissions.get(permission_path)):
        return True

    prefix = permission_path + "."
    return any(
        key.startswith(prefix) and _granted(value)
        for key, value in permissions.items()
    )


def has_any_permission(role: Optional[Role], paths: Iterable[str]) -> bool:
    return any(has_permission(role, path) for path in paths)


def has_all_permissions(role: Optional[Role], paths: Iterable[str]) -> bool:
    return all(has_permission(role, path) for path in paths)


def can_perform_action(role: Optional[Role], resource: str, action: str) -> bool:
    """Exact resource key must list the action; no prefix matching here."""
    if is_administrator(role):
        return True
    if role is None or not isinstance(role.permissions, dict):
        return False
    actions = role.permissions.get(resource)
    if isinstance(actions, list):
        return action in actions
    return False


def require_permission(resource: str, action: Optional[str] = None):
    """
    Dependency factory guarding an endpoint with a role permission.

    With an action the exact resource key must list it; without one any grant
    on the resource (or beneath it) is enough.
    """
    async def dependency(current_user: User = Depends(get_current_user)) -> User:
        if action is None:
            allowed = has_permission(current_user.role, resource)
        else:
            allowed = can_perform_action(current_user.role, resource, action)
        if not allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions"
            )
        return current_user

    return dependency
