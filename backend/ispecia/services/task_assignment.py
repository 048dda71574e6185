"""
Task assignment rules.

Administrators (or roles with ``tasks.manage_all``) may assign to anyone.
Managers assign within their two-level reporting tree, leads to their direct
reports, and everybody else with the permission is unrestricted.
"""
from typing import Optional

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from ispecia.core.errors import PermissionDeniedError, NotFoundError
from ispecia.core.permissions import is_administrator
from ispecia.models.task import Task
from ispecia.models.user import User

ROLE_HIERARCHY = {
    "Administrator": 4,
    "Manager": 3,
    "Lead": 2,
    "Employee": 1,
}


def _task_actions(user: User) -> list:
    permissions = user.role.permissions if user.role else None
    if not isinstance(permissions, dict):
        return []
    actions = permissions.get("tasks")
    return actions if isinstance(actions, list) else []


def _role_name(user: User) -> Optional[str]:
    return user.role.name if user.role else None


async def get_subordinate_ids(db: AsyncSession, user_id: str) -> list[str]:
    result = await db.execute(select(User.id).where(User.reports_to_id == user_id))
    return list(result.scalars().all())


async def get_hierarchy_ids(db: AsyncSession, user_id: str) -> list[str]:
    """Direct reports plus their direct reports."""
    direct = await get_subordinate_ids(db, user_id)
    if not direct:
        return []
    result = await db.execute(select(User.id).where(User.reports_to_id.in_(direct)))
    return direct + list(result.scalars().all())


async def validate_assignment(db: AsyncSession, assigner: User, assignee: User) -> None:
    """
    Check that ``assigner`` may give a task to ``assignee``.

    Raises:
        PermissionDeniedError: when the assignment is not allowed.
    """
    actions = _task_actions(assigner)
    is_admin = is_administrator(assigner.role)

    if not (is_admin or "assign" in actions or "create" in actions):
        raise PermissionDeniedError("You do not have permission to assign tasks")

    if is_admin or "manage_all" in actions:
        return

    role_name = _role_name(assigner)
    if assignee.id == assigner.id or assignee.reports_to_id == assigner.id:
        return

    if role_name == "Manager":
        if assignee.reports_to_id:
            lead = await db.get(User, assignee.reports_to_id)
            if lead is not None and lead.reports_to_id == assigner.id:
                return
        raise PermissionDeniedError("You can only assign tasks to users in your hierarchy")

    if role_name == "Lead":
        raise PermissionDeniedError("You can only assign tasks to users who report directly to you")


async def load_assignee(db: AsyncSession, user_id: str) -> User:
    assignee = await db.get(User, user_id)
    if assignee is None:
        raise NotFoundError("Assignee not found")
    return assignee


async def visible_task_filter(db: AsyncSession, user: User) -> Optional[ColumnElement]:
    """WHERE clause limiting tasks to those the user may see, or None for all."""
    if is_administrator(user.role):
        return None

    role_name = _role_name(user)
    if role_name == "Lead":
        below = await get_subordinate_ids(db, user.id)
    elif role_name == "Manager":
        below = await get_hierarchy_ids(db, user.id)
    else:
        return Task.assigned_to_id == user.id

    clauses = [Task.assigned_to_id == user.id, Task.assigned_by_id == user.id]
    if below:
        clauses.append(Task.assigned_to_id.in_(below))
    return or_(*clauses)
