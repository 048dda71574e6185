"""
Role endpoints.

Roles carry a flat permissions blob ({"leads": ["view", "edit"], ...}).
Reads need any authenticated user; writes need settings.user.roles.
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from ispecia.db.base import get_db
from ispecia.core.deps import get_current_user
from ispecia.core.permissions import PERMISSIONS_TREE, ADMINISTRATOR_ROLE, require_permission
from ispecia.models.role import Role, PermissionType
from ispecia.models.user import User
from ispecia.schemas.auth import RoleCreate, RoleUpdate, RoleResponse

logger = logging.getLogger(__name__)

router = APIRouter()


async def _get_role(db: AsyncSession, role_id: str) -> Role:
    role = await db.get(Role, role_id)
    if role is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Role not found"
        )
    return role


@router.get("/permissions-tree")
async def get_permissions_tree(current_user: User = Depends(get_current_user)):
    return PERMISSIONS_TREE


@router.get("", response_model=list[RoleResponse])
async def list_roles(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    result = await db.execute(select(Role).order_by(Role.created.desc()))
    return result.scalars().all()


@router.get("/{role_id}", response_model=RoleResponse)
async def get_role(
    role_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await _get_role(db, role_id)


@router.post("", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    role_data: RoleCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("settings.user.roles", "create"))
):
    existing = await db.execute(select(Role).where(func.lower(Role.name) == role_data.name.lower()))
    if existing.scalars().first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Role with this name already exists"
        )

    role = Role(
        name=role_data.name,
        description=role_data.description,
        permission_type=PermissionType.CUSTOM,
        permissions=role_data.permissions or {},
    )
    db.add(role)
    await db.flush()
    logger.info("Role %s created by %s", role.name, current_user.id)
    return role


@router.patch("/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: str,
    role_data: RoleUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("settings.user.roles", "edit"))
):
    role = await _get_role(db, role_id)

    update_data = role_data.model_dump(exclude_unset=True)
    if update_data.get("name") is None:
        update_data.pop("name", None)
    if "permissions" in update_data and update_data["permissions"] is None:
        update_data["permissions"] = {}

    for field, value in update_data.items():
        setattr(role, field, value)

    await db.flush()
    return role


@router.delete("/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    role_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("settings.user.roles", "delete"))
):
    role = await _get_role(db, role_id)

    if role.name.strip().lower() == ADMINISTRATOR_ROLE:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot delete administrator role"
        )

    user_count = await db.scalar(select(func.count()).select_from(User).where(User.role_id == role.id))
    if user_count:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot delete role assigned to {user_count} user(s)"
        )

    await db.delete(role)
    await db.flush()
