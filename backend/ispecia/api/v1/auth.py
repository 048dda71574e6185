"""
Authentication and user management endpoints.

Endpoints:
- POST /auth/register - Create an account and return a token
- POST /auth/login - Exchange email/password for a token
- GET /auth/me - Current user with role
- GET /auth/users - All users (settings.user.users)
- PATCH /auth/users/{user_id} - Change name, role, status or manager
- DELETE /auth/users/{user_id} - Remove a user
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.orm import selectinload

from ispecia.db.base import get_db
from ispecia.core.config import settings
from ispecia.core.security import get_password_hash, verify_password, create_access_token
from ispecia.core.deps import get_current_user
from ispecia.core.permissions import require_permission
from ispecia.models.base import utcnow
from ispecia.models.role import Role, PermissionType
from ispecia.models.user import User
from ispecia.schemas.auth import UserRegister, UserLogin, UserUpdate, UserResponse, TokenResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def user_to_response(user: User) -> UserResponse:
    """Convert a User (role loaded) to its public shape."""
    return UserResponse.model_validate(user)


async def _load_user(db: AsyncSession, user_id: str) -> User | None:
    result = await db.execute(
        select(User)
        .options(selectinload(User.role))
        .where(User.id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _default_role(db: AsyncSession) -> Role:
    """Employee when seeded, else Administrator, created on first registration."""
    for name in ("Employee", "Administrator"):
        role = (await db.execute(
            select(Role).where(func.lower(Role.name) == name.lower())
        )).scalars().first()
        if role is not None:
            return role

    role = Role(
        name="Administrator",
        description="Full access to every module",
        permission_type=PermissionType.ALL,
        permissions={"all": True},
    )
    db.add(role)
    await db.flush()
    logger.info("Created Administrator role for first registration")
    return role


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(
    user_data: UserRegister,
    db: AsyncSession = Depends(get_db)
):
    """Register a new user."""
    email = user_data.email.lower()
    existing = await db.execute(select(User).where(func.lower(User.email) == email))
    if existing.scalar_one_or_none():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User already exists"
        )

    if user_data.role_id:
        role = await db.get(Role, user_data.role_id)
        if role is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Role not found"
            )
    else:
        role = await _default_role(db)

    user = User(
        name=user_data.name,
        email=email,
        password_hash=get_password_hash(user_data.password),
        role_id=role.id,
        status=True,
    )
    db.add(user)
    await db.flush()

    user = await _load_user(db, user.id)
    logger.info("Registered user %s with role %s", user.email, role.name)
    return TokenResponse(token=create_access_token(subject=user.id), user=user_to_response(user))


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: UserLogin,
    db: AsyncSession = Depends(get_db)
):
    """Authenticate with email and password."""
    result = await db.execute(
        select(User)
        .options(selectinload(User.role))
        .where(func.lower(User.email) == credentials.email.lower())
    )
    user = result.scalar_one_or_none()

    if user is None or not verify_password(credentials.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials"
        )

    if not user.status:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is disabled"
        )

    user.last_login_at = utcnow()
    await db.flush()

    return TokenResponse(token=create_access_token(subject=user.id), user=user_to_response(user))


@router.get("/me", response_model=UserResponse)
async def me(current_user: User = Depends(get_current_user)):
    return user_to_response(current_user)


@router.get("/users", response_model=list[UserResponse])
async def list_users(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("settings.user.users"))
):
    result = await db.execute(
        select(User).options(selectinload(User.role)).order_by(User.created.desc())
    )
    return [user_to_response(u) for u in result.scalars().all()]


@router.patch("/users/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    user_data: UserUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("settings.user.users", "edit"))
):
    user = await db.get(User, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )

    update_data = user_data.model_dump(exclude_unset=True)

    if update_data.get("role_id") and await db.get(Role, update_data["role_id"]) is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Role not found"
        )

    if update_data.get("reports_to_id"):
        if update_data["reports_to_id"] == user.id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="A user cannot report to themselves"
            )
        if await db.get(User, update_data["reports_to_id"]) is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Manager not found"
            )

    if update_data.get("role_id") is None:
        update_data.pop("role_id", None)
    if update_data.get("status") is None:
        update_data.pop("status", None)

    for field, value in update_data.items():
        setattr(user, field, value)

    await db.flush()
    return user_to_response(await _load_user(db, user.id))


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("settings.user.users", "delete"))
):
    if user_id == current_user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot delete yourself"
        )

    user = await db.get(User, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )

    if user.email.lower() == settings.ADMIN_EMAIL.lower():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot delete the main administrator"
        )

    await db.delete(user)
    await db.flush()
    logger.info("User %s deleted by %s", user_id, current_user.id)
