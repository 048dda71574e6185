"""
Pydantic schemas for authentication, users and roles.
"""
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field

from ispecia.models.role import PermissionType


class RoleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    # {"leads": ["create", "view"], "settings.user.users": ["edit"]}
    permissions: Optional[dict[str, list[str]]] = None


class RoleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    permissions: Optional[dict[str, list[str]]] = None


class RoleResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    permission_type: PermissionType
    permissions: dict
    created: datetime
    updated: datetime

    class Config:
        from_attributes = True


class UserRegister(BaseModel):
    name: str = Field(..., min_length=2, max_length=200)
    email: EmailStr
    password: str = Field(..., min_length=6)
    role_id: Optional[str] = None


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=200)
    role_id: Optional[str] = None
    status: Optional[bool] = None
    reports_to_id: Optional[str] = None


class UserResponse(BaseModel):
    """User without credentials."""
    id: str
    name: str
    email: str
    status: bool
    role_id: str
    reports_to_id: Optional[str] = None
    last_login_at: Optional[datetime] = None
    role: Optional[RoleResponse] = None
    created: datetime
    updated: datetime

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    token: str
    user: UserResponse
