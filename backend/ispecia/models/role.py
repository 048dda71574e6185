"""
Role model.

A role carries a flat JSON permissions blob keyed by dotted resource paths,
e.g. {"leads": ["create", "view"], "settings.user.users": ["edit"]}.
"""
from typing import Optional, TYPE_CHECKING
from enum import Enum
from sqlalchemy import String, Text, JSON, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ispecia.models.base import BaseModel

if TYPE_CHECKING:
    from ispecia.models.user import User


class PermissionType(str, Enum):
    """Whether a role grants everything or only its listed permissions."""
    ALL = "all"
    CUSTOM = "custom"


class Role(BaseModel):
    """Role model."""
    __tablename__ = "roles"

    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    permission_type: Mapped[PermissionType] = mapped_column(
        SQLEnum(
            PermissionType,
            name="permissiontype",
            create_constraint=True,
            values_callable=lambda x: [e.value for e in x]
        ),
        default=PermissionType.CUSTOM,
        nullable=False
    )
    permissions: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    users: Mapped[list["User"]] = relationship(
        "User",
        back_populates="role"
    )

    def __repr__(self) -> str:
        return f"<Role {self.name}>"
