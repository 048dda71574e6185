"""
User model.
"""
from typing import Optional, TYPE_CHECKING
from datetime import datetime
from sqlalchemy import String, Boolean, ForeignKey, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ispecia.models.base import BaseModel

if TYPE_CHECKING:
    from ispecia.models.role import Role


class User(BaseModel):
    """CRM user. Users report to one another to form the task hierarchy."""
    __tablename__ = "users"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    # Inactive users cannot authenticate
    status: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    role_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("roles.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    reports_to_id: Mapped[Optional[str]] = mapped_column(
        String(15),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    role: Mapped["Role"] = relationship(
        "Role",
        back_populates="users"
    )
    reports_to: Mapped[Optional["User"]] = relationship(
        "User",
        remote_side="User.id",
        back_populates="subordinates"
    )
    subordinates: Mapped[list["User"]] = relationship(
        "User",
        back_populates="reports_to"
    )

    def __repr__(self) -> str:
        return f"<User {self.email}>"
