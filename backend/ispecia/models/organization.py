"""
Organization model: a customer company tracked in the CRM.
"""
from typing import Optional, TYPE_CHECKING
from sqlalchemy import String, ForeignKey, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ispecia.models.base import BaseModel

if TYPE_CHECKING:
    from ispecia.models.person import Person
    from ispecia.models.user import User


class Organization(BaseModel):
    """Organization model."""
    __tablename__ = "organizations"

    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    website: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    # List of {line1, city, state, country, postal_code}
    address: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    # Owner
    user_id: Mapped[Optional[str]] = mapped_column(
        String(15),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )

    persons: Mapped[list["Person"]] = relationship(
        "Person",
        back_populates="organization"
    )
    user: Mapped[Optional["User"]] = relationship("User", foreign_keys=[user_id])

    def __repr__(self) -> str:
        return f"<Organization {self.name}>"
