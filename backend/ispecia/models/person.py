"""
Person model: an individual contact.
"""
from typing import Optional, TYPE_CHECKING
from sqlalchemy import String, ForeignKey, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ispecia.models.base import BaseModel

if TYPE_CHECKING:
    from ispecia.models.organization import Organization
    from ispecia.models.lead import Lead
    from ispecia.models.deal import Deal
    from ispecia.models.user import User


class Person(BaseModel):
    """
    Person model.

    Emails and phone numbers are stored as labelled lists:
    [{"value": "jane@acme.com", "label": "Work"}].
    """
    __tablename__ = "persons"

    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    emails: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    contact_numbers: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    job_title: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    organization_id: Mapped[Optional[str]] = mapped_column(
        String(15),
        ForeignKey("organizations.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    user_id: Mapped[Optional[str]] = mapped_column(
        String(15),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )

    # Relationships
    organization: Mapped[Optional["Organization"]] = relationship(
        "Organization",
        back_populates="persons"
    )
    user: Mapped[Optional["User"]] = relationship("User", foreign_keys=[user_id])
    leads: Mapped[list["Lead"]] = relationship(
        "Lead",
        back_populates="person"
    )
    deals: Mapped[list["Deal"]] = relationship(
        "Deal",
        back_populates="person"
    )

    @property
    def email_values(self) -> list[str]:
        """Lowercased addresses from the labelled email list."""
        values = []
        for entry in self.emails or []:
            if isinstance(entry, dict) and entry.get("value"):
                values.append(str(entry["value"]).strip().lower())
        return values

    def __repr__(self) -> str:
        return f"<Person {self.name}>"
