"""
Activity model for the CRM timeline (calls, meetings, tasks, notes, emails).
"""
from typing import Optional, TYPE_CHECKING
from enum import Enum
from datetime import datetime
from sqlalchemy import String, Text, Boolean, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ispecia.models.base import BaseModel

if TYPE_CHECKING:
    from ispecia.models.person import Person
    from ispecia.models.lead import Lead
    from ispecia.models.deal import Deal
    from ispecia.models.user import User


class ActivityType(str, Enum):
    CALL = "call"
    MEETING = "meeting"
    TASK = "task"
    NOTE = "note"
    EMAIL = "email"


class Activity(BaseModel):
    __tablename__ = "activities"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    type: Mapped[ActivityType] = mapped_column(
        SQLEnum(
            ActivityType,
            name="activitytype",
            create_constraint=True,
            values_callable=lambda x: [e.value for e in x]
        ),
        nullable=False,
        index=True
    )
    start_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    end_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    is_done: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    person_id: Mapped[Optional[str]] = mapped_column(
        String(15), ForeignKey("persons.id", ondelete="SET NULL"), nullable=True, index=True
    )
    lead_id: Mapped[Optional[str]] = mapped_column(
        String(15), ForeignKey("leads.id", ondelete="CASCADE"), nullable=True, index=True
    )
    deal_id: Mapped[Optional[str]] = mapped_column(
        String(15), ForeignKey("deals.id", ondelete="CASCADE"), nullable=True, index=True
    )
    user_id: Mapped[Optional[str]] = mapped_column(
        String(15), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    person: Mapped[Optional["Person"]] = relationship("Person")
    lead: Mapped[Optional["Lead"]] = relationship("Lead")
    deal: Mapped[Optional["Deal"]] = relationship("Deal")
    user: Mapped[Optional["User"]] = relationship("User")

    def __repr__(self) -> str:
        return f"<Activity {self.type.value}: {self.title}>"
