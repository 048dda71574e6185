"""
Deal model.
"""
from typing import Optional, TYPE_CHECKING
from enum import Enum
from decimal import Decimal
from datetime import date, datetime
from sqlalchemy import String, Text, Numeric, Date, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ispecia.models.base import BaseModel

if TYPE_CHECKING:
    from ispecia.models.person import Person
    from ispecia.models.organization import Organization
    from ispecia.models.lead import Lead
    from ispecia.models.pipeline import DealPipeline, DealStage
    from ispecia.models.user import User


class DealStatus(str, Enum):
    OPEN = "open"
    WON = "won"
    LOST = "lost"


class Deal(BaseModel):
    """A qualified sales opportunity moving through a deal pipeline."""
    __tablename__ = "deals"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    deal_value: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 2), nullable=True)
    status: Mapped[DealStatus] = mapped_column(
        SQLEnum(
            DealStatus,
            name="dealstatus",
            create_constraint=True,
            values_callable=lambda x: [e.value for e in x]
        ),
        default=DealStatus.OPEN,
        nullable=False,
        index=True
    )

    person_id: Mapped[Optional[str]] = mapped_column(
        String(15), ForeignKey("persons.id", ondelete="SET NULL"), nullable=True, index=True
    )
    organization_id: Mapped[Optional[str]] = mapped_column(
        String(15), ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True, index=True
    )
    lead_id: Mapped[Optional[str]] = mapped_column(
        String(15), ForeignKey("leads.id", ondelete="SET NULL"), nullable=True, index=True
    )
    user_id: Mapped[Optional[str]] = mapped_column(
        String(15), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    pipeline_id: Mapped[Optional[str]] = mapped_column(
        String(15), ForeignKey("deal_pipelines.id", ondelete="SET NULL"), nullable=True
    )
    stage_id: Mapped[Optional[str]] = mapped_column(
        String(15), ForeignKey("deal_stages.id", ondelete="SET NULL"), nullable=True, index=True
    )

    expected_close_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    person: Mapped[Optional["Person"]] = relationship("Person", back_populates="deals")
    organization: Mapped[Optional["Organization"]] = relationship("Organization")
    lead: Mapped[Optional["Lead"]] = relationship("Lead", back_populates="deals")
    user: Mapped[Optional["User"]] = relationship("User", foreign_keys=[user_id])
    pipeline: Mapped[Optional["DealPipeline"]] = relationship("DealPipeline")
    stage: Mapped[Optional["DealStage"]] = relationship("DealStage")

    def __repr__(self) -> str:
        return f"<Deal {self.title} ({self.status.value})>"
