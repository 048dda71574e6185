"""
Lead model.

A lead is an unqualified sales opportunity. Reaching the "Won" stage converts
it into a deal (see ispecia.services.lead_conversion).
"""
from typing import Optional, TYPE_CHECKING
from decimal import Decimal
from sqlalchemy import String, Text, Integer, Numeric, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ispecia.models.base import BaseModel

if TYPE_CHECKING:
    from ispecia.models.person import Person
    from ispecia.models.organization import Organization
    from ispecia.models.pipeline import LeadPipeline, LeadStage, LeadSource, LeadType
    from ispecia.models.deal import Deal
    from ispecia.models.user import User


class Lead(BaseModel):
    """Lead model."""
    __tablename__ = "leads"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Prospect details captured before a Person/Organization exists
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    company_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    job_title: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    website: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    linkedin_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    primary_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    secondary_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    mobile: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    lead_rating: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    no_employees: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    lead_value: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 2), nullable=True)
    status: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Links
    person_id: Mapped[Optional[str]] = mapped_column(
        String(15), ForeignKey("persons.id", ondelete="SET NULL"), nullable=True, index=True
    )
    organization_id: Mapped[Optional[str]] = mapped_column(
        String(15), ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True, index=True
    )
    lead_source_id: Mapped[Optional[str]] = mapped_column(
        String(15), ForeignKey("lead_sources.id", ondelete="SET NULL"), nullable=True
    )
    lead_type_id: Mapped[Optional[str]] = mapped_column(
        String(15), ForeignKey("lead_types.id", ondelete="SET NULL"), nullable=True
    )
    user_id: Mapped[Optional[str]] = mapped_column(
        String(15), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    assigned_to_id: Mapped[Optional[str]] = mapped_column(
        String(15), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    pipeline_id: Mapped[Optional[str]] = mapped_column(
        String(15), ForeignKey("lead_pipelines.id", ondelete="SET NULL"), nullable=True
    )
    stage_id: Mapped[Optional[str]] = mapped_column(
        String(15), ForeignKey("lead_stages.id", ondelete="SET NULL"), nullable=True, index=True
    )

    # Relationships
    person: Mapped[Optional["Person"]] = relationship("Person", back_populates="leads")
    organization: Mapped[Optional["Organization"]] = relationship("Organization")
    source: Mapped[Optional["LeadSource"]] = relationship("LeadSource")
    type: Mapped[Optional["LeadType"]] = relationship("LeadType")
    pipeline: Mapped[Optional["LeadPipeline"]] = relationship("LeadPipeline")
    stage: Mapped[Optional["LeadStage"]] = relationship("LeadStage")
    user: Mapped[Optional["User"]] = relationship("User", foreign_keys=[user_id])
    assigned_to: Mapped[Optional["User"]] = relationship("User", foreign_keys=[assigned_to_id])
    deals: Mapped[list["Deal"]] = relationship("Deal", back_populates="lead")

    def __repr__(self) -> str:
        return f"<Lead {self.title}>"
