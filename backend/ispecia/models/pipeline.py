"""
Pipeline models.

Leads and deals each move through their own pipelines. A pipeline is an ordered
list of stages; exactly one pipeline of each kind is flagged as the default.
"""
from typing import Optional
from sqlalchemy import String, Boolean, Integer, ForeignKey, func, or_
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ispecia.models.base import BaseModel

WON_STAGE_NAME = "won"
LOST_STAGE_NAME = "lost"
CLOSED_WON_STAGE_NAME = "closed won"
CLOSED_LOST_STAGE_NAME = "closed lost"


class LeadSource(BaseModel):
    """Where a lead came from (Website, Referral, ...)."""
    __tablename__ = "lead_sources"

    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)


class LeadType(BaseModel):
    """Kind of lead (New Business, Existing Customer, ...)."""
    __tablename__ = "lead_types"

    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)


class LeadPipeline(BaseModel):
    __tablename__ = "lead_pipelines"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # Days without activity before a lead is considered rotten
    rotten_days: Mapped[int] = mapped_column(Integer, default=30, nullable=False)

    stages: Mapped[list["LeadStage"]] = relationship(
        "LeadStage",
        back_populates="pipeline",
        cascade="all, delete-orphan",
        order_by="LeadStage.sort_order"
    )

    def __repr__(self) -> str:
        return f"<LeadPipeline {self.name}>"


class LeadStage(BaseModel):
    __tablename__ = "lead_stages"

    pipeline_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("lead_pipelines.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    probability: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    pipeline: Mapped["LeadPipeline"] = relationship(
        "LeadPipeline",
        back_populates="stages"
    )

    def _matches(self, name: str) -> bool:
        return (self.code or "").strip().lower() == name or self.name.strip().lower() == name

    @property
    def is_won(self) -> bool:
        return self._matches(WON_STAGE_NAME)

    @property
    def is_lost(self) -> bool:
        return self._matches(LOST_STAGE_NAME)

    def __repr__(self) -> str:
        return f"<LeadStage {self.name}>"


def lead_stage_named(name: str):
    """SQL form of LeadStage name/code matching, case and whitespace insensitive."""
    return or_(
        func.lower(func.trim(LeadStage.name)) == name,
        func.lower(func.trim(LeadStage.code)) == name,
    )


class DealPipeline(BaseModel):
    __tablename__ = "deal_pipelines"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    stages: Mapped[list["DealStage"]] = relationship(
        "DealStage",
        back_populates="pipeline",
        cascade="all, delete-orphan",
        order_by="DealStage.sort_order"
    )

    def __repr__(self) -> str:
        return f"<DealPipeline {self.name}>"


class DealStage(BaseModel):
    __tablename__ = "deal_stages"

    pipeline_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("deal_pipelines.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    probability: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    pipeline: Mapped["DealPipeline"] = relationship(
        "DealPipeline",
        back_populates="stages"
    )

    @property
    def is_closed_won(self) -> bool:
        return self.name.strip().lower() == CLOSED_WON_STAGE_NAME

    @property
    def is_closed_lost(self) -> bool:
        return self.name.strip().lower() == CLOSED_LOST_STAGE_NAME

    def __repr__(self) -> str:
        return f"<DealStage {self.name}>"


def deal_stage_named(name: str):
    return func.lower(func.trim(DealStage.name)) == name
