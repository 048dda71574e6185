"""
Pydantic schemas for activities.
"""
from typing import Optional
from datetime import datetime, timezone
from pydantic import BaseModel, Field, model_validator

from ispecia.models.activity import ActivityType


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def _check_range(start_at: Optional[datetime], end_at: Optional[datetime]) -> None:
    if start_at and end_at and _as_utc(end_at) < _as_utc(start_at):
        raise ValueError("end_at must be after start_at")


class ActivityCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    type: ActivityType
    description: Optional[str] = None
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    is_done: bool = False
    person_id: Optional[str] = None
    lead_id: Optional[str] = None
    deal_id: Optional[str] = None

    @model_validator(mode="after")
    def validate_range(self):
        _check_range(self.start_at, self.end_at)
        return self


class ActivityUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    type: Optional[ActivityType] = None
    description: Optional[str] = None
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    is_done: Optional[bool] = None
    person_id: Optional[str] = None
    lead_id: Optional[str] = None
    deal_id: Optional[str] = None

    @model_validator(mode="after")
    def validate_range(self):
        _check_range(self.start_at, self.end_at)
        return self


class ActivityResponse(BaseModel):
    id: str
    title: str
    type: ActivityType
    description: Optional[str] = None
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    is_done: bool
    person_id: Optional[str] = None
    lead_id: Optional[str] = None
    deal_id: Optional[str] = None
    user_id: Optional[str] = None
    created: datetime
    updated: datetime

    class Config:
        from_attributes = True
