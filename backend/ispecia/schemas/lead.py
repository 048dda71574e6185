"""
Pydantic schemas for leads and deals.
"""
from typing import Optional
from datetime import datetime, date
from decimal import Decimal
from pydantic import BaseModel, Field

from ispecia.models.deal import DealStatus
from ispecia.schemas.common import NamedRef


# ============================================================================
# LEAD SCHEMAS
# ============================================================================

class LeadBase(BaseModel):
    description: Optional[str] = None
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    company_name: Optional[str] = Field(None, max_length=200)
    job_title: Optional[str] = Field(None, max_length=200)
    website: Optional[str] = Field(None, max_length=500)
    linkedin_url: Optional[str] = Field(None, max_length=500)
    location: Optional[str] = Field(None, max_length=200)
    primary_email: Optional[str] = Field(None, max_length=255)
    secondary_email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    mobile: Optional[str] = Field(None, max_length=50)
    lead_rating: Optional[str] = Field(None, max_length=50)
    no_employees: Optional[str] = Field(None, max_length=50)
    lead_value: Optional[Decimal] = Field(None, ge=0)
    status: Optional[int] = None
    person_id: Optional[str] = None
    organization_id: Optional[str] = None
    lead_source_id: Optional[str] = None
    lead_type_id: Optional[str] = None
    assigned_to_id: Optional[str] = None
    pipeline_id: Optional[str] = None
    stage_id: Optional[str] = None


class LeadCreate(LeadBase):
    title: str = Field(..., min_length=1, max_length=255)


class LeadUpdate(LeadBase):
    title: Optional[str] = Field(None, min_length=1, max_length=255)


class DealSummary(BaseModel):
    id: str
    title: str
    deal_value: Optional[Decimal] = None
    status: DealStatus

    class Config:
        from_attributes = True


class LeadResponse(LeadBase):
    id: str
    title: str
    user_id: Optional[str] = None
    stage: Optional[NamedRef] = None
    created: datetime
    updated: datetime

    class Config:
        from_attributes = True


class LeadDetail(LeadResponse):
    person: Optional[NamedRef] = None
    organization: Optional[NamedRef] = None
    source: Optional[NamedRef] = None
    type: Optional[NamedRef] = None
    deals: list[DealSummary] = []


# ============================================================================
# DEAL SCHEMAS
# ============================================================================

class DealCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    deal_value: Optional[Decimal] = Field(None, ge=0)
    person_id: Optional[str] = None
    organization_id: Optional[str] = None
    lead_id: Optional[str] = None
    pipeline_id: Optional[str] = None
    stage_id: Optional[str] = None
    expected_close_date: Optional[date] = None


class DealUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    deal_value: Optional[Decimal] = Field(None, ge=0)
    status: Optional[DealStatus] = None
    person_id: Optional[str] = None
    organization_id: Optional[str] = None
    pipeline_id: Optional[str] = None
    stage_id: Optional[str] = None
    expected_close_date: Optional[date] = None


class DealResponse(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    deal_value: Optional[Decimal] = None
    status: DealStatus
    person_id: Optional[str] = None
    organization_id: Optional[str] = None
    lead_id: Optional[str] = None
    user_id: Optional[str] = None
    pipeline_id: Optional[str] = None
    stage_id: Optional[str] = None
    expected_close_date: Optional[date] = None
    closed_at: Optional[datetime] = None
    stage: Optional[NamedRef] = None
    person: Optional[NamedRef] = None
    organization: Optional[NamedRef] = None
    created: datetime
    updated: datetime

    class Config:
        from_attributes = True
