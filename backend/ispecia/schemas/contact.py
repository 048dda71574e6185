"""
Pydantic schemas for persons and organizations.
"""
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field

from ispecia.schemas.common import LabeledValue, NamedRef


class EmailEntry(BaseModel):
    value: EmailStr
    label: Optional[str] = None


class Address(BaseModel):
    line1: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None


# ============================================================================
# ORGANIZATION SCHEMAS
# ============================================================================

class OrganizationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    website: Optional[str] = Field(None, max_length=500)
    address: list[Address] = Field(default_factory=list)


class OrganizationUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    website: Optional[str] = Field(None, max_length=500)
    address: Optional[list[Address]] = None


class OrganizationResponse(BaseModel):
    id: str
    name: str
    email: Optional[str] = None
    website: Optional[str] = None
    address: list[dict] = []
    user_id: Optional[str] = None
    created: datetime
    updated: datetime

    class Config:
        from_attributes = True


class PersonSummary(BaseModel):
    id: str
    name: str
    emails: list[dict] = []

    class Config:
        from_attributes = True


class OrganizationDetail(OrganizationResponse):
    persons: list[PersonSummary] = []


# ============================================================================
# PERSON SCHEMAS
# ============================================================================

class PersonCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    emails: list[EmailEntry]
    contact_numbers: list[LabeledValue] = Field(default_factory=list)
    job_title: Optional[str] = Field(None, max_length=200)
    organization_id: Optional[str] = None


class PersonUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    emails: Optional[list[EmailEntry]] = None
    contact_numbers: Optional[list[LabeledValue]] = None
    job_title: Optional[str] = Field(None, max_length=200)
    organization_id: Optional[str] = None


class PersonResponse(BaseModel):
    id: str
    name: str
    emails: list[dict] = []
    contact_numbers: list[dict] = []
    job_title: Optional[str] = None
    organization_id: Optional[str] = None
    user_id: Optional[str] = None
    organization: Optional[NamedRef] = None
    created: datetime
    updated: datetime

    class Config:
        from_attributes = True


class LinkedRecord(BaseModel):
    id: str
    title: str

    class Config:
        from_attributes = True


class PersonDetail(PersonResponse):
    leads: list[LinkedRecord] = []
    deals: list[LinkedRecord] = []
