"""
Pydantic schemas for lead/deal pipelines, stages, lead sources and lead types.
"""
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field


class StageCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    code: Optional[str] = Field(None, max_length=50)
    sort_order: Optional[int] = None
    probability: int = Field(default=0, ge=0, le=100)


class StageUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    code: Optional[str] = Field(None, max_length=50)
    sort_order: Optional[int] = None
    probability: Optional[int] = Field(None, ge=0, le=100)


class StageResponse(BaseModel):
    id: str
    pipeline_id: str
    name: str
    code: Optional[str] = None
    sort_order: int
    probability: int

    class Config:
        from_attributes = True


class PipelineCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    is_default: bool = False
    rotten_days: int = Field(default=30, ge=0)
    stages: list[StageCreate] = Field(default_factory=list)


class PipelineUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    is_default: Optional[bool] = None
    rotten_days: Optional[int] = Field(None, ge=0)


class PipelineResponse(BaseModel):
    id: str
    name: str
    is_default: bool
    rotten_days: int
    stages: list[StageResponse] = []
    created: datetime
    updated: datetime

    class Config:
        from_attributes = True


class DealStageResponse(BaseModel):
    id: str
    pipeline_id: str
    name: str
    sort_order: int
    probability: int

    class Config:
        from_attributes = True


class DealPipelineResponse(BaseModel):
    id: str
    name: str
    is_default: bool
    stages: list[DealStageResponse] = []

    class Config:
        from_attributes = True


class LookupResponse(BaseModel):
    """Lead source or lead type."""
    id: str
    name: str

    class Config:
        from_attributes = True
