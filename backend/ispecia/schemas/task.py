"""
Pydantic schemas for tasks and notifications.
"""
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field

from ispecia.models.task import TaskType, TaskPriority, TaskStatus
from ispecia.schemas.common import UserSummary


class ChecklistItem(BaseModel):
    text: str
    completed: bool = False


class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    task_type: TaskType = TaskType.CUSTOM
    priority: TaskPriority = TaskPriority.MEDIUM
    status: TaskStatus = TaskStatus.TO_DO
    due_date: Optional[datetime] = None
    estimated_duration: Optional[int] = Field(None, ge=0)
    assigned_to_id: Optional[str] = None
    person_id: Optional[str] = None
    organization_id: Optional[str] = None
    lead_id: Optional[str] = None
    deal_id: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    checklist: list[ChecklistItem] = Field(default_factory=list)


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    task_type: Optional[TaskType] = None
    priority: Optional[TaskPriority] = None
    status: Optional[TaskStatus] = None
    due_date: Optional[datetime] = None
    estimated_duration: Optional[int] = Field(None, ge=0)
    assigned_to_id: Optional[str] = None
    person_id: Optional[str] = None
    organization_id: Optional[str] = None
    lead_id: Optional[str] = None
    deal_id: Optional[str] = None
    tags: Optional[list[str]] = None
    checklist: Optional[list[ChecklistItem]] = None


class TaskResponse(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    task_type: TaskType
    priority: TaskPriority
    status: TaskStatus
    due_date: Optional[datetime] = None
    estimated_duration: Optional[int] = None
    actual_duration: int = 0
    completed_at: Optional[datetime] = None
    assigned_to_id: str
    assigned_by_id: Optional[str] = None
    assigned_to: Optional[UserSummary] = None
    assigned_by: Optional[UserSummary] = None
    person_id: Optional[str] = None
    organization_id: Optional[str] = None
    lead_id: Optional[str] = None
    deal_id: Optional[str] = None
    tags: list = []
    checklist: list = []
    created: datetime
    updated: datetime

    class Config:
        from_attributes = True


class TaskCommentCreate(BaseModel):
    comment: str = Field(..., min_length=1)


class TaskCommentResponse(BaseModel):
    id: str
    task_id: str
    user_id: Optional[str] = None
    user: Optional[UserSummary] = None
    comment: str
    created: datetime

    class Config:
        from_attributes = True


class TaskTimeLogCreate(BaseModel):
    duration: int = Field(..., gt=0, description="Minutes spent")
    note: Optional[str] = None


class TaskTimeLogResponse(BaseModel):
    id: str
    task_id: str
    user_id: Optional[str] = None
    user: Optional[UserSummary] = None
    duration: int
    note: Optional[str] = None
    created: datetime

    class Config:
        from_attributes = True


class TaskAnalytics(BaseModel):
    total: int
    completed: int
    overdue: int
    today: int
    completion_rate: float
    by_priority: dict[str, int]
    by_type: dict[str, int]


class NotificationResponse(BaseModel):
    id: str
    user_id: str
    task_id: Optional[str] = None
    message: str
    is_read: bool
    created: datetime

    class Config:
        from_attributes = True
