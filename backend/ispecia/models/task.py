"""
Task model.

Tasks are assigned from one user to another; visibility and assignment follow
the reporting hierarchy (see ispecia.services.task_assignment).
"""
from typing import Optional, TYPE_CHECKING
from enum import Enum
from datetime import datetime
from sqlalchemy import String, Text, Integer, DateTime, JSON, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ispecia.models.base import BaseModel

if TYPE_CHECKING:
    from ispecia.models.user import User


class TaskType(str, Enum):
    CALL = "call"
    MEETING = "meeting"
    EMAIL = "email"
    FOLLOW_UP = "follow-up"
    DEADLINE = "deadline"
    CUSTOM = "custom"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TaskStatus(str, Enum):
    TO_DO = "to_do"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Sort weight used when ordering by priority
PRIORITY_RANK = {
    TaskPriority.LOW: 1,
    TaskPriority.MEDIUM: 2,
    TaskPriority.HIGH: 3,
    TaskPriority.URGENT: 4,
}


def _enum_column(enum_cls, name):
    return SQLEnum(
        enum_cls,
        name=name,
        create_constraint=True,
        values_callable=lambda x: [e.value for e in x]
    )


class Task(BaseModel):
    __tablename__ = "tasks"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    task_type: Mapped[TaskType] = mapped_column(_enum_column(TaskType, "tasktype"), nullable=False)
    priority: Mapped[TaskPriority] = mapped_column(
        _enum_column(TaskPriority, "taskpriority"), default=TaskPriority.MEDIUM, nullable=False
    )
    priority_rank: Mapped[int] = mapped_column(Integer, default=2, nullable=False)
    status: Mapped[TaskStatus] = mapped_column(
        _enum_column(TaskStatus, "taskstatus"), default=TaskStatus.TO_DO, nullable=False, index=True
    )
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    estimated_duration: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # minutes
    actual_duration: Mapped[int] = mapped_column(Integer, default=0, nullable=False)  # minutes, sum of time logs
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    assigned_to_id: Mapped[str] = mapped_column(
        String(15), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    assigned_by_id: Mapped[Optional[str]] = mapped_column(
        String(15), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    person_id: Mapped[Optional[str]] = mapped_column(
        String(15), ForeignKey("persons.id", ondelete="SET NULL"), nullable=True
    )
    organization_id: Mapped[Optional[str]] = mapped_column(
        String(15), ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True
    )
    lead_id: Mapped[Optional[str]] = mapped_column(
        String(15), ForeignKey("leads.id", ondelete="SET NULL"), nullable=True
    )
    deal_id: Mapped[Optional[str]] = mapped_column(
        String(15), ForeignKey("deals.id", ondelete="SET NULL"), nullable=True
    )

    tags: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    # [{"text": "...", "completed": false}]
    checklist: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    assigned_to: Mapped["User"] = relationship("User", foreign_keys=[assigned_to_id])
    assigned_by: Mapped[Optional["User"]] = relationship("User", foreign_keys=[assigned_by_id])
    comments: Mapped[list["TaskComment"]] = relationship(
        "TaskComment",
        back_populates="task",
        cascade="all, delete-orphan",
        order_by="TaskComment.created"
    )
    time_logs: Mapped[list["TaskTimeLog"]] = relationship(
        "TaskTimeLog",
        back_populates="task",
        cascade="all, delete-orphan",
        order_by="TaskTimeLog.created"
    )

    def __repr__(self) -> str:
        return f"<Task {self.title} ({self.status.value})>"


class TaskComment(BaseModel):
    __tablename__ = "task_comments"

    task_id: Mapped[str] = mapped_column(
        String(15), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[Optional[str]] = mapped_column(
        String(15), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    comment: Mapped[str] = mapped_column(Text, nullable=False)

    task: Mapped["Task"] = relationship("Task", back_populates="comments")
    user: Mapped[Optional["User"]] = relationship("User")


class TaskTimeLog(BaseModel):
    __tablename__ = "task_time_logs"

    task_id: Mapped[str] = mapped_column(
        String(15), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[Optional[str]] = mapped_column(
        String(15), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    duration: Mapped[int] = mapped_column(Integer, nullable=False)  # minutes
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    task: Mapped["Task"] = relationship("Task", back_populates="time_logs")
    user: Mapped[Optional["User"]] = relationship("User")
