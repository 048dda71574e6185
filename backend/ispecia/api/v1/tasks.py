"""
Task endpoints.

Visibility and assignment follow the reporting hierarchy
(ispecia.services.task_assignment). Assignees are notified when someone else
gives them a task.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_
from sqlalchemy.orm import selectinload

from ispecia.api.pagination import paginate
from ispecia.db.base import get_db
from ispecia.core.permissions import require_permission, can_perform_action
from ispecia.models.base import utcnow
from ispecia.models.deal import Deal
from ispecia.models.lead import Lead
from ispecia.models.task import Task, TaskComment, TaskTimeLog, TaskType, TaskPriority, TaskStatus, PRIORITY_RANK
from ispecia.models.user import User
from ispecia.schemas.common import PaginatedResponse
from ispecia.schemas.task import (
    TaskCreate,
    TaskUpdate,
    TaskResponse,
    TaskAnalytics,
    TaskCommentCreate,
    TaskCommentResponse,
    TaskTimeLogCreate,
    TaskTimeLogResponse,
)
from ispecia.services.notification import notify
from ispecia.services.task_assignment import load_assignee, validate_assignment, visible_task_filter

logger = logging.getLogger(__name__)

router = APIRouter()


def _task_query():
    return select(Task).options(selectinload(Task.assigned_to), selectinload(Task.assigned_by))


async def _load_task(db: AsyncSession, task_id: str) -> Task:
    result = await db.execute(_task_query().where(Task.id == task_id).execution_options(populate_existing=True))
    return result.scalar_one()


async def _visible_task(db: AsyncSession, task_id: str, user: User) -> Task:
    query = _task_query().where(Task.id == task_id).execution_options(populate_existing=True)
    clause = await visible_task_filter(db, user)
    if clause is not None:
        query = query.where(clause)
    task = (await db.execute(query)).scalar_one_or_none()
    if task is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Task not found"
        )
    return task


async def _inherited_assignee(db: AsyncSession, lead_id: Optional[str], deal_id: Optional[str]) -> Optional[str]:
    """Default assignee taken from the linked lead, else the linked deal."""
    if lead_id:
        lead = await db.get(Lead, lead_id)
        if lead is not None and (lead.assigned_to_id or lead.user_id):
            return lead.assigned_to_id or lead.user_id
    if deal_id:
        deal = await db.get(Deal, deal_id)
        if deal is not None and deal.user_id:
            return deal.user_id
    return None


async def _assign(db: AsyncSession, assigner: User, assignee_id: str) -> None:
    assignee = await load_assignee(db, assignee_id)
    await validate_assignment(db, assigner, assignee)


@router.get("", response_model=PaginatedResponse[TaskResponse])
async def list_tasks(
    page: int = Query(1, ge=1),
    perPage: int = Query(30, ge=1, le=100),
    task_status: Optional[TaskStatus] = Query(None, alias="status"),
    priority: Optional[TaskPriority] = Query(None),
    task_type: Optional[TaskType] = Query(None),
    date_from: Optional[datetime] = Query(None, description="Due on or after"),
    date_to: Optional[datetime] = Query(None, description="Due on or before"),
    search: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("tasks"))
):
    query = _task_query()

    clause = await visible_task_filter(db, current_user)
    if clause is not None:
        query = query.where(clause)
    if task_status:
        query = query.where(Task.status == task_status)
    if priority:
        query = query.where(Task.priority == priority)
    if task_type:
        query = query.where(Task.task_type == task_type)
    if date_from:
        query = query.where(Task.due_date >= date_from)
    if date_to:
        query = query.where(Task.due_date <= date_to)
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(Task.title.ilike(pattern), Task.description.ilike(pattern)))

    query = query.order_by(Task.status, Task.due_date, Task.priority_rank.desc())
    tasks, meta = await paginate(db, query, page, perPage)
    return PaginatedResponse[TaskResponse](
        **meta,
        items=[TaskResponse.model_validate(t) for t in tasks]
    )


@router.get("/my", response_model=list[TaskResponse])
async def my_tasks(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("tasks"))
):
    """Open tasks assigned to the caller, soonest first."""
    result = await db.execute(
        _task_query()
        .where(Task.assigned_to_id == current_user.id, Task.status != TaskStatus.COMPLETED)
        .order_by(Task.due_date, Task.priority_rank.desc())
    )
    return [TaskResponse.model_validate(t) for t in result.scalars().all()]


def _day_start() -> datetime:
    return utcnow().replace(hour=0, minute=0, second=0, microsecond=0)


@router.get("/today", response_model=list[TaskResponse])
async def today_tasks(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("tasks"))
):
    """Caller's unfinished tasks due today (UTC)."""
    start = _day_start()
    result = await db.execute(
        _task_query()
        .where(
            Task.assigned_to_id == current_user.id,
            Task.status != TaskStatus.COMPLETED,
            Task.due_date >= start,
            Task.due_date < start + timedelta(days=1),
        )
        .order_by(Task.due_date)
    )
    return [TaskResponse.model_validate(t) for t in result.scalars().all()]


@router.get("/overdue", response_model=list[TaskResponse])
async def overdue_tasks(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("tasks"))
):
    """Caller's unfinished tasks due before today, oldest first."""
    result = await db.execute(
        _task_query()
        .where(
            Task.assigned_to_id == current_user.id,
            Task.status != TaskStatus.COMPLETED,
            Task.due_date < _day_start(),
        )
        .order_by(Task.due_date)
    )
    return [TaskResponse.model_validate(t) for t in result.scalars().all()]


@router.get("/analytics", response_model=TaskAnalytics)
async def task_analytics(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("tasks"))
):
    """Counts over every task the caller can see."""
    clause = await visible_task_filter(db, current_user)
    scope = [clause] if clause is not None else []
    start = _day_start()
    not_done = Task.status != TaskStatus.COMPLETED

    async def count(*where) -> int:
        return await db.scalar(select(func.count(Task.id)).where(*scope, *where)) or 0

    total = await count()
    completed = await count(Task.status == TaskStatus.COMPLETED)
    overdue = await count(not_done, Task.due_date < start)
    today = await count(Task.due_date >= start, Task.due_date < start + timedelta(days=1))

    async def grouped(column) -> dict[str, int]:
        result = await db.execute(select(column, func.count(Task.id)).where(*scope).group_by(column))
        return {key.value: value for key, value in result.all()}

    return TaskAnalytics(
        total=total,
        completed=completed,
        overdue=overdue,
        today=today,
        completion_rate=round(completed / total * 100, 2) if total else 0.0,
        by_priority=await grouped(Task.priority),
        by_type=await grouped(Task.task_type),
    )


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    task_data: TaskCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("tasks"))
):
    assignee_id = task_data.assigned_to_id
    if not assignee_id:
        assignee_id = await _inherited_assignee(db, task_data.lead_id, task_data.deal_id) or current_user.id

    if assignee_id != current_user.id:
        await _assign(db, current_user, assignee_id)

    data = task_data.model_dump(exclude={"assigned_to_id", "checklist"})
    task = Task(
        **data,
        checklist=[item.model_dump() for item in task_data.checklist],
        priority_rank=PRIORITY_RANK[task_data.priority],
        assigned_to_id=assignee_id,
        assigned_by_id=current_user.id,
        completed_at=utcnow() if task_data.status == TaskStatus.COMPLETED else None,
    )
    db.add(task)
    await db.flush()

    if assignee_id != current_user.id:
        await notify(db, assignee_id, f"New task assigned: {task.title}", task_id=task.id)

    logger.info("Task %s created by %s for %s", task.id, current_user.id, assignee_id)
    return TaskResponse.model_validate(await _load_task(db, task.id))


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("tasks"))
):
    return TaskResponse.model_validate(await _visible_task(db, task_id, current_user))


@router.patch("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: str,
    task_data: TaskUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("tasks"))
):
    task = await _visible_task(db, task_id, current_user)
    update_data = task_data.model_dump(exclude_unset=True)

    for field in ("title", "task_type", "priority", "status", "tags", "checklist", "assigned_to_id"):
        if field in update_data and update_data[field] is None:
            update_data.pop(field)

    new_assignee = update_data.get("assigned_to_id")
    reassigned = new_assignee is not None and new_assignee != task.assigned_to_id
    if reassigned and new_assignee != current_user.id:
        await _assign(db, current_user, new_assignee)

    if "priority" in update_data:
        update_data["priority_rank"] = PRIORITY_RANK[update_data["priority"]]
    if "status" in update_data and update_data["status"] != task.status:
        completed = update_data["status"] == TaskStatus.COMPLETED
        update_data["completed_at"] = utcnow() if completed else None

    for field, value in update_data.items():
        setattr(task, field, value)
    await db.flush()

    if reassigned and new_assignee != current_user.id:
        await notify(db, new_assignee, f"New task assigned: {task.title}", task_id=task.id)

    return TaskResponse.model_validate(await _load_task(db, task.id))


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    task_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("tasks"))
):
    task = await _visible_task(db, task_id, current_user)
    if task.assigned_by_id != current_user.id and not can_perform_action(current_user.role, "tasks", "delete"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions"
        )
    await db.refresh(task, ["comments", "time_logs"])
    await db.delete(task)
    await db.flush()


@router.get("/{task_id}/comments", response_model=list[TaskCommentResponse])
async def list_comments(
    task_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("tasks"))
):
    task = await _visible_task(db, task_id, current_user)
    result = await db.execute(
        select(TaskComment)
        .options(selectinload(TaskComment.user))
        .where(TaskComment.task_id == task.id)
        .order_by(TaskComment.created)
    )
    return [TaskCommentResponse.model_validate(c) for c in result.scalars().all()]


@router.post("/{task_id}/comments", response_model=TaskCommentResponse, status_code=status.HTTP_201_CREATED)
async def add_comment(
    task_id: str,
    data: TaskCommentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("tasks"))
):
    task = await _visible_task(db, task_id, current_user)
    comment = TaskComment(task_id=task.id, user_id=current_user.id, comment=data.comment)
    db.add(comment)
    await db.flush()

    if task.assigned_to_id != current_user.id:
        await notify(db, task.assigned_to_id, f"New comment on task: {task.title}", task_id=task.id)

    result = await db.execute(
        select(TaskComment).options(selectinload(TaskComment.user)).where(TaskComment.id == comment.id)
        .execution_options(populate_existing=True)
    )
    return TaskCommentResponse.model_validate(result.scalar_one())


@router.get("/{task_id}/time-logs", response_model=list[TaskTimeLogResponse])
async def list_time_logs(
    task_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("tasks"))
):
    task = await _visible_task(db, task_id, current_user)
    result = await db.execute(
        select(TaskTimeLog)
        .options(selectinload(TaskTimeLog.user))
        .where(TaskTimeLog.task_id == task.id)
        .order_by(TaskTimeLog.created)
    )
    return [TaskTimeLogResponse.model_validate(t) for t in result.scalars().all()]


@router.post("/{task_id}/time-log", response_model=TaskTimeLogResponse, status_code=status.HTTP_201_CREATED)
async def log_time(
    task_id: str,
    data: TaskTimeLogCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("tasks"))
):
    """Record minutes spent; the task's actual_duration is the sum of its logs."""
    task = await _visible_task(db, task_id, current_user)
    time_log = TaskTimeLog(task_id=task.id, user_id=current_user.id, duration=data.duration, note=data.note)
    db.add(time_log)
    await db.flush()

    task.actual_duration = await db.scalar(
        select(func.coalesce(func.sum(TaskTimeLog.duration), 0)).where(TaskTimeLog.task_id == task.id)
    )
    await db.flush()

    result = await db.execute(
        select(TaskTimeLog).options(selectinload(TaskTimeLog.user)).where(TaskTimeLog.id == time_log.id)
        .execution_options(populate_existing=True)
    )
    return TaskTimeLogResponse.model_validate(result.scalar_one())
