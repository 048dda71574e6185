"""
Activity endpoints (calls, meetings, notes, emails logged against contacts).
"""
from datetime import datetime, timezone
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from ispecia.api.pagination import paginate
from ispecia.db.base import get_db
from ispecia.core.permissions import require_permission
from ispecia.models.activity import Activity, ActivityType
from ispecia.models.deal import Deal
from ispecia.models.lead import Lead
from ispecia.models.person import Person
from ispecia.models.user import User
from ispecia.schemas.activity import ActivityCreate, ActivityUpdate, ActivityResponse
from ispecia.schemas.common import PaginatedResponse

router = APIRouter()

LINKS = {
    "person_id": (Person, "Person not found"),
    "lead_id": (Lead, "Lead not found"),
    "deal_id": (Deal, "Deal not found"),
}


async def _check_links(db: AsyncSession, data: dict) -> None:
    for field, (model, message) in LINKS.items():
        if data.get(field) and await db.get(model, data[field]) is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


async def _get_activity(db: AsyncSession, activity_id: str) -> Activity:
    activity = await db.get(Activity, activity_id)
    if activity is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Activity not found"
        )
    return activity


@router.get("", response_model=PaginatedResponse[ActivityResponse])
async def list_activities(
    page: int = Query(1, ge=1),
    perPage: int = Query(30, ge=1, le=100),
    type: Optional[ActivityType] = Query(None),
    person_id: Optional[str] = Query(None),
    lead_id: Optional[str] = Query(None),
    deal_id: Optional[str] = Query(None),
    is_done: Optional[bool] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("activities"))
):
    query = select(Activity)
    if type:
        query = query.where(Activity.type == type)
    if person_id:
        query = query.where(Activity.person_id == person_id)
    if lead_id:
        query = query.where(Activity.lead_id == lead_id)
    if deal_id:
        query = query.where(Activity.deal_id == deal_id)
    if is_done is not None:
        query = query.where(Activity.is_done.is_(is_done))

    activities, meta = await paginate(db, query.order_by(Activity.created.desc()), page, perPage)
    return PaginatedResponse[ActivityResponse](
        **meta,
        items=[ActivityResponse.model_validate(a) for a in activities]
    )


@router.post("", response_model=ActivityResponse, status_code=status.HTTP_201_CREATED)
async def create_activity(
    activity_data: ActivityCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("activities", "create"))
):
    data = activity_data.model_dump()
    await _check_links(db, data)

    activity = Activity(**data, user_id=current_user.id)
    db.add(activity)
    await db.flush()
    return activity


@router.get("/{activity_id}", response_model=ActivityResponse)
async def get_activity(
    activity_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("activities"))
):
    return await _get_activity(db, activity_id)


@router.patch("/{activity_id}", response_model=ActivityResponse)
async def update_activity(
    activity_id: str,
    activity_data: ActivityUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("activities", "edit"))
):
    activity = await _get_activity(db, activity_id)
    update_data = activity_data.model_dump(exclude_unset=True)
    await _check_links(db, update_data)

    for field in ("title", "type", "is_done"):
        if field in update_data and update_data[field] is None:
            update_data.pop(field)

    start_at = _as_utc(update_data.get("start_at", activity.start_at))
    end_at = _as_utc(update_data.get("end_at", activity.end_at))
    if start_at and end_at and end_at < start_at:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="end_at must be after start_at"
        )

    for field, value in update_data.items():
        setattr(activity, field, value)

    await db.flush()
    return activity


@router.delete("/{activity_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_activity(
    activity_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("activities", "delete"))
):
    activity = await _get_activity(db, activity_id)
    await db.delete(activity)
    await db.flush()
