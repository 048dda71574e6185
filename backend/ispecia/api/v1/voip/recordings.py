"""
Call recordings: the call logs Twilio attached a recording to.

Permission: voip.callRecordings. Other users' recordings also need
voip.calls all_calls, the same rule as the call history.
"""
import logging
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from ispecia.api.pagination import paginate
from ispecia.db.base import get_db
from ispecia.core.permissions import require_permission, can_perform_action
from ispecia.models.user import User
from ispecia.models.voip import CallLog, CallDirection
from ispecia.schemas.common import MessageResponse, PaginatedResponse
from ispecia.schemas.voip import CallRecordingResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def _recordings_for(user: User):
    query = (
        select(CallLog)
        .options(selectinload(CallLog.user))
        .where(CallLog.recording_url.is_not(None))
    )
    if not can_perform_action(user.role, "voip.calls", "all_calls"):
        query = query.where(CallLog.user_id == user.id)
    return query


async def _get_recording(db: AsyncSession, recording_id: str, user: User) -> CallLog:
    result = await db.execute(
        _recordings_for(user).where(CallLog.id == recording_id).execution_options(populate_existing=True)
    )
    call_log = result.scalar_one_or_none()
    if call_log is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Call recording not found"
        )
    return call_log


@router.get("", response_model=PaginatedResponse[CallRecordingResponse])
async def list_recordings(
    page: int = Query(1, ge=1),
    perPage: int = Query(30, ge=1, le=100),
    direction: Optional[CallDirection] = Query(None),
    user_id: Optional[str] = Query(None),
    from_date: Optional[datetime] = Query(None, description="Started on or after"),
    to_date: Optional[datetime] = Query(None, description="Started on or before"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("voip.callRecordings"))
):
    query = _recordings_for(current_user)
    if direction:
        query = query.where(CallLog.direction == direction)
    if user_id:
        query = query.where(CallLog.user_id == user_id)
    if from_date:
        query = query.where(CallLog.started_at >= from_date)
    if to_date:
        query = query.where(CallLog.started_at <= to_date)

    recordings, meta = await paginate(db, query.order_by(CallLog.started_at.desc()), page, perPage)
    return PaginatedResponse[CallRecordingResponse](
        **meta,
        items=[CallRecordingResponse.model_validate(r) for r in recordings]
    )


@router.get("/{recording_id}", response_model=CallRecordingResponse)
async def get_recording(
    recording_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("voip.callRecordings"))
):
    return CallRecordingResponse.model_validate(await _get_recording(db, recording_id, current_user))


@router.delete("/{recording_id}", response_model=MessageResponse)
async def delete_recording(
    recording_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("voip.callRecordings", "delete"))
):
    """Detach the recording; the call log itself is kept."""
    call_log = await _get_recording(db, recording_id, current_user)
    call_log.recording_url = None
    await db.flush()
    logger.info("User %s removed the recording of call %s", current_user.id, call_log.call_sid)
    return MessageResponse(message="Call recording deleted")
