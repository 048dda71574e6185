"""
Calling endpoints: browser tokens, outbound calls, call history and the
Twilio callbacks (TwiML and status webhooks).
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status, Query, Form
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from twilio.twiml.voice_response import VoiceResponse

from ispecia.api.pagination import paginate
from ispecia.db.base import get_db
from ispecia.core.deps import get_current_user
from ispecia.core.permissions import require_permission, can_perform_action
from ispecia.models.user import User
from ispecia.models.voip import CallLog, CallDirection
from ispecia.schemas.common import MessageResponse, PaginatedResponse
from ispecia.schemas.voip import CallCreate, CallLogResponse, VoiceTokenResponse
from ispecia.services.voip import twilio_service
from ispecia.services.voip.twilio_service import TOKEN_TTL_SECONDS

logger = logging.getLogger(__name__)

router = APIRouter()


def _twiml(response: VoiceResponse) -> Response:
    return Response(content=str(response), media_type="application/xml")


def _sees_all_calls(user: User) -> bool:
    return can_perform_action(user.role, "voip.calls", "all_calls")


@router.get("/token", response_model=VoiceTokenResponse)
async def get_voice_token(
    provider_id: str = Query(...),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("voip.calls"))
):
    """Access token for the browser softphone; the identity is the user id."""
    token = await twilio_service.generate_token(db, provider_id, current_user.id)
    return VoiceTokenResponse(token=token, identity=current_user.id, expires_in=TOKEN_TTL_SECONDS)


@router.post("/calls", response_model=CallLogResponse, status_code=status.HTTP_201_CREATED)
async def make_call(
    data: CallCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("voip.calls", "initiate"))
):
    return await twilio_service.make_call(
        db,
        data.provider_id,
        data.to,
        from_=data.from_number,
        user_id=current_user.id,
        person_id=data.person_id,
        lead_id=data.lead_id,
    )


@router.post("/calls/{call_sid}/end", response_model=CallLogResponse)
async def end_call(
    call_sid: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("voip.calls"))
):
    call_log = await twilio_service.get_call(db, call_sid)
    if call_log is not None and call_log.user_id != current_user.id and not _sees_all_calls(current_user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not allowed to end this call"
        )
    return await twilio_service.end_call(db, call_sid)


@router.get("/calls", response_model=PaginatedResponse[CallLogResponse])
async def list_calls(
    page: int = Query(1, ge=1),
    perPage: int = Query(30, ge=1, le=100),
    direction: Optional[CallDirection] = Query(None),
    call_status: Optional[str] = Query(None, alias="status"),
    all_calls: bool = Query(False, description="Every user's calls (needs voip.calls all_calls)"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    query = select(CallLog)
    if all_calls and not _sees_all_calls(current_user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions"
        )
    if not all_calls:
        query = query.where(CallLog.user_id == current_user.id)
    if direction:
        query = query.where(CallLog.direction == direction)
    if call_status:
        query = query.where(CallLog.status == call_status)

    calls, meta = await paginate(db, query.order_by(CallLog.started_at.desc()), page, perPage)
    return PaginatedResponse[CallLogResponse](
        **meta,
        items=[CallLogResponse.model_validate(c) for c in calls]
    )


@router.get("/calls/{call_id}", response_model=CallLogResponse)
async def get_call(
    call_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    call_log = await db.get(CallLog, call_id)
    if call_log is None or (call_log.user_id != current_user.id and not _sees_all_calls(current_user)):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Call not found"
        )
    return call_log


@router.post("/twiml/outbound")
async def outbound_twiml(
    to: Optional[str] = Form(None, alias="To"),
    caller: Optional[str] = Form(None, alias="From"),
):
    """Instructions Twilio fetches once the outbound leg connects."""
    response = VoiceResponse()
    if not to:
        response.say("No destination number was provided.")
        response.hangup()
        return _twiml(response)

    dial = response.dial(caller_id=caller) if caller else response.dial()
    dial.number(to)
    return _twiml(response)


@router.post("/webhooks/status", response_model=MessageResponse)
async def status_webhook(
    request: Request,
    call_sid: str = Form(..., alias="CallSid"),
    call_status: str = Form(..., alias="CallStatus"),
    call_duration: Optional[int] = Form(None, alias="CallDuration"),
    recording_url: Optional[str] = Form(None, alias="RecordingUrl"),
    db: AsyncSession = Depends(get_db)
):
    """Twilio call progress callback, signed with the call's provider token."""
    call_log = await twilio_service.get_call(db, call_sid)
    if call_log is not None:
        form = await request.form()
        valid = await twilio_service.validate_request(
            db,
            call_log.provider_id,
            str(request.url),
            dict(form),
            request.headers.get("X-Twilio-Signature"),
        )
        if not valid:
            logger.warning("Rejected unsigned status callback for call %s", call_sid)
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Invalid Twilio signature"
            )

    await twilio_service.update_call_status(
        db,
        call_sid,
        call_status,
        duration=call_duration,
        recording_url=recording_url,
    )
    return MessageResponse(message="ok")
