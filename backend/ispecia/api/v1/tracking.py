"""
Open and click tracking endpoints.

These are hit by mail clients, so they take no authentication. The pixel is
served for unknown message ids as well.
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ispecia.db.base import get_db
from ispecia.models.email import EmailMessage, EmailTracking, TrackingEventType
from ispecia.services.email_tracking import TRACKING_PIXEL, decode_tracking_id

logger = logging.getLogger(__name__)

router = APIRouter()

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, private",
    "Pragma": "no-cache",
    "Expires": "0",
}


def _client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


async def _record(
    db: AsyncSession,
    request: Request,
    message_id: str,
    event_type: TrackingEventType,
    link_url: Optional[str] = None,
) -> bool:
    if await db.get(EmailMessage, message_id) is None:
        logger.debug("Tracking %s for unknown message %s", event_type.value, message_id)
        return False
    db.add(EmailTracking(
        message_id=message_id,
        event_type=event_type,
        ip_address=_client_ip(request),
        user_agent=(request.headers.get("user-agent") or "")[:500] or None,
        link_url=link_url,
    ))
    await db.flush()
    return True


@router.get("/pixel/{message_id}")
async def track_open(
    message_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    await _record(db, request, message_id, TrackingEventType.OPEN)
    return Response(content=TRACKING_PIXEL, media_type="image/png", headers=NO_CACHE_HEADERS)


@router.get("/click/{tracking_id}")
async def track_click(
    tracking_id: str,
    request: Request,
    url: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db)
):
    if not url:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing url parameter"
        )
    message_id = decode_tracking_id(tracking_id)
    if message_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid tracking id"
        )

    await _record(db, request, message_id, TrackingEventType.CLICK, link_url=url)
    return RedirectResponse(url=url, status_code=status.HTTP_302_FOUND)
