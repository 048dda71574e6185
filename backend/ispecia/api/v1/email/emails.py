"""
Stored email messages: listing, composing, CRM linking and tracking stats.

Permission: mail. Users only see messages in their own mailbox accounts.
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from ispecia.api.pagination import paginate
from ispecia.api.v1.email.accounts import get_default_account, get_own_account
from ispecia.db.base import get_db
from ispecia.core.permissions import require_permission
from ispecia.models.email import EmailAccount, EmailMessage, EmailFolder, EmailTracking, TrackingEventType
from ispecia.models.user import User
from ispecia.schemas.common import MessageResponse, PaginatedResponse
from ispecia.schemas.email import (
    EmailMessageCreate,
    EmailMessageResponse,
    EmailMessageUpdate,
    FolderCounts,
    LinkResult,
    TrackingStats,
    TrackingEventResponse,
)
from ispecia.services.crm_contacts import get_crm_contact_emails
from ispecia.services.email_linking import auto_link_email, extract_email_addresses
from ispecia.services.email_tracking import add_email_tracking

logger = logging.getLogger(__name__)

router = APIRouter()

COMPOSE_FOLDERS = (EmailFolder.SENT, EmailFolder.DRAFT)


def _own_messages():
    return select(EmailMessage).join(EmailAccount, EmailMessage.account_id == EmailAccount.id)


async def _get_own_message(db: AsyncSession, message_id: str, user: User) -> EmailMessage:
    result = await db.execute(
        _own_messages()
        .where(EmailMessage.id == message_id, EmailAccount.user_id == user.id)
        .execution_options(populate_existing=True)
    )
    message = result.scalar_one_or_none()
    if message is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Email not found"
        )
    return message


@router.get("", response_model=PaginatedResponse[EmailMessageResponse])
async def list_emails(
    page: int = Query(1, ge=1),
    perPage: int = Query(30, ge=1, le=100),
    folder: Optional[EmailFolder] = Query(None),
    account_id: Optional[str] = Query(None),
    crm_only: bool = Query(False, description="Only messages involving a known CRM contact"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("mail"))
):
    query = _own_messages().where(EmailAccount.user_id == current_user.id)
    if folder:
        query = query.where(EmailMessage.folder == folder)
    if account_id:
        query = query.where(EmailMessage.account_id == account_id)
    query = query.order_by(EmailMessage.sent_at.desc())

    if not crm_only:
        messages, meta = await paginate(db, query, page, perPage)
        return PaginatedResponse[EmailMessageResponse](
            **meta,
            items=[EmailMessageResponse.model_validate(m) for m in messages]
        )

    # Contact matching runs over JSON recipient lists, so this filter pages in Python
    known = set(await get_crm_contact_emails(db))
    result = await db.execute(query)
    matching = [
        m for m in result.scalars().all()
        if known.intersection(extract_email_addresses(m))
    ]
    total = len(matching)
    start = (page - 1) * perPage
    return PaginatedResponse[EmailMessageResponse](
        page=page,
        perPage=perPage,
        totalItems=total,
        totalPages=-(-total // perPage) if total else 1,
        items=[EmailMessageResponse.model_validate(m) for m in matching[start:start + perPage]]
    )


@router.post("", response_model=EmailMessageResponse, status_code=status.HTTP_201_CREATED)
async def create_email(
    data: EmailMessageCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("mail", "create"))
):
    """
    Store an outgoing (sent or draft) message from one of the caller's
    mailboxes, the default one when no account_id is given.

    Tracking needs the message id, so the HTML body is rewritten after the
    insert. The message is then linked to matching CRM records, ignoring the
    sending account's own address.
    """
    if data.folder not in COMPOSE_FOLDERS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only sent or draft messages can be created"
        )
    if data.account_id:
        account = await get_own_account(db, data.account_id, current_user)
    else:
        account = await get_default_account(db, current_user)
        if account is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="No default email account"
            )

    message = EmailMessage(
        **data.model_dump(exclude={"account_id"}),
        account_id=account.id,
        from_email=account.email,
        from_name=account.display_name or current_user.name,
        is_read=True,
    )
    db.add(message)
    await db.flush()

    if message.body_html:
        message.body_html = add_email_tracking(message.body_html, message.id)
        await db.flush()

    await auto_link_email(db, message.id, exclude_emails=[account.email])
    logger.info("Stored %s email %s from %s", message.folder.value, message.id, account.email)
    return await _get_own_message(db, message.id, current_user)


@router.get("/folder-counts", response_model=FolderCounts)
async def folder_counts(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("mail"))
):
    """Message totals per folder across the caller's mailboxes."""
    result = await db.execute(
        select(EmailMessage.folder, func.count(EmailMessage.id))
        .join(EmailAccount, EmailMessage.account_id == EmailAccount.id)
        .where(EmailAccount.user_id == current_user.id)
        .group_by(EmailMessage.folder)
    )
    return FolderCounts(**{folder.value: count for folder, count in result.all()})


@router.get("/{email_id}", response_model=EmailMessageResponse)
async def get_email(
    email_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("mail"))
):
    return await _get_own_message(db, email_id, current_user)


@router.post("/{email_id}/link", response_model=LinkResult)
async def link_email(
    email_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("mail"))
):
    """Re-run CRM linking for a message."""
    message = await _get_own_message(db, email_id, current_user)
    account = await db.get(EmailAccount, message.account_id)
    result = await auto_link_email(db, message.id, exclude_emails=[account.email])
    return LinkResult(**result)


@router.get("/{email_id}/tracking", response_model=TrackingStats)
async def get_tracking(
    email_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("mail"))
):
    message = await _get_own_message(db, email_id, current_user)
    result = await db.execute(
        select(EmailTracking)
        .where(EmailTracking.message_id == message.id)
        .order_by(EmailTracking.tracked_at.desc())
    )
    events = list(result.scalars().all())

    opens = [e for e in events if e.event_type == TrackingEventType.OPEN]
    clicks = [e for e in events if e.event_type == TrackingEventType.CLICK]
    clicked_urls: dict[str, int] = {}
    for click in clicks:
        if click.link_url:
            clicked_urls[click.link_url] = clicked_urls.get(click.link_url, 0) + 1

    open_times = sorted(e.tracked_at for e in opens)
    return TrackingStats(
        total_opens=len(opens),
        unique_opens=len({e.ip_address for e in opens}),
        first_opened_at=open_times[0] if open_times else None,
        last_opened_at=open_times[-1] if open_times else None,
        total_clicks=len(clicks),
        unique_clicks=len({e.ip_address for e in clicks}),
        clicked_urls=clicked_urls,
        events=[TrackingEventResponse.model_validate(e) for e in events],
    )


@router.patch("/{email_id}", response_model=EmailMessageResponse)
async def update_email(
    email_id: str,
    data: EmailMessageUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("mail", "edit"))
):
    """Mark read or starred, or move a message between folders."""
    message = await _get_own_message(db, email_id, current_user)
    for field, value in data.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(message, field, value)
    await db.flush()
    return await _get_own_message(db, message.id, current_user)


@router.delete("/{email_id}", response_model=MessageResponse)
async def delete_email(
    email_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("mail", "delete"))
):
    message = await _get_own_message(db, email_id, current_user)
    logger.info("User %s deleted email %s", current_user.id, message.id)
    await db.delete(message)
    await db.flush()
    return MessageResponse(message="Email deleted")
