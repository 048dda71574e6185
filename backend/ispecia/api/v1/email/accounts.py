"""
Mailbox account endpoints. Every user manages only their own accounts.
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update

from ispecia.db.base import get_db
from ispecia.core.deps import get_current_user
from ispecia.models.email import EmailAccount
from ispecia.models.user import User
from ispecia.schemas.common import MessageResponse
from ispecia.schemas.email import EmailAccountCreate, EmailAccountUpdate, EmailAccountResponse
from ispecia.services.encryption import encryption_service

logger = logging.getLogger(__name__)

router = APIRouter()


def account_to_response(account: EmailAccount) -> EmailAccountResponse:
    return EmailAccountResponse(
        id=account.id,
        user_id=account.user_id,
        email=account.email,
        display_name=account.display_name,
        provider=account.provider,
        smtp_host=account.smtp_host,
        smtp_port=account.smtp_port,
        imap_host=account.imap_host,
        imap_port=account.imap_port,
        username=account.username,
        has_password=bool(account.encrypted_password),
        is_active=account.is_active,
        is_default=account.is_default,
        last_synced_at=account.last_synced_at,
        created=account.created,
        updated=account.updated,
    )


async def get_own_account(db: AsyncSession, account_id: str, user: User) -> EmailAccount:
    result = await db.execute(
        select(EmailAccount).where(
            EmailAccount.id == account_id,
            EmailAccount.user_id == user.id,
        )
    )
    account = result.scalar_one_or_none()
    if account is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Email account not found"
        )
    return account


async def get_default_account(db: AsyncSession, user: User) -> Optional[EmailAccount]:
    result = await db.execute(
        select(EmailAccount).where(EmailAccount.user_id == user.id, EmailAccount.is_default.is_(True))
    )
    return result.scalars().first()


@router.get("", response_model=list[EmailAccountResponse])
async def list_accounts(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    result = await db.execute(
        select(EmailAccount)
        .where(EmailAccount.user_id == current_user.id)
        .order_by(EmailAccount.created)
    )
    return [account_to_response(a) for a in result.scalars().all()]


@router.post("", response_model=EmailAccountResponse, status_code=status.HTTP_201_CREATED)
async def create_account(
    data: EmailAccountCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    existing = await db.execute(
        select(EmailAccount.id).where(
            EmailAccount.user_id == current_user.id,
            EmailAccount.email == data.email.lower(),
        )
    )
    if existing.first() is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email account already connected"
        )

    values = data.model_dump(exclude={"password"})
    values["email"] = data.email.lower()
    account = EmailAccount(**values, user_id=current_user.id)
    # The first connected mailbox becomes the default
    account.is_default = await get_default_account(db, current_user) is None
    if data.password:
        account.encrypted_password = encryption_service.encrypt(data.password)

    db.add(account)
    await db.flush()
    logger.info("User %s connected mailbox %s", current_user.id, account.email)
    return account_to_response(account)


@router.get("/{account_id}", response_model=EmailAccountResponse)
async def get_account(
    account_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return account_to_response(await get_own_account(db, account_id, current_user))


@router.patch("/{account_id}", response_model=EmailAccountResponse)
async def update_account(
    account_id: str,
    data: EmailAccountUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    account = await get_own_account(db, account_id, current_user)

    update_data = data.model_dump(exclude_unset=True)
    if update_data.get("is_active", False) is None:
        update_data.pop("is_active")
    password = update_data.pop("password", None)
    for field, value in update_data.items():
        setattr(account, field, value)
    if password:
        account.encrypted_password = encryption_service.encrypt(password)

    await db.flush()
    return account_to_response(account)


@router.delete("/{account_id}", response_model=MessageResponse)
async def delete_account(
    account_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    account = await get_own_account(db, account_id, current_user)
    await db.delete(account)
    await db.flush()
    return MessageResponse(message="Email account deleted")


@router.put("/{account_id}/default", response_model=EmailAccountResponse)
async def set_default_account(
    account_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Make this the caller's default mailbox; any other default is cleared."""
    account = await get_own_account(db, account_id, current_user)
    await db.execute(
        update(EmailAccount)
        .where(EmailAccount.user_id == current_user.id, EmailAccount.id != account.id)
        .values(is_default=False)
        .execution_options(synchronize_session="fetch")
    )
    account.is_default = True
    await db.flush()
    logger.info("User %s set default mailbox %s", current_user.id, account.email)
    return account_to_response(account)
