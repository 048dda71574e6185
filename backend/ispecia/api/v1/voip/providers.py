"""
VoIP provider settings. Secrets are encrypted at rest and never echoed back.

Permission: voip.providers.
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from ispecia.db.base import get_db
from ispecia.core.permissions import require_permission
from ispecia.models.user import User
from ispecia.models.voip import VoipProvider
from ispecia.schemas.common import MessageResponse
from ispecia.schemas.voip import VoipProviderCreate, VoipProviderUpdate, VoipProviderResponse
from ispecia.services.encryption import encryption_service

logger = logging.getLogger(__name__)

router = APIRouter()

# request field -> encrypted column
SECRET_FIELDS = {
    "auth_token": "auth_token_encrypted",
    "api_key_secret": "api_key_secret_encrypted",
}


def provider_to_response(provider: VoipProvider) -> VoipProviderResponse:
    return VoipProviderResponse(
        id=provider.id,
        name=provider.name,
        provider_type=provider.provider_type,
        account_sid=provider.account_sid,
        api_key_sid=provider.api_key_sid,
        twiml_app_sid=provider.twiml_app_sid,
        from_number=provider.from_number,
        active=provider.active,
        has_auth_token=bool(provider.auth_token_encrypted),
        has_api_key_secret=bool(provider.api_key_secret_encrypted),
        created=provider.created,
        updated=provider.updated,
    )


def _apply(provider: VoipProvider, values: dict) -> None:
    for field, column in SECRET_FIELDS.items():
        secret = values.pop(field, None)
        if secret:
            setattr(provider, column, encryption_service.encrypt(secret))
    for field, value in values.items():
        setattr(provider, field, value)


async def _get_provider(db: AsyncSession, provider_id: str) -> VoipProvider:
    provider = await db.get(VoipProvider, provider_id)
    if provider is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="VoIP provider not found"
        )
    return provider


@router.get("", response_model=list[VoipProviderResponse])
async def list_providers(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("voip.providers"))
):
    result = await db.execute(select(VoipProvider).order_by(VoipProvider.created))
    return [provider_to_response(p) for p in result.scalars().all()]


@router.post("", response_model=VoipProviderResponse, status_code=status.HTTP_201_CREATED)
async def create_provider(
    data: VoipProviderCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("voip.providers", "create"))
):
    provider = VoipProvider()
    _apply(provider, data.model_dump())
    db.add(provider)
    await db.flush()
    logger.info("VoIP provider %s (%s) created", provider.name, provider.provider_type.value)
    return provider_to_response(provider)


@router.get("/{provider_id}", response_model=VoipProviderResponse)
async def get_provider(
    provider_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("voip.providers"))
):
    return provider_to_response(await _get_provider(db, provider_id))


@router.patch("/{provider_id}", response_model=VoipProviderResponse)
async def update_provider(
    provider_id: str,
    data: VoipProviderUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("voip.providers", "edit"))
):
    provider = await _get_provider(db, provider_id)
    update_data = data.model_dump(exclude_unset=True)
    for field in ("name", "active"):
        if field in update_data and update_data[field] is None:
            update_data.pop(field)
    _apply(provider, update_data)
    await db.flush()
    return provider_to_response(provider)


@router.delete("/{provider_id}", response_model=MessageResponse)
async def delete_provider(
    provider_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("voip.providers", "delete"))
):
    provider = await _get_provider(db, provider_id)
    await db.delete(provider)
    await db.flush()
    return MessageResponse(message="VoIP provider deleted")
