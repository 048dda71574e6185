"""
SIP trunk settings. Each trunk belongs to a provider and carries the
inbound routes that use it; the SIP password is encrypted at rest.

Permission: voip.trunks.
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from ispecia.db.base import get_db
from ispecia.core.permissions import require_permission
from ispecia.models.user import User
from ispecia.models.voip import VoipProvider, VoipTrunk
from ispecia.schemas.common import MessageResponse, NamedRef
from ispecia.schemas.voip import VoipTrunkCreate, VoipTrunkUpdate, VoipTrunkResponse, InboundRouteSummary
from ispecia.services.encryption import encryption_service

logger = logging.getLogger(__name__)

router = APIRouter()

# Columns that cannot be cleared through an update
REQUIRED_FIELDS = (
    "name", "provider_id", "sip_domain", "sip_port", "transport_protocol",
    "auth_method", "registration_required", "active",
)


def trunk_to_response(trunk: VoipTrunk) -> VoipTrunkResponse:
    return VoipTrunkResponse(
        id=trunk.id,
        name=trunk.name,
        provider_id=trunk.provider_id,
        provider=NamedRef.model_validate(trunk.provider) if trunk.provider else None,
        sip_domain=trunk.sip_domain,
        sip_port=trunk.sip_port,
        transport_protocol=trunk.transport_protocol,
        auth_method=trunk.auth_method,
        sip_username=trunk.sip_username,
        has_sip_password=bool(trunk.sip_password_encrypted),
        registration_required=trunk.registration_required,
        options_context=trunk.options_context,
        active=trunk.active,
        inbound_routes=[InboundRouteSummary.model_validate(r) for r in trunk.inbound_routes],
        created=trunk.created,
        updated=trunk.updated,
    )


def _trunk_query():
    return select(VoipTrunk).options(selectinload(VoipTrunk.provider), selectinload(VoipTrunk.inbound_routes))


async def _load_trunk(db: AsyncSession, trunk_id: str) -> VoipTrunk:
    result = await db.execute(
        _trunk_query().where(VoipTrunk.id == trunk_id).execution_options(populate_existing=True)
    )
    trunk = result.scalar_one_or_none()
    if trunk is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="VoIP trunk not found"
        )
    return trunk


async def _check_provider(db: AsyncSession, provider_id: str) -> None:
    if await db.get(VoipProvider, provider_id) is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="VoIP provider not found"
        )


def _apply(trunk: VoipTrunk, values: dict) -> None:
    password = values.pop("sip_password", None)
    if password:
        trunk.sip_password_encrypted = encryption_service.encrypt(password)
    for field, value in values.items():
        setattr(trunk, field, value)


@router.get("", response_model=list[VoipTrunkResponse])
async def list_trunks(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("voip.trunks"))
):
    result = await db.execute(_trunk_query().order_by(VoipTrunk.created.desc()))
    return [trunk_to_response(t) for t in result.scalars().all()]


@router.post("", response_model=VoipTrunkResponse, status_code=status.HTTP_201_CREATED)
async def create_trunk(
    data: VoipTrunkCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("voip.trunks", "create"))
):
    await _check_provider(db, data.provider_id)
    trunk = VoipTrunk()
    _apply(trunk, data.model_dump())
    db.add(trunk)
    await db.flush()
    logger.info("VoIP trunk %s created for provider %s", trunk.name, trunk.provider_id)
    return trunk_to_response(await _load_trunk(db, trunk.id))


@router.get("/{trunk_id}", response_model=VoipTrunkResponse)
async def get_trunk(
    trunk_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("voip.trunks"))
):
    return trunk_to_response(await _load_trunk(db, trunk_id))


@router.patch("/{trunk_id}", response_model=VoipTrunkResponse)
async def update_trunk(
    trunk_id: str,
    data: VoipTrunkUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("voip.trunks", "edit"))
):
    trunk = await _load_trunk(db, trunk_id)
    update_data = data.model_dump(exclude_unset=True)
    for field in REQUIRED_FIELDS:
        if field in update_data and update_data[field] is None:
            update_data.pop(field)
    if update_data.get("provider_id", trunk.provider_id) != trunk.provider_id:
        await _check_provider(db, update_data["provider_id"])

    _apply(trunk, update_data)
    await db.flush()
    return trunk_to_response(await _load_trunk(db, trunk.id))


@router.delete("/{trunk_id}", response_model=MessageResponse)
async def delete_trunk(
    trunk_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("voip.trunks", "delete"))
):
    trunk = await _load_trunk(db, trunk_id)
    logger.info("Deleting VoIP trunk %s with %d inbound routes", trunk.id, len(trunk.inbound_routes))
    await db.delete(trunk)
    await db.flush()
    return MessageResponse(message="VoIP trunk deleted")
