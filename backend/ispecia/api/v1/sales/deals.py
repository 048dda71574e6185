"""
Deal endpoints.

A deal's status follows its stage: "Closed Won" -> won, "Closed Lost" -> lost,
anything else -> open. Setting the status explicitly moves the deal into the
matching closed stage when its pipeline has one.
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from ispecia.api.pagination import paginate
from ispecia.db.base import get_db
from ispecia.core.permissions import require_permission
from ispecia.models.base import utcnow
from ispecia.models.deal import Deal, DealStatus
from ispecia.models.lead import Lead
from ispecia.models.organization import Organization
from ispecia.models.person import Person
from ispecia.models.pipeline import DealPipeline, DealStage, CLOSED_WON_STAGE_NAME, CLOSED_LOST_STAGE_NAME
from ispecia.models.user import User
from ispecia.schemas.common import PaginatedResponse
from ispecia.schemas.email import EmailMessageResponse
from ispecia.schemas.lead import DealCreate, DealUpdate, DealResponse
from ispecia.services.email_linking import get_deal_emails
from ispecia.services.lead_conversion import (
    find_closed_deal_stage,
    get_default_deal_pipeline,
    get_first_deal_stage,
)

logger = logging.getLogger(__name__)

router = APIRouter()

REFERENCES = {
    "person_id": (Person, "Person not found"),
    "organization_id": (Organization, "Organization not found"),
    "lead_id": (Lead, "Lead not found"),
    "pipeline_id": (DealPipeline, "Pipeline not found"),
}


async def _check_references(db: AsyncSession, data: dict) -> None:
    for field, (model, message) in REFERENCES.items():
        if data.get(field) and await db.get(model, data[field]) is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=message
            )


async def _get_stage(db: AsyncSession, stage_id: str) -> DealStage:
    stage = await db.get(DealStage, stage_id)
    if stage is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Stage not found"
        )
    return stage


def apply_stage_status(deal: Deal, stage: DealStage) -> None:
    """Derive status and closed_at from the stage the deal sits in."""
    deal.stage_id = stage.id
    deal.pipeline_id = stage.pipeline_id
    if stage.is_closed_won:
        deal.status = DealStatus.WON
        deal.closed_at = deal.closed_at or utcnow()
    elif stage.is_closed_lost:
        deal.status = DealStatus.LOST
        deal.closed_at = deal.closed_at or utcnow()
    else:
        deal.status = DealStatus.OPEN
        deal.closed_at = None


async def apply_status(db: AsyncSession, deal: Deal, new_status: DealStatus) -> None:
    """
    Set status explicitly, moving into the matching closed stage if one exists.

    Reopening a deal that sits in a closed stage moves it back to the first
    stage of its pipeline.
    """
    deal.status = new_status
    if new_status == DealStatus.OPEN:
        deal.closed_at = None
        stage = await db.get(DealStage, deal.stage_id) if deal.stage_id else None
        if stage is not None and (stage.is_closed_won or stage.is_closed_lost):
            first_stage = await get_first_deal_stage(db, stage.pipeline_id)
            if first_stage is not None and first_stage.id != stage.id:
                deal.stage_id = first_stage.id
        return

    stage_name = CLOSED_WON_STAGE_NAME if new_status == DealStatus.WON else CLOSED_LOST_STAGE_NAME
    closed_stage = await find_closed_deal_stage(db, deal.pipeline_id, stage_name)
    if closed_stage is not None:
        deal.stage_id = closed_stage.id
    deal.closed_at = deal.closed_at or utcnow()


async def _load_deal(db: AsyncSession, deal_id: str) -> Deal:
    result = await db.execute(
        select(Deal)
        .options(
            selectinload(Deal.stage),
            selectinload(Deal.person),
            selectinload(Deal.organization),
        )
        .where(Deal.id == deal_id)
        .execution_options(populate_existing=True)
    )
    deal = result.scalar_one_or_none()
    if deal is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Deal not found"
        )
    return deal


@router.get("", response_model=PaginatedResponse[DealResponse])
async def list_deals(
    page: int = Query(1, ge=1),
    perPage: int = Query(30, ge=1, le=100),
    deal_status: Optional[DealStatus] = Query(None, alias="status"),
    stage_id: Optional[str] = Query(None),
    pipeline_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("deals"))
):
    query = select(Deal).options(
        selectinload(Deal.stage),
        selectinload(Deal.person),
        selectinload(Deal.organization),
    )
    if deal_status:
        query = query.where(Deal.status == deal_status)
    if stage_id:
        query = query.where(Deal.stage_id == stage_id)
    if pipeline_id:
        query = query.where(Deal.pipeline_id == pipeline_id)

    deals, meta = await paginate(db, query.order_by(Deal.created.desc()), page, perPage)
    return PaginatedResponse[DealResponse](
        **meta,
        items=[DealResponse.model_validate(d) for d in deals]
    )


@router.post("", response_model=DealResponse, status_code=status.HTTP_201_CREATED)
async def create_deal(
    deal_data: DealCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("deals", "create"))
):
    data = deal_data.model_dump()
    await _check_references(db, data)

    stage_id = data.pop("stage_id", None)
    deal = Deal(**data, status=DealStatus.OPEN, user_id=current_user.id)

    if stage_id:
        stage = await _get_stage(db, stage_id)
    else:
        pipeline = await db.get(DealPipeline, data["pipeline_id"]) if data.get("pipeline_id") \
            else await get_default_deal_pipeline(db)
        stage = await get_first_deal_stage(db, pipeline.id) if pipeline else None
        deal.pipeline_id = pipeline.id if pipeline else None

    if stage is not None:
        apply_stage_status(deal, stage)

    db.add(deal)
    await db.flush()
    logger.info("Deal %s created by %s", deal.id, current_user.id)
    return DealResponse.model_validate(await _load_deal(db, deal.id))


@router.get("/{deal_id}", response_model=DealResponse)
async def get_deal(
    deal_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("deals"))
):
    return DealResponse.model_validate(await _load_deal(db, deal_id))


@router.patch("/{deal_id}", response_model=DealResponse)
async def update_deal(
    deal_id: str,
    deal_data: DealUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("deals", "edit"))
):
    deal = await db.get(Deal, deal_id)
    if deal is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Deal not found"
        )

    update_data = deal_data.model_dump(exclude_unset=True)
    await _check_references(db, update_data)
    stage_id = update_data.pop("stage_id", None)
    new_status = update_data.pop("status", None)
    if update_data.get("title") is None:
        update_data.pop("title", None)

    for field, value in update_data.items():
        setattr(deal, field, value)

    if stage_id and stage_id != deal.stage_id:
        apply_stage_status(deal, await _get_stage(db, stage_id))
    elif new_status is not None and new_status != deal.status:
        await apply_status(db, deal, new_status)

    await db.flush()
    return DealResponse.model_validate(await _load_deal(db, deal.id))


@router.delete("/{deal_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_deal(
    deal_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("deals", "delete"))
):
    deal = await _load_deal(db, deal_id)
    await db.delete(deal)
    await db.flush()


@router.get("/{deal_id}/emails", response_model=list[EmailMessageResponse])
async def list_deal_emails(
    deal_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("deals"))
):
    await _load_deal(db, deal_id)
    return await get_deal_emails(db, deal_id)
