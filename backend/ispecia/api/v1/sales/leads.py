"""
Lead endpoints.

Moving a lead into the Won stage (on create or update) converts it into a
deal; see ispecia.services.lead_conversion.
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_
from sqlalchemy.orm import selectinload

from ispecia.api.pagination import paginate
from ispecia.db.base import get_db
from ispecia.core.permissions import require_permission
from ispecia.models.lead import Lead
from ispecia.models.organization import Organization
from ispecia.models.person import Person
from ispecia.models.pipeline import LeadPipeline, LeadStage, LeadSource, LeadType
from ispecia.models.user import User
from ispecia.schemas.common import PaginatedResponse
from ispecia.schemas.email import EmailMessageResponse
from ispecia.schemas.lead import LeadCreate, LeadUpdate, LeadResponse, LeadDetail
from ispecia.services.email_linking import get_lead_emails
from ispecia.services.lead_conversion import (
    convert_if_won,
    get_default_lead_pipeline,
    get_first_lead_stage,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# Foreign keys checked before insert/update, with the error for a missing row
REFERENCES = {
    "person_id": (Person, "Person not found"),
    "organization_id": (Organization, "Organization not found"),
    "lead_source_id": (LeadSource, "Lead source not found"),
    "lead_type_id": (LeadType, "Lead type not found"),
    "assigned_to_id": (User, "Assigned user not found"),
    "pipeline_id": (LeadPipeline, "Pipeline not found"),
}


async def _check_references(db: AsyncSession, data: dict) -> None:
    for field, (model, message) in REFERENCES.items():
        if data.get(field) and await db.get(model, data[field]) is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=message
            )


async def _get_stage(db: AsyncSession, stage_id: str) -> LeadStage:
    stage = await db.get(LeadStage, stage_id)
    if stage is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Stage not found"
        )
    return stage


async def _load_lead(db: AsyncSession, lead_id: str) -> Lead:
    result = await db.execute(
        select(Lead)
        .options(
            selectinload(Lead.person),
            selectinload(Lead.organization),
            selectinload(Lead.source),
            selectinload(Lead.type),
            selectinload(Lead.stage),
            selectinload(Lead.deals),
        )
        .where(Lead.id == lead_id)
        .execution_options(populate_existing=True)
    )
    lead = result.scalar_one_or_none()
    if lead is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Lead not found"
        )
    return lead


@router.get("", response_model=PaginatedResponse[LeadResponse])
async def list_leads(
    page: int = Query(1, ge=1),
    perPage: int = Query(30, ge=1, le=100),
    stage_id: Optional[str] = Query(None),
    pipeline_id: Optional[str] = Query(None),
    assigned_to_id: Optional[str] = Query(None),
    search: Optional[str] = Query(None, description="Search title, first name, company or email"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("leads"))
):
    query = select(Lead).options(selectinload(Lead.stage))

    if stage_id:
        query = query.where(Lead.stage_id == stage_id)
    if pipeline_id:
        query = query.where(Lead.pipeline_id == pipeline_id)
    if assigned_to_id:
        query = query.where(Lead.assigned_to_id == assigned_to_id)
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(
            Lead.title.ilike(pattern),
            Lead.first_name.ilike(pattern),
            Lead.company_name.ilike(pattern),
            Lead.primary_email.ilike(pattern),
        ))

    leads, meta = await paginate(db, query.order_by(Lead.created.desc()), page, perPage)
    return PaginatedResponse[LeadResponse](
        **meta,
        items=[LeadResponse.model_validate(l) for l in leads]
    )


@router.post("", response_model=LeadDetail, status_code=status.HTTP_201_CREATED)
async def create_lead(
    lead_data: LeadCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("leads", "create"))
):
    data = lead_data.model_dump()
    await _check_references(db, data)

    if data.get("stage_id"):
        stage = await _get_stage(db, data["stage_id"])
        data["pipeline_id"] = data.get("pipeline_id") or stage.pipeline_id
    else:
        pipeline_id = data.get("pipeline_id")
        if not pipeline_id:
            pipeline = await get_default_lead_pipeline(db)
            pipeline_id = pipeline.id if pipeline else None
        stage = await get_first_lead_stage(db, pipeline_id) if pipeline_id else None
        data["pipeline_id"] = pipeline_id
        data["stage_id"] = stage.id if stage else None

    lead = Lead(**data, user_id=current_user.id)
    db.add(lead)
    await db.flush()

    deal = await convert_if_won(db, lead)
    if deal:
        logger.info("Lead %s created in Won stage; deal %s opened", lead.id, deal.id)

    return LeadDetail.model_validate(await _load_lead(db, lead.id))


@router.get("/{lead_id}", response_model=LeadDetail)
async def get_lead(
    lead_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("leads"))
):
    return LeadDetail.model_validate(await _load_lead(db, lead_id))


@router.patch("/{lead_id}", response_model=LeadDetail)
async def update_lead(
    lead_id: str,
    lead_data: LeadUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("leads", "edit"))
):
    lead = await db.get(Lead, lead_id)
    if lead is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Lead not found"
        )

    update_data = lead_data.model_dump(exclude_unset=True)
    if update_data.get("title") is None:
        update_data.pop("title", None)
    await _check_references(db, update_data)

    previous_stage_id = lead.stage_id
    if update_data.get("stage_id"):
        stage = await _get_stage(db, update_data["stage_id"])
        update_data.setdefault("pipeline_id", stage.pipeline_id)

    for field, value in update_data.items():
        setattr(lead, field, value)
    await db.flush()

    await convert_if_won(db, lead, previous_stage_id=previous_stage_id)

    return LeadDetail.model_validate(await _load_lead(db, lead.id))


@router.delete("/{lead_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_lead(
    lead_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("leads", "delete"))
):
    lead = await _load_lead(db, lead_id)
    await db.delete(lead)
    await db.flush()


@router.get("/{lead_id}/emails", response_model=list[EmailMessageResponse])
async def list_lead_emails(
    lead_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("leads"))
):
    await _load_lead(db, lead_id)
    return await get_lead_emails(db, lead_id)
