"""
Lead to deal conversion.

A lead that reaches the Won stage becomes a deal. Missing contacts are created
from the prospect fields on the lead (company name -> Organization, first/last
name -> Person) before the deal is inserted.
"""
import logging
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from ispecia.models.base import utcnow
from ispecia.models.deal import Deal, DealStatus
from ispecia.models.lead import Lead
from ispecia.models.organization import Organization
from ispecia.models.person import Person
from ispecia.models.pipeline import (
    LeadPipeline,
    LeadStage,
    DealPipeline,
    DealStage,
    WON_STAGE_NAME,
    CLOSED_WON_STAGE_NAME,
    lead_stage_named,
    deal_stage_named,
)

logger = logging.getLogger(__name__)


async def find_won_stage(db: AsyncSession, pipeline_id: Optional[str] = None) -> Optional[LeadStage]:
    """Return the lead stage named or coded "won", preferring the given pipeline."""
    query = select(LeadStage).where(lead_stage_named(WON_STAGE_NAME))
    stages = (await db.execute(query)).scalars().all()
    if not stages:
        return None
    for stage in stages:
        if stage.pipeline_id == pipeline_id:
            return stage
    return stages[0]


async def find_won_stage_ids(db: AsyncSession) -> list[str]:
    """Ids of every Won stage across lead pipelines."""
    result = await db.execute(
        select(LeadStage.id).where(lead_stage_named(WON_STAGE_NAME))
    )
    return list(result.scalars().all())


async def is_won_stage(db: AsyncSession, stage_id: Optional[str]) -> bool:
    if not stage_id:
        return False
    stage = await db.get(LeadStage, stage_id)
    return stage is not None and stage.is_won


async def get_default_lead_pipeline(db: AsyncSession) -> Optional[LeadPipeline]:
    result = await db.execute(
        select(LeadPipeline).order_by(LeadPipeline.is_default.desc(), LeadPipeline.created).limit(1)
    )
    return result.scalar_one_or_none()


async def get_first_lead_stage(db: AsyncSession, pipeline_id: str) -> Optional[LeadStage]:
    result = await db.execute(
        select(LeadStage)
        .where(LeadStage.pipeline_id == pipeline_id)
        .order_by(LeadStage.sort_order)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_default_deal_pipeline(db: AsyncSession) -> Optional[DealPipeline]:
    result = await db.execute(
        select(DealPipeline).order_by(DealPipeline.is_default.desc(), DealPipeline.created).limit(1)
    )
    return result.scalar_one_or_none()


async def get_first_deal_stage(db: AsyncSession, pipeline_id: str) -> Optional[DealStage]:
    result = await db.execute(
        select(DealStage)
        .where(DealStage.pipeline_id == pipeline_id)
        .order_by(DealStage.sort_order)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def find_closed_deal_stage(db: AsyncSession, pipeline_id: Optional[str], name: str) -> Optional[DealStage]:
    """Find a closed stage ("closed won" / "closed lost") by name within a pipeline."""
    if not pipeline_id:
        return None
    result = await db.execute(
        select(DealStage).where(
            DealStage.pipeline_id == pipeline_id,
            deal_stage_named(name),
        )
    )
    return result.scalars().first()


async def lead_has_deals(db: AsyncSession, lead_id: str) -> bool:
    count = await db.scalar(select(func.count()).select_from(Deal).where(Deal.lead_id == lead_id))
    return bool(count)


async def _ensure_contacts(db: AsyncSession, lead: Lead) -> tuple[Optional[str], Optional[str]]:
    """Create the organization and person a lead describes when it has none."""
    organization_id = lead.organization_id
    person_id = lead.person_id

    if not organization_id and lead.company_name:
        organization = Organization(
            name=lead.company_name,
            website=lead.website,
            user_id=lead.user_id,
        )
        db.add(organization)
        await db.flush()
        organization_id = organization.id
        logger.info("Created organization %s from lead %s", organization.id, lead.id)

    if not person_id and lead.first_name:
        emails = [{"value": lead.primary_email, "label": "Work"}] if lead.primary_email else []
        numbers = [{"value": lead.phone, "label": "Work"}] if lead.phone else []
        person = Person(
            name=f"{lead.first_name} {lead.last_name or ''}".strip(),
            emails=emails,
            contact_numbers=numbers,
            job_title=lead.job_title,
            organization_id=organization_id,
            user_id=lead.user_id,
        )
        db.add(person)
        await db.flush()
        person_id = person.id
        logger.info("Created person %s from lead %s", person.id, lead.id)

    return organization_id, person_id


async def convert_lead_to_deal(db: AsyncSession, lead: Lead, closed: bool = False) -> Deal:
    """
    Convert a lead into a deal.

    With ``closed=True`` the deal is created already won, in the "Closed Won"
    stage of the default deal pipeline. Otherwise it opens in the first stage.
    """
    organization_id, person_id = await _ensure_contacts(db, lead)

    pipeline = await get_default_deal_pipeline(db)
    stage = None
    if pipeline:
        if closed:
            stage = await find_closed_deal_stage(db, pipeline.id, CLOSED_WON_STAGE_NAME)
        if stage is None:
            stage = await get_first_deal_stage(db, pipeline.id)

    deal = Deal(
        title=lead.title,
        description=lead.description,
        deal_value=lead.lead_value,
        status=DealStatus.WON if closed else DealStatus.OPEN,
        closed_at=utcnow() if closed else None,
        user_id=lead.user_id,
        person_id=person_id,
        organization_id=organization_id,
        lead_id=lead.id,
        pipeline_id=pipeline.id if pipeline else None,
        stage_id=stage.id if stage else None,
    )
    db.add(deal)

    if person_id != lead.person_id or organization_id != lead.organization_id:
        lead.person_id = person_id
        lead.organization_id = organization_id

    await db.flush()
    logger.info("Converted lead %s to deal %s", lead.id, deal.id)
    return deal


async def convert_if_won(db: AsyncSession, lead: Lead, previous_stage_id: Optional[str] = None) -> Optional[Deal]:
    """
    Run the conversion when a lead has just entered the Won stage.

    Leads that already have a deal are left alone.
    """
    if lead.stage_id is None or lead.stage_id == previous_stage_id:
        return None
    if not await is_won_stage(db, lead.stage_id):
        return None
    if await lead_has_deals(db, lead.id):
        return None
    return await convert_lead_to_deal(db, lead)
