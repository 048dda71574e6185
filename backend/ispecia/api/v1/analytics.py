"""
Dashboard analytics.

Revenue figures count leads sitting in the Won (or Lost) stage; stages are
found by name/code so any pipeline's Won stage counts.
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_
from dateutil.relativedelta import relativedelta

from ispecia.db.base import get_db
from ispecia.core.permissions import require_permission
from ispecia.models.deal import Deal, DealStatus
from ispecia.models.email import EmailMessage, EmailFolder
from ispecia.models.lead import Lead
from ispecia.models.organization import Organization
from ispecia.models.person import Person
from ispecia.models.pipeline import LeadStage, LeadSource, LeadType, LOST_STAGE_NAME, lead_stage_named
from ispecia.models.quote import Quote
from ispecia.models.user import User
from ispecia.schemas.analytics import DashboardStats, EmailStats, StageCount, RevenueBucket, PeriodCount
from ispecia.services.lead_conversion import find_won_stage_ids

router = APIRouter()

CENTS = Decimal("0.01")
RECENT_DAYS = 30
MONTHS = 12


def _money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENTS)


async def _count(db: AsyncSession, model, *where) -> int:
    query = select(func.count()).select_from(model)
    if where:
        query = query.where(*where)
    return await db.scalar(query) or 0


async def _lost_stage_ids(db: AsyncSession) -> list[str]:
    result = await db.execute(
        select(LeadStage.id).where(lead_stage_named(LOST_STAGE_NAME))
    )
    return list(result.scalars().all())


async def _stage_revenue(db: AsyncSession, stage_ids: list[str]) -> Decimal:
    if not stage_ids:
        return _money(0)
    total = await db.scalar(select(func.sum(Lead.lead_value)).where(Lead.stage_id.in_(stage_ids)))
    return _money(total)


@router.get("/dashboard", response_model=DashboardStats)
async def dashboard(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("dashboard"))
):
    won_revenue = await _stage_revenue(db, await find_won_stage_ids(db))
    lost_revenue = await _stage_revenue(db, await _lost_stage_ids(db))
    total_leads = await _count(db, Lead)

    since = datetime.now(timezone.utc) - timedelta(days=RECENT_DAYS)
    recent_leads = await _count(db, Lead, Lead.created >= since)

    return DashboardStats(
        won_revenue=won_revenue,
        lost_revenue=lost_revenue,
        avg_lead_value=_money(won_revenue / total_leads) if total_leads else _money(0),
        total_leads=total_leads,
        avg_leads_per_day=round(recent_leads / RECENT_DAYS, 2),
        total_quotes=await _count(db, Quote),
        total_persons=await _count(db, Person),
        total_organizations=await _count(db, Organization),
        email_stats=EmailStats(
            total=await _count(db, EmailMessage),
            sent=await _count(db, EmailMessage, EmailMessage.folder == EmailFolder.SENT),
            received=await _count(db, EmailMessage, EmailMessage.folder == EmailFolder.INBOX),
        ),
        open_deals=await _count(db, Deal, Deal.status == DealStatus.OPEN),
        won_deals=await _count(db, Deal, Deal.status == DealStatus.WON),
    )


@router.get("/leads-by-stage", response_model=list[StageCount])
async def leads_by_stage(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("dashboard"))
):
    """Open pipeline by stage; Won leads are excluded."""
    won_ids = await find_won_stage_ids(db)
    query = (
        select(LeadStage.name, func.count(Lead.id))
        .select_from(Lead)
        .outerjoin(LeadStage, Lead.stage_id == LeadStage.id)
        .group_by(LeadStage.name)
    )
    if won_ids:
        query = query.where(or_(Lead.stage_id.is_(None), Lead.stage_id.not_in(won_ids)))

    counts: dict[str, int] = {}
    for name, count in (await db.execute(query)).all():
        label = name or "Unassigned"
        counts[label] = counts.get(label, 0) + count
    return [StageCount(stage=stage, count=count) for stage, count in counts.items()]


async def _won_revenue_by(db: AsyncSession, lookup, column) -> list[RevenueBucket]:
    won_ids = await find_won_stage_ids(db)
    if not won_ids:
        return []
    result = await db.execute(
        select(lookup.name, func.sum(Lead.lead_value))
        .select_from(Lead)
        .outerjoin(lookup, column == lookup.id)
        .where(Lead.stage_id.in_(won_ids))
        .group_by(lookup.name)
    )
    return [RevenueBucket(name=name or "Unknown", revenue=_money(total)) for name, total in result.all()]


@router.get("/revenue-by-source", response_model=list[RevenueBucket])
async def revenue_by_source(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("dashboard"))
):
    return await _won_revenue_by(db, LeadSource, Lead.lead_source_id)


@router.get("/revenue-by-type", response_model=list[RevenueBucket])
async def revenue_by_type(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("dashboard"))
):
    return await _won_revenue_by(db, LeadType, Lead.lead_type_id)


@router.get("/leads-over-time", response_model=list[PeriodCount])
async def leads_over_time(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("dashboard"))
):
    """Lead counts per month for the last twelve months, oldest first."""
    now = datetime.now(timezone.utc)
    start = (now - relativedelta(months=MONTHS - 1)).replace(day=1, hour=0, minute=0, second=0, microsecond=0)

    buckets = {(start + relativedelta(months=i)).strftime("%Y-%m"): 0 for i in range(MONTHS)}
    result = await db.execute(select(Lead.created).where(Lead.created >= start))
    for created in result.scalars().all():
        period = created.strftime("%Y-%m")
        if period in buckets:
            buckets[period] += 1

    return [PeriodCount(period=period, count=count) for period, count in buckets.items()]
