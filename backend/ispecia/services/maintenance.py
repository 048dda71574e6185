"""
Database maintenance operations used by the CLI scripts in ``scripts/``.

All functions take an open AsyncSession and leave committing to the caller.
"""
import logging
from dataclasses import dataclass, field

from sqlalchemy import select, func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ispecia.core.config import settings
from ispecia.core.errors import NotFoundError
from ispecia.core.security import get_password_hash
from ispecia.models import (
    Role,
    PermissionType,
    User,
    Organization,
    Person,
    Product,
    Quote,
    LeadSource,
    LeadType,
    LeadPipeline,
    LeadStage,
    DealPipeline,
    DealStage,
    Lead,
    Deal,
    DealStatus,
    Activity,
    Task,
    EmailMessage,
)
from ispecia.models.base import utcnow
from ispecia.models.pipeline import CLOSED_WON_STAGE_NAME
from ispecia.services.lead_conversion import (
    convert_lead_to_deal,
    find_closed_deal_stage,
    find_won_stage_ids,
)

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_PASSWORD = "admin123"
DEFAULT_LEAD_PIPELINE = "Default Pipeline"
DEFAULT_DEAL_PIPELINE = "Standard Pipeline"

LEAD_SOURCES = ["Website", "Referral", "Cold Call"]
LEAD_TYPES = ["New Business", "Existing Customer"]
LEAD_STAGES = ["New", "Contacted", "Qualified", "Lost", "Won"]
DEAL_STAGES = [
    ("Qualified", 20),
    ("Proposal", 40),
    ("Negotiation", 60),
    ("Closing", 80),
    ("Closed Won", 100),
    ("Closed Lost", 0),
]

CRUD = ["create", "view", "edit", "delete"]

DEFAULT_ROLES = {
    "Administrator": {
        "description": "Full access to every module",
        "permission_type": PermissionType.ALL,
        "permissions": {"all": True},
    },
    "Manager": {
        "description": "Manages leads and the team below them",
        "permission_type": PermissionType.CUSTOM,
        "permissions": {
            "dashboard": ["view"],
            "leads": CRUD,
            "deals": CRUD,
            "quotes": CRUD,
            "mail": ["inbox", "sent", "create", "view", "edit", "delete"],
            "activities": CRUD,
            "contacts.persons": CRUD,
            "contacts.organizations": CRUD,
            "products": ["view"],
            "tasks": ["create", "view", "edit", "delete", "assign"],
            "voip.calls": ["view", "initiate", "all_calls"],
            "voip.callRecordings": ["play", "download"],
        },
    },
    "Lead": {
        "description": "Team lead",
        "permission_type": PermissionType.CUSTOM,
        "permissions": {
            "dashboard": ["view"],
            "leads": ["create", "view", "edit"],
            "deals": ["create", "view", "edit"],
            "mail": ["inbox", "sent", "create", "view", "edit", "delete"],
            "activities": ["create", "view", "edit"],
            "contacts.persons": ["create", "view", "edit"],
            "contacts.organizations": ["view"],
            "tasks": ["create", "view", "edit", "assign"],
            "voip.calls": ["view", "initiate"],
            "voip.callRecordings": ["play"],
        },
    },
    "Employee": {
        "description": "Works their own leads and tasks",
        "permission_type": PermissionType.CUSTOM,
        "permissions": {
            "leads": ["view", "edit"],
            "deals": ["view"],
            "mail": ["inbox", "sent", "create", "view", "edit", "delete"],
            "activities": ["create", "view", "edit"],
            "contacts.persons": ["view"],
            "tasks": ["view", "edit"],
            "voip.calls": ["view", "initiate"],
            "voip.callRecordings": ["play"],
        },
    },
}

# Tables reported by count_rows, in display order
COUNTED_MODELS = {
    "users": User,
    "roles": Role,
    "persons": Person,
    "organizations": Organization,
    "products": Product,
    "quotes": Quote,
    "leads": Lead,
    "deals": Deal,
    "activities": Activity,
    "tasks": Task,
    "email_messages": EmailMessage,
    "lead_pipelines": LeadPipeline,
    "deal_pipelines": DealPipeline,
}


@dataclass
class RepairReport:
    scanned: int = 0
    fixed: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)


async def _get_by_name(db: AsyncSession, model, name: str):
    result = await db.execute(select(model).where(model.name == name))
    return result.scalars().first()


async def seed_defaults(db: AsyncSession) -> dict:
    """Create default roles, the admin user, lookups and pipelines. Safe to re-run."""
    created = {"roles": 0, "users": 0, "lead_sources": 0, "lead_types": 0, "lead_stages": 0}

    roles = {}
    for name, fields in DEFAULT_ROLES.items():
        role = await _get_by_name(db, Role, name)
        if role is None:
            role = Role(name=name, **fields)
            db.add(role)
            created["roles"] += 1
        roles[name] = role
    await db.flush()

    admin = (await db.execute(select(User).where(User.email == settings.ADMIN_EMAIL))).scalar_one_or_none()
    if admin is None:
        db.add(User(
            name="Admin",
            email=settings.ADMIN_EMAIL,
            password_hash=get_password_hash(DEFAULT_ADMIN_PASSWORD),
            role_id=roles["Administrator"].id,
            status=True,
        ))
        created["users"] += 1

    for name in LEAD_SOURCES:
        if await _get_by_name(db, LeadSource, name) is None:
            db.add(LeadSource(name=name))
            created["lead_sources"] += 1

    for name in LEAD_TYPES:
        if await _get_by_name(db, LeadType, name) is None:
            db.add(LeadType(name=name))
            created["lead_types"] += 1

    pipeline = await _get_by_name(db, LeadPipeline, DEFAULT_LEAD_PIPELINE)
    if pipeline is None:
        has_default = await db.scalar(
            select(func.count()).select_from(LeadPipeline).where(LeadPipeline.is_default.is_(True))
        )
        pipeline = LeadPipeline(name=DEFAULT_LEAD_PIPELINE, is_default=not has_default)
        db.add(pipeline)
        await db.flush()

    existing = set((await db.execute(
        select(LeadStage.name).where(LeadStage.pipeline_id == pipeline.id)
    )).scalars().all())
    for index, name in enumerate(LEAD_STAGES):
        if name not in existing:
            db.add(LeadStage(pipeline_id=pipeline.id, name=name, code=name.lower(), sort_order=index))
            created["lead_stages"] += 1
    await db.flush()

    created["deal_stages"] = await ensure_deal_stages(db)
    logger.info("Seed complete: %s", created)
    return created


async def ensure_deal_stages(db: AsyncSession) -> int:
    """Make sure the default deal pipeline and its stages exist. Returns stages created."""
    pipeline = (await db.execute(
        select(DealPipeline).where(DealPipeline.is_default.is_(True))
    )).scalars().first()
    if pipeline is None:
        pipeline = await _get_by_name(db, DealPipeline, DEFAULT_DEAL_PIPELINE)
    if pipeline is None:
        pipeline = DealPipeline(name=DEFAULT_DEAL_PIPELINE, is_default=True)
        db.add(pipeline)
        await db.flush()
        logger.info("Created deal pipeline %s", pipeline.name)

    existing = set((await db.execute(
        select(DealStage.name).where(DealStage.pipeline_id == pipeline.id)
    )).scalars().all())

    count = 0
    for index, (name, probability) in enumerate(DEAL_STAGES):
        if name in existing:
            continue
        db.add(DealStage(pipeline_id=pipeline.id, name=name, sort_order=index, probability=probability))
        count += 1
    await db.flush()
    logger.info("Deal stages created: %d", count)
    return count


async def repair_won_leads(db: AsyncSession) -> RepairReport:
    """
    Retroactively convert leads sitting in the Won stage.

    Leads with open deals get those deals closed as won. Leads without a deal
    are converted into a won deal. Each conversion runs in a savepoint so one
    bad lead does not abort the rest.
    """
    report = RepairReport()
    won_stage_ids = await find_won_stage_ids(db)
    if not won_stage_ids:
        logger.warning("No Won stage found; nothing to repair")
        return report

    leads = (await db.execute(
        select(Lead)
        .where(Lead.stage_id.in_(won_stage_ids))
        .options(selectinload(Lead.deals))
        .order_by(Lead.created)
    )).scalars().all()

    # Snapshot before any savepoint rollback expires loaded state
    work = [(lead.id, lead, list(lead.deals)) for lead in leads]

    for lead_id, lead, deals in work:
        report.scanned += 1

        if deals:
            open_deals = [d for d in deals if d.status == DealStatus.OPEN]
            for deal in open_deals:
                closed_stage = await find_closed_deal_stage(db, deal.pipeline_id, CLOSED_WON_STAGE_NAME)
                deal.status = DealStatus.WON
                deal.closed_at = utcnow()
                if closed_stage is not None:
                    deal.stage_id = closed_stage.id
                report.fixed += 1
                logger.info("Closed deal %s for won lead %s", deal.id, lead_id)
            await db.flush()
            continue

        try:
            async with db.begin_nested():
                await convert_lead_to_deal(db, lead, closed=True)
            report.fixed += 1
        except SQLAlchemyError as exc:
            report.failed += 1
            report.errors.append(f"{lead_id}: {exc}")
            logger.error("Failed to convert lead %s: %s", lead_id, exc)

    logger.info("Repair finished: scanned=%d fixed=%d failed=%d", report.scanned, report.fixed, report.failed)
    return report


async def reset_password(db: AsyncSession, email: str, new_password: str) -> User:
    user = (await db.execute(select(User).where(func.lower(User.email) == email.strip().lower()))).scalar_one_or_none()
    if user is None:
        raise NotFoundError(f"User {email} not found")
    user.password_hash = get_password_hash(new_password)
    await db.flush()
    logger.info("Password reset for %s", email)
    return user


async def count_rows(db: AsyncSession) -> dict[str, int]:
    counts = {}
    for name, model in COUNTED_MODELS.items():
        counts[name] = await db.scalar(select(func.count()).select_from(model)) or 0
    return counts


ORPHAN_REFERENCES = {
    "lead_id": Lead,
    "person_id": Person,
    "organization_id": Organization,
}


async def find_orphans(db: AsyncSession) -> dict[str, list[str]]:
    """Deal ids whose lead, person or organization reference points at a missing row."""
    orphans = {}
    for column_name, target in ORPHAN_REFERENCES.items():
        column = getattr(Deal, column_name)
        result = await db.execute(
            select(Deal.id).where(
                column.is_not(None),
                ~select(target.id).where(target.id == column).exists(),
            )
        )
        orphans[column_name] = list(result.scalars().all())
    return orphans


async def fix_orphans(db: AsyncSession) -> dict[str, int]:
    """Null dangling deal references. Returns the number of deals fixed per column."""
    orphans = await find_orphans(db)
    fixed = {}
    for column_name, deal_ids in orphans.items():
        if deal_ids:
            await db.execute(
                update(Deal).where(Deal.id.in_(deal_ids)).values({column_name: None})
            )
            logger.info("Cleared %s on %d deals", column_name, len(deal_ids))
        fixed[column_name] = len(deal_ids)
    await db.flush()
    return fixed
