"""
Automatic linking of stored email messages to CRM records.

Every address on a message (sender and recipients) is matched against persons,
leads and organizations. The message is attached to the first matching person,
lead and deal. Messages with no CRM match are flagged ``is_unknown`` unless we
previously wrote to those addresses or the message replies to one we stored.
"""
import logging
from typing import Iterable, Optional

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from ispecia.models.deal import Deal
from ispecia.models.email import EmailMessage, EmailFolder
from ispecia.models.lead import Lead
from ispecia.models.organization import Organization
from ispecia.models.person import Person

logger = logging.getLogger(__name__)

RECENT_EMAIL_LIMIT = 50


def _recipient_address(recipient) -> Optional[str]:
    if isinstance(recipient, str):
        return recipient
    if isinstance(recipient, dict):
        return recipient.get("email") or recipient.get("address")
    return None


def extract_email_addresses(message) -> list[str]:
    """
    Collect the lowercased addresses on a message in order of first appearance.

    ``message`` may be an EmailMessage or a dict with the same keys.
    """
    def field(name):
        if isinstance(message, dict):
            return message.get(name)
        return getattr(message, name, None)

    addresses: list[str] = []
    sender = field("from_email")
    if sender:
        addresses.append(sender.strip().lower())

    for name in ("to", "cc", "bcc"):
        recipients = field(name)
        if not isinstance(recipients, list):
            continue
        for recipient in recipients:
            address = _recipient_address(recipient)
            if address:
                addresses.append(address.strip().lower())

    return list(dict.fromkeys(addresses))


async def _match_persons(db: AsyncSession, addresses: set[str]) -> list[Person]:
    # emails is a JSON list, so candidates are filtered in Python
    result = await db.execute(select(Person).where(Person.emails.is_not(None)).order_by(Person.created))
    return [p for p in result.scalars().all() if addresses.intersection(p.email_values)]


async def _has_sent_to(db: AsyncSession, addresses: set[str]) -> bool:
    result = await db.execute(select(EmailMessage.to).where(EmailMessage.folder == EmailFolder.SENT))
    for recipients in result.scalars().all():
        for recipient in recipients or []:
            address = _recipient_address(recipient)
            if address and address.strip().lower() in addresses:
                return True
    return False


async def _is_reply_to_known(db: AsyncSession, message: EmailMessage) -> bool:
    refs = [r for r in (message.references or []) if r]
    if message.in_reply_to:
        refs.append(message.in_reply_to)
    if not refs:
        return False
    parent = await db.scalar(
        select(EmailMessage.id).where(
            EmailMessage.message_id.in_(refs),
            EmailMessage.id != message.id,
        ).limit(1)
    )
    return parent is not None


async def auto_link_email(
    db: AsyncSession,
    message_id: str,
    exclude_emails: Iterable[str] = (),
) -> Optional[dict]:
    """
    Link a stored message to matching persons, leads and deals.

    Returns ``{"linked", "is_unknown", "email_addresses"}`` or None when the
    message does not exist.
    """
    message = await db.get(EmailMessage, message_id)
    if message is None:
        return None

    excluded = {e.strip().lower() for e in exclude_emails if e}
    addresses = [a for a in extract_email_addresses(message) if a not in excluded]
    if not addresses:
        message.is_unknown = True
        await db.flush()
        return {"linked": None, "is_unknown": True, "email_addresses": []}

    address_set = set(addresses)
    persons = await _match_persons(db, address_set)

    leads = (await db.execute(
        select(Lead).where(
            or_(Lead.primary_email.in_(addresses), Lead.secondary_email.in_(addresses))
        ).order_by(Lead.created)
    )).scalars().all()

    organizations = (await db.execute(
        select(Organization).where(Organization.email.in_(addresses)).order_by(Organization.created)
    )).scalars().all()

    person_ids = [p.id for p in persons]
    lead_ids = [l.id for l in leads]
    deals = []
    if person_ids or lead_ids:
        deals = (await db.execute(
            select(Deal).where(
                or_(Deal.person_id.in_(person_ids), Deal.lead_id.in_(lead_ids))
            ).order_by(Deal.created)
        )).scalars().all()

    known_interaction = False
    reply_to_known = False
    if not persons and not leads:
        known_interaction = await _has_sent_to(db, address_set)
        if not known_interaction:
            reply_to_known = await _is_reply_to_known(db, message)

    linked = {
        "persons": person_ids,
        "leads": lead_ids,
        "deals": [d.id for d in deals],
        "organizations": [o.id for o in organizations],
    }

    has_link = False
    if persons:
        message.person_id = persons[0].id
        has_link = True
    if leads:
        message.lead_id = leads[0].id
        has_link = True
    if deals:
        message.deal_id = deals[0].id
        has_link = True

    is_unknown = not has_link and not known_interaction and not reply_to_known
    message.is_unknown = is_unknown
    await db.flush()

    if has_link:
        logger.info("Linked email %s to %s", message_id, linked)
    else:
        logger.info("No CRM records found for email %s", message_id)

    return {"linked": linked, "is_unknown": is_unknown, "email_addresses": addresses}


async def _recent_emails(db: AsyncSession, column, value: str) -> list[EmailMessage]:
    result = await db.execute(
        select(EmailMessage)
        .where(column == value)
        .order_by(EmailMessage.sent_at.desc())
        .limit(RECENT_EMAIL_LIMIT)
    )
    return list(result.scalars().all())


async def get_person_emails(db: AsyncSession, person_id: str) -> list[EmailMessage]:
    return await _recent_emails(db, EmailMessage.person_id, person_id)


async def get_lead_emails(db: AsyncSession, lead_id: str) -> list[EmailMessage]:
    return await _recent_emails(db, EmailMessage.lead_id, lead_id)


async def get_deal_emails(db: AsyncSession, deal_id: str) -> list[EmailMessage]:
    return await _recent_emails(db, EmailMessage.deal_id, deal_id)
