"""
CRM contact address book.

Decides whether an email address belongs to someone the CRM knows about:
a user, a person or an organization.
"""
import logging
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ispecia.models.organization import Organization
from ispecia.models.person import Person
from ispecia.models.user import User

logger = logging.getLogger(__name__)


def normalize_email(email) -> str:
    return str(email or "").strip().lower()


async def get_crm_contact_emails(db: AsyncSession) -> list[str]:
    """All known contact addresses, lowercased and de-duplicated."""
    emails: list[str] = []

    users = await db.execute(select(User.email))
    emails.extend(normalize_email(e) for e in users.scalars().all())

    persons = await db.execute(select(Person.emails))
    for entries in persons.scalars().all():
        for entry in entries or []:
            if isinstance(entry, dict) and entry.get("value"):
                emails.append(normalize_email(entry["value"]))

    organizations = await db.execute(select(Organization.email).where(Organization.email.is_not(None)))
    emails.extend(normalize_email(e) for e in organizations.scalars().all())

    unique = [e for e in dict.fromkeys(emails) if e]
    logger.debug("Found %d unique CRM contact emails", len(unique))
    return unique


async def is_email_in_crm(db: AsyncSession, email: str) -> bool:
    if not email:
        return False
    return normalize_email(email) in set(await get_crm_contact_emails(db))


async def has_any_crm_email(db: AsyncSession, emails: Iterable[str]) -> bool:
    candidates = [normalize_email(e) for e in emails or [] if e]
    if not candidates:
        return False
    known = set(await get_crm_contact_emails(db))
    return any(email in known for email in candidates)
