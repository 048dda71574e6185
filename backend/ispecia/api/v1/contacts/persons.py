"""
Person endpoints.

Permissions: contacts.persons (view for reads, create/edit/delete for writes).
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_, cast, String
from sqlalchemy.orm import selectinload

from ispecia.api.pagination import paginate
from ispecia.db.base import get_db
from ispecia.core.permissions import require_permission
from ispecia.models.organization import Organization
from ispecia.models.person import Person
from ispecia.models.user import User
from ispecia.schemas.common import PaginatedResponse
from ispecia.schemas.contact import PersonCreate, PersonUpdate, PersonResponse, PersonDetail
from ispecia.schemas.email import EmailMessageResponse
from ispecia.services.email_linking import get_person_emails

logger = logging.getLogger(__name__)

router = APIRouter()


async def _load_person(db: AsyncSession, person_id: str, detail: bool = False) -> Person:
    options = [selectinload(Person.organization)]
    if detail:
        options += [selectinload(Person.leads), selectinload(Person.deals)]
    result = await db.execute(
        select(Person)
        .options(*options)
        .where(Person.id == person_id)
        .execution_options(populate_existing=True)
    )
    person = result.scalar_one_or_none()
    if person is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Person not found"
        )
    return person


async def _check_organization(db: AsyncSession, organization_id: Optional[str]) -> None:
    if organization_id and await db.get(Organization, organization_id) is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Organization not found"
        )


@router.get("", response_model=PaginatedResponse[PersonResponse])
async def list_persons(
    page: int = Query(1, ge=1),
    perPage: int = Query(30, ge=1, le=100),
    search: Optional[str] = Query(None, description="Search name, email or job title"),
    organization_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("contacts.persons"))
):
    query = select(Person).options(selectinload(Person.organization))

    if search:
        pattern = f"%{search}%"
        query = query.where(or_(
            Person.name.ilike(pattern),
            Person.job_title.ilike(pattern),
            cast(Person.emails, String).ilike(pattern),
        ))
    if organization_id:
        query = query.where(Person.organization_id == organization_id)

    persons, meta = await paginate(db, query.order_by(Person.created.desc()), page, perPage)
    return PaginatedResponse[PersonResponse](
        **meta,
        items=[PersonResponse.model_validate(p) for p in persons]
    )


@router.post("", response_model=PersonResponse, status_code=status.HTTP_201_CREATED)
async def create_person(
    person_data: PersonCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("contacts.persons", "create"))
):
    await _check_organization(db, person_data.organization_id)

    person = Person(
        name=person_data.name,
        emails=[e.model_dump() for e in person_data.emails],
        contact_numbers=[n.model_dump() for n in person_data.contact_numbers],
        job_title=person_data.job_title,
        organization_id=person_data.organization_id,
        user_id=current_user.id,
    )
    db.add(person)
    await db.flush()

    return PersonResponse.model_validate(await _load_person(db, person.id))


@router.get("/{person_id}", response_model=PersonDetail)
async def get_person(
    person_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("contacts.persons"))
):
    return PersonDetail.model_validate(await _load_person(db, person_id, detail=True))


@router.patch("/{person_id}", response_model=PersonResponse)
async def update_person(
    person_id: str,
    person_data: PersonUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("contacts.persons", "edit"))
):
    person = await _load_person(db, person_id)
    update_data = person_data.model_dump(exclude_unset=True)

    if "organization_id" in update_data:
        await _check_organization(db, update_data["organization_id"])
    if update_data.get("name") is None:
        update_data.pop("name", None)
    if "emails" in update_data and update_data["emails"] is None:
        update_data.pop("emails")
    if "contact_numbers" in update_data and update_data["contact_numbers"] is None:
        update_data["contact_numbers"] = []

    for field, value in update_data.items():
        setattr(person, field, value)

    await db.flush()
    return PersonResponse.model_validate(await _load_person(db, person.id))


@router.delete("/{person_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_person(
    person_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("contacts.persons", "delete"))
):
    person = await _load_person(db, person_id)
    await db.delete(person)
    await db.flush()


@router.get("/{person_id}/emails", response_model=list[EmailMessageResponse])
async def list_person_emails(
    person_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("contacts.persons"))
):
    await _load_person(db, person_id)
    return await get_person_emails(db, person_id)
