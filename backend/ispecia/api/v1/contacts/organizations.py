"""
Organization endpoints.

Permissions: contacts.organizations.
"""
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_
from sqlalchemy.orm import selectinload

from ispecia.api.pagination import paginate
from ispecia.db.base import get_db
from ispecia.core.permissions import require_permission
from ispecia.models.organization import Organization
from ispecia.models.user import User
from ispecia.schemas.common import PaginatedResponse
from ispecia.schemas.contact import (
    OrganizationCreate, OrganizationUpdate, OrganizationResponse, OrganizationDetail
)

router = APIRouter()


async def _load_organization(db: AsyncSession, organization_id: str, with_persons: bool = False) -> Organization:
    query = select(Organization).where(Organization.id == organization_id)
    if with_persons:
        query = query.options(selectinload(Organization.persons)).execution_options(populate_existing=True)
    organization = (await db.execute(query)).scalar_one_or_none()
    if organization is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Organization not found"
        )
    return organization


@router.get("", response_model=PaginatedResponse[OrganizationResponse])
async def list_organizations(
    page: int = Query(1, ge=1),
    perPage: int = Query(30, ge=1, le=100),
    search: Optional[str] = Query(None, description="Search name, email or website"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("contacts.organizations"))
):
    query = select(Organization)
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(
            Organization.name.ilike(pattern),
            Organization.email.ilike(pattern),
            Organization.website.ilike(pattern),
        ))

    organizations, meta = await paginate(db, query.order_by(Organization.created.desc()), page, perPage)
    return PaginatedResponse[OrganizationResponse](
        **meta,
        items=[OrganizationResponse.model_validate(o) for o in organizations]
    )


@router.post("", response_model=OrganizationResponse, status_code=status.HTTP_201_CREATED)
async def create_organization(
    organization_data: OrganizationCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("contacts.organizations", "create"))
):
    organization = Organization(
        name=organization_data.name,
        email=organization_data.email,
        website=organization_data.website,
        address=[a.model_dump() for a in organization_data.address],
        user_id=current_user.id,
    )
    db.add(organization)
    await db.flush()
    return organization


@router.get("/{organization_id}", response_model=OrganizationDetail)
async def get_organization(
    organization_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("contacts.organizations"))
):
    organization = await _load_organization(db, organization_id, with_persons=True)
    return OrganizationDetail.model_validate(organization)


@router.patch("/{organization_id}", response_model=OrganizationResponse)
async def update_organization(
    organization_id: str,
    organization_data: OrganizationUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("contacts.organizations", "edit"))
):
    organization = await _load_organization(db, organization_id)

    update_data = organization_data.model_dump(exclude_unset=True)
    if update_data.get("name") is None:
        update_data.pop("name", None)
    if "address" in update_data:
        update_data["address"] = update_data["address"] or []

    for field, value in update_data.items():
        setattr(organization, field, value)

    await db.flush()
    return organization


@router.delete("/{organization_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_organization(
    organization_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("contacts.organizations", "delete"))
):
    organization = await _load_organization(db, organization_id, with_persons=True)
    await db.delete(organization)
    await db.flush()
