"""
Inbound routes map a dialled number (DID) on a trunk to a destination.

Permission: voip.inboundRoutes.
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from ispecia.db.base import get_db
from ispecia.core.permissions import require_permission
from ispecia.models.user import User
from ispecia.models.voip import InboundRoute, VoipTrunk
from ispecia.schemas.common import MessageResponse
from ispecia.schemas.voip import InboundRouteCreate, InboundRouteUpdate, InboundRouteResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def _route_query():
    return select(InboundRoute).options(selectinload(InboundRoute.trunk))


async def _load_route(db: AsyncSession, route_id: str) -> InboundRoute:
    result = await db.execute(
        _route_query().where(InboundRoute.id == route_id).execution_options(populate_existing=True)
    )
    route = result.scalar_one_or_none()
    if route is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Inbound route not found"
        )
    return route


async def _check_trunk(db: AsyncSession, trunk_id: str) -> None:
    if await db.get(VoipTrunk, trunk_id) is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Trunk not found"
        )


@router.get("", response_model=list[InboundRouteResponse])
async def list_routes(
    trunk_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("voip.inboundRoutes"))
):
    """Routes in the order they are tried: priority, then age."""
    query = _route_query()
    if trunk_id:
        query = query.where(InboundRoute.trunk_id == trunk_id)
    result = await db.execute(query.order_by(InboundRoute.priority, InboundRoute.created))
    return [InboundRouteResponse.model_validate(r) for r in result.scalars().all()]


@router.post("", response_model=InboundRouteResponse, status_code=status.HTTP_201_CREATED)
async def create_route(
    data: InboundRouteCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("voip.inboundRoutes", "create"))
):
    await _check_trunk(db, data.trunk_id)
    route = InboundRoute(**data.model_dump())
    db.add(route)
    await db.flush()
    logger.info("Inbound route %s (%s) created on trunk %s", route.name, route.did_pattern, route.trunk_id)
    return InboundRouteResponse.model_validate(await _load_route(db, route.id))


@router.get("/{route_id}", response_model=InboundRouteResponse)
async def get_route(
    route_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("voip.inboundRoutes"))
):
    return InboundRouteResponse.model_validate(await _load_route(db, route_id))


@router.patch("/{route_id}", response_model=InboundRouteResponse)
async def update_route(
    route_id: str,
    data: InboundRouteUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("voip.inboundRoutes", "edit"))
):
    route = await _load_route(db, route_id)
    update_data = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
    if update_data.get("trunk_id", route.trunk_id) != route.trunk_id:
        await _check_trunk(db, update_data["trunk_id"])

    for field, value in update_data.items():
        setattr(route, field, value)
    await db.flush()
    return InboundRouteResponse.model_validate(await _load_route(db, route.id))


@router.delete("/{route_id}", response_model=MessageResponse)
async def delete_route(
    route_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("voip.inboundRoutes", "delete"))
):
    route = await _load_route(db, route_id)
    await db.delete(route)
    await db.flush()
    return MessageResponse(message="Inbound route deleted")
