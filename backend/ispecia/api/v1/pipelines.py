"""
Pipeline endpoints.

Lead pipelines and their stages are editable (settings.lead.pipelines);
deal pipelines, lead sources and lead types are read-only here.
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.orm import selectinload

from ispecia.db.base import get_db
from ispecia.core.deps import get_current_user
from ispecia.core.permissions import require_permission
from ispecia.models.pipeline import LeadPipeline, LeadStage, DealPipeline, LeadSource, LeadType
from ispecia.models.user import User
from ispecia.schemas.pipeline import (
    PipelineCreate, PipelineUpdate, PipelineResponse,
    StageCreate, StageUpdate, StageResponse,
    DealPipelineResponse, LookupResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


async def _load_pipeline(db: AsyncSession, pipeline_id: str) -> LeadPipeline:
    result = await db.execute(
        select(LeadPipeline)
        .options(selectinload(LeadPipeline.stages))
        .where(LeadPipeline.id == pipeline_id)
        .execution_options(populate_existing=True)
    )
    pipeline = result.scalar_one_or_none()
    if pipeline is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Pipeline not found"
        )
    return pipeline


async def _clear_other_defaults(db: AsyncSession, pipeline_id: str) -> None:
    await db.execute(
        update(LeadPipeline)
        .where(LeadPipeline.id != pipeline_id)
        .values(is_default=False)
        .execution_options(synchronize_session="fetch")
    )


@router.get("", response_model=list[PipelineResponse])
async def list_pipelines(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    result = await db.execute(
        select(LeadPipeline)
        .options(selectinload(LeadPipeline.stages))
        .order_by(LeadPipeline.created)
        .execution_options(populate_existing=True)
    )
    return result.scalars().all()


@router.get("/deal-pipelines", response_model=list[DealPipelineResponse])
async def list_deal_pipelines(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    result = await db.execute(
        select(DealPipeline)
        .options(selectinload(DealPipeline.stages))
        .order_by(DealPipeline.created)
        .execution_options(populate_existing=True)
    )
    return result.scalars().all()


@router.get("/lead-sources", response_model=list[LookupResponse])
async def list_lead_sources(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    result = await db.execute(select(LeadSource).order_by(LeadSource.name))
    return result.scalars().all()


@router.get("/lead-types", response_model=list[LookupResponse])
async def list_lead_types(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    result = await db.execute(select(LeadType).order_by(LeadType.name))
    return result.scalars().all()


@router.post("", response_model=PipelineResponse, status_code=status.HTTP_201_CREATED)
async def create_pipeline(
    pipeline_data: PipelineCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("settings.lead.pipelines", "create"))
):
    pipeline = LeadPipeline(
        name=pipeline_data.name,
        is_default=pipeline_data.is_default,
        rotten_days=pipeline_data.rotten_days,
        stages=[
            LeadStage(
                name=stage.name,
                code=stage.code,
                sort_order=stage.sort_order if stage.sort_order is not None else index,
                probability=stage.probability,
            )
            for index, stage in enumerate(pipeline_data.stages)
        ],
    )
    db.add(pipeline)
    await db.flush()

    if pipeline.is_default:
        await _clear_other_defaults(db, pipeline.id)

    logger.info("Lead pipeline %s created with %d stages", pipeline.name, len(pipeline_data.stages))
    return await _load_pipeline(db, pipeline.id)


@router.get("/{pipeline_id}", response_model=PipelineResponse)
async def get_pipeline(
    pipeline_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await _load_pipeline(db, pipeline_id)


@router.patch("/{pipeline_id}", response_model=PipelineResponse)
async def update_pipeline(
    pipeline_id: str,
    pipeline_data: PipelineUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("settings.lead.pipelines", "edit"))
):
    pipeline = await _load_pipeline(db, pipeline_id)

    update_data = {k: v for k, v in pipeline_data.model_dump(exclude_unset=True).items() if v is not None}
    for field, value in update_data.items():
        setattr(pipeline, field, value)
    await db.flush()

    if update_data.get("is_default"):
        await _clear_other_defaults(db, pipeline.id)

    return await _load_pipeline(db, pipeline.id)


@router.delete("/{pipeline_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_pipeline(
    pipeline_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("settings.lead.pipelines", "delete"))
):
    pipeline = await _load_pipeline(db, pipeline_id)
    if pipeline.is_default:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot delete default pipeline"
        )
    await db.delete(pipeline)
    await db.flush()


# ============================================================================
# STAGES
# ============================================================================

async def _get_stage(db: AsyncSession, pipeline_id: str, stage_id: str) -> LeadStage:
    stage = await db.get(LeadStage, stage_id)
    if stage is None or stage.pipeline_id != pipeline_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Stage not found in this pipeline"
        )
    return stage


@router.post("/{pipeline_id}/stages", response_model=StageResponse, status_code=status.HTTP_201_CREATED)
async def create_stage(
    pipeline_id: str,
    stage_data: StageCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("settings.lead.pipelines", "edit"))
):
    pipeline = await _load_pipeline(db, pipeline_id)

    sort_order = stage_data.sort_order
    if sort_order is None:
        sort_order = max((s.sort_order for s in pipeline.stages), default=-1) + 1

    stage = LeadStage(
        pipeline_id=pipeline.id,
        name=stage_data.name,
        code=stage_data.code,
        sort_order=sort_order,
        probability=stage_data.probability,
    )
    db.add(stage)
    await db.flush()
    return stage


@router.patch("/{pipeline_id}/stages/{stage_id}", response_model=StageResponse)
async def update_stage(
    pipeline_id: str,
    stage_id: str,
    stage_data: StageUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("settings.lead.pipelines", "edit"))
):
    stage = await _get_stage(db, pipeline_id, stage_id)

    update_data = stage_data.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        if value is None and field != "code":
            continue
        setattr(stage, field, value)

    await db.flush()
    return stage


@router.delete("/{pipeline_id}/stages/{stage_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_stage(
    pipeline_id: str,
    stage_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("settings.lead.pipelines", "delete"))
):
    stage = await _get_stage(db, pipeline_id, stage_id)
    await db.delete(stage)
    await db.flush()
