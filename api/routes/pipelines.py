"""
Pipeline endpoints: definition, manual trigger and run history
"""

from typing import List
from uuid import UUID
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_db, get_dispatcher
from models import Dataset, Pipeline, PipelineRun
from models.base import PipelineRunStatus, PipelineStatus
from schemas.api import (
    PipelineCreate,
    PipelineResponse,
    PipelineRunResponse,
    PipelineRunSummary,
)
from ingestion.dispatch import ExecutionDispatcher
from ingestion.trigger import trigger_pipeline_run

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/pipelines", tags=["Pipelines"])


async def _get_pipeline(db: AsyncSession, pipeline_id: UUID) -> Pipeline:
    pipeline = await db.get(Pipeline, pipeline_id)
    if pipeline is None:
        raise HTTPException(status_code=404, detail=f"Pipeline {pipeline_id} not found")
    return pipeline


@router.post("", response_model=PipelineResponse, status_code=status.HTTP_201_CREATED)
async def create_pipeline(body: PipelineCreate, db: AsyncSession = Depends(get_db)):
    """Create a pipeline in DRAFT status"""
    if await db.get(Dataset, body.source_dataset_id) is None:
        raise HTTPException(status_code=404, detail=f"Source dataset {body.source_dataset_id} not found")
    if body.target_dataset_id and await db.get(Dataset, body.target_dataset_id) is None:
        raise HTTPException(status_code=404, detail=f"Target dataset {body.target_dataset_id} not found")

    pipeline = Pipeline(
        name=body.name,
        description=body.description,
        type=body.type,
        source_query=body.source_query,
        source_dataset_id=body.source_dataset_id,
        target_dataset_id=body.target_dataset_id,
        write_mode=body.write_mode,
        schedule=body.schedule or "",
        status=PipelineStatus.DRAFT
    )
    db.add(pipeline)
    await db.commit()
    await db.refresh(pipeline)

    logger.info(f"Created pipeline '{pipeline.name}' ({pipeline.id})")
    return pipeline


@router.get("/{pipeline_id}", response_model=PipelineResponse)
async def get_pipeline(pipeline_id: UUID, db: AsyncSession = Depends(get_db)):
    return await _get_pipeline(db, pipeline_id)


@router.post("/{pipeline_id}/run", response_model=PipelineRunResponse, status_code=status.HTTP_202_ACCEPTED)
async def run_pipeline(
    pipeline_id: UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    dispatcher: ExecutionDispatcher = Depends(get_dispatcher)
):
    """
    Trigger a pipeline run.

    The run is created in RUNNING status and executed asynchronously by a
    worker; poll GET /api/pipelines/{id}/runs/{run_id} for its outcome.
    """
    pipeline = await _get_pipeline(db, pipeline_id)
    request_id = getattr(request.state, "request_id", None)
    logger.info(f"[{request_id}] Manual run requested for pipeline '{pipeline.name}'")

    return await trigger_pipeline_run(db, pipeline, dispatcher, triggered_by="manual")


@router.get("/{pipeline_id}/runs", response_model=List[PipelineRunResponse])
async def list_runs(
    pipeline_id: UUID,
    limit: int = Query(50, ge=1, le=500, description="Maximum runs to return"),
    db: AsyncSession = Depends(get_db)
):
    """Most recent runs first"""
    await _get_pipeline(db, pipeline_id)
    result = await db.execute(
        select(PipelineRun)
        .where(PipelineRun.pipeline_id == pipeline_id)
        .order_by(PipelineRun.started_at.desc(), PipelineRun.id.desc())
        .limit(limit)
    )
    return result.scalars().all()


@router.get("/{pipeline_id}/runs/{run_id}", response_model=PipelineRunResponse)
async def get_run(pipeline_id: UUID, run_id: UUID, db: AsyncSession = Depends(get_db)):
    run = await db.get(PipelineRun, run_id)
    if run is None or run.pipeline_id != pipeline_id:
        raise HTTPException(status_code=404, detail=f"Run {run_id} not found for pipeline {pipeline_id}")
    return run


@router.get("/{pipeline_id}/summary", response_model=PipelineRunSummary)
async def get_summary(pipeline_id: UUID, db: AsyncSession = Depends(get_db)):
    """Aggregate run statistics"""
    pipeline = await _get_pipeline(db, pipeline_id)
    result = await db.execute(
        select(PipelineRun)
        .where(PipelineRun.pipeline_id == pipeline_id)
        .order_by(PipelineRun.started_at.desc())
    )
    runs = result.scalars().all()

    durations = [run.duration_seconds for run in runs if run.duration_seconds is not None]

    return PipelineRunSummary(
        pipeline_id=pipeline.id,
        pipeline_name=pipeline.name,
        total_runs=len(runs),
        successful_runs=sum(1 for run in runs if run.status == PipelineRunStatus.SUCCEEDED),
        failed_runs=sum(1 for run in runs if run.status == PipelineRunStatus.FAILED),
        running_runs=sum(1 for run in runs if run.status == PipelineRunStatus.RUNNING),
        last_run_at=runs[0].started_at if runs else None,
        last_run_status=runs[0].status if runs else None,
        avg_duration_seconds=round(sum(durations) / len(durations), 3) if durations else None
    )
