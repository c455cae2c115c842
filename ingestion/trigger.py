"""
Create a pipeline run and hand it to the execution channel
"""

from datetime import datetime
from typing import Optional
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import error_message_of
from core.utils import utcnow
from models import Pipeline, PipelineRun
from models.base import PipelineRunStatus
from schemas.messages import PipelineExecutionMessage
from ingestion.dispatch import ExecutionDispatcher

logger = logging.getLogger(__name__)


async def trigger_pipeline_run(
    session: AsyncSession,
    pipeline: Pipeline,
    dispatcher: ExecutionDispatcher,
    triggered_by: str = "manual",
    now: Optional[datetime] = None
) -> PipelineRun:
    """
    Persist a RUNNING run, publish its execution request, then stamp last_run_at.

    The run is committed before it is published so a worker can always load
    it. If publishing fails the run is closed as FAILED and the error
    propagates.

    `now` is the trigger time stamped on the pipeline (the scheduler passes
    its scan time); defaults to the current time.
    """
    run = PipelineRun(
        pipeline_id=pipeline.id,
        status=PipelineRunStatus.RUNNING,
        triggered_by=triggered_by,
        started_at=utcnow(),
        rows_processed=0,
        rows_failed=0,
        metrics={}
    )
    session.add(run)
    await session.commit()

    message = PipelineExecutionMessage(pipeline_id=pipeline.id, run_id=run.id, triggered_by=triggered_by)
    try:
        await dispatcher.dispatch(message)
    except Exception as e:
        logger.error(f"Failed to dispatch run {run.id} of pipeline '{pipeline.name}': {e}")
        run.status = PipelineRunStatus.FAILED
        run.completed_at = utcnow()
        run.error_message = f"Dispatch failed: {error_message_of(e)}"
        await session.commit()
        raise

    pipeline.last_run_at = now or utcnow()
    await session.commit()

    logger.info(f"Triggered run {run.id} of pipeline '{pipeline.name}' (by {triggered_by})")
    return run
