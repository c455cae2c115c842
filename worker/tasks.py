"""
Celery tasks
"""

from typing import Any, Dict, Optional
import asyncio
import logging

from celery import shared_task
from celery.signals import worker_process_init

from core.database import create_session_factory
from core.logging import setup_logging
from schemas.messages import PipelineExecutionMessage
from ingestion.runner import PipelineRunner, fail_abandoned_run

logger = logging.getLogger(__name__)


@worker_process_init.connect
def configure_worker_logging(**kwargs):
    setup_logging()


async def execute_message(message: PipelineExecutionMessage, session_factory=None) -> Optional[Dict[str, Any]]:
    """Run the state machine for one request in a fresh session."""
    session_factory = session_factory or create_session_factory()
    try:
        async with session_factory() as session:
            runner = PipelineRunner(session)
            run = await runner.consume(message)
    except Exception as e:
        logger.exception(f"Execution of run {message.run_id} aborted")
        run = await fail_abandoned_run(session_factory, message.run_id, e)

    if run is None:
        return None
    return {
        "run_id": str(run.id),
        "status": run.status.value,
        "rows_processed": run.rows_processed,
        "rows_failed": run.rows_failed,
        "error_message": run.error_message,
    }


@shared_task(name="worker.tasks.execute_pipeline")
def execute_pipeline(pipeline_id: str, run_id: str, triggered_by: str = "system") -> Optional[Dict[str, Any]]:
    """
    Execute one pipeline run.

    Args:
        pipeline_id: Pipeline ID
        run_id: ID of the RUNNING run created by the trigger
        triggered_by: "manual", "scheduler" or a user name

    Returns:
        Terminal run summary, or None if the run does not exist
    """
    message = PipelineExecutionMessage(pipeline_id=pipeline_id, run_id=run_id, triggered_by=triggered_by)
    logger.info(f"Worker received run {run_id} of pipeline {pipeline_id}")
    return asyncio.run(execute_message(message))
