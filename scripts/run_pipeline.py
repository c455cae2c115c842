"""
Trigger a pipeline and execute the run in this process (no broker needed)

Usage:
    python scripts/run_pipeline.py <pipeline_id> [--triggered-by NAME]
"""

import argparse
import asyncio
import sys
import os
import logging
import uuid

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.database import create_session_factory
from core.logging import setup_logging
from models import Pipeline
from ingestion.dispatch import InProcessDispatcher
from ingestion.trigger import trigger_pipeline_run

setup_logging()
logger = logging.getLogger(__name__)


async def run_pipeline(pipeline_id: uuid.UUID, triggered_by: str) -> int:
    session_factory = create_session_factory()
    dispatcher = InProcessDispatcher(session_factory)

    async with session_factory() as session:
        pipeline = await session.get(Pipeline, pipeline_id)
        if pipeline is None:
            logger.error(f"Pipeline {pipeline_id} not found")
            return 1
        await trigger_pipeline_run(session, pipeline, dispatcher, triggered_by=triggered_by)

    runs = await dispatcher.drain()
    for run in runs:
        logger.info(
            f"Run {run.id}: {run.status.value} - processed={run.rows_processed}, "
            f"failed={run.rows_failed}, metrics={run.metrics}"
        )
        if run.error_message:
            logger.error(f"Run {run.id} error: {run.error_message}")

    return 0 if runs and all(run.status.value == "succeeded" for run in runs) else 1


def main():
    parser = argparse.ArgumentParser(description="Run a pipeline in-process")
    parser.add_argument("pipeline_id", type=uuid.UUID)
    parser.add_argument("--triggered-by", default="cli")
    args = parser.parse_args()

    sys.exit(asyncio.run(run_pipeline(args.pipeline_id, args.triggered_by)))


if __name__ == "__main__":
    main()
