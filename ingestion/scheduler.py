import logging
from datetime import datetime, timedelta
from typing import List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from core.config import settings
from core.database import async_session_maker
from core.utils import utcnow
from models import Pipeline, PipelineRun
from models.base import PipelineStatus
from ingestion.dispatch import ExecutionDispatcher, create_dispatcher
from ingestion.trigger import trigger_pipeline_run

logger = logging.getLogger(__name__)

SCHEDULE_INTERVALS = {
    "hourly": timedelta(hours=1),
    "daily": timedelta(days=1),
    "weekly": timedelta(days=7),
}


def should_run(pipeline: Pipeline, now: datetime) -> bool:
    """Whether a scheduled pipeline is due at `now` (naive UTC)."""
    schedule = (pipeline.schedule or "").strip().lower()
    if not schedule:
        return False
    if pipeline.last_run_at is None:
        return True

    interval = SCHEDULE_INTERVALS.get(schedule)
    if interval is None:
        return False
    return now - pipeline.last_run_at >= interval


class PipelineScheduler:
    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        dispatcher: Optional[ExecutionDispatcher] = None
    ):
        self.scheduler = AsyncIOScheduler()
        self.SessionLocal = session_factory or async_session_maker
        self.dispatcher = dispatcher or create_dispatcher(self.SessionLocal)

    async def check_scheduled_pipelines(self, now: Optional[datetime] = None) -> List[PipelineRun]:
        """Trigger every active scheduled pipeline that is due; returns the created runs."""
        now = now or utcnow()
        created = []

        async with self.SessionLocal() as session:
            result = await session.execute(
                select(Pipeline).where(
                    Pipeline.status == PipelineStatus.ACTIVE,
                    Pipeline.schedule != ""
                )
            )
            due = [(p.id, p.name) for p in result.scalars().all() if should_run(p, now)]

            for pipeline_id, pipeline_name in due:
                try:
                    pipeline = await session.get(Pipeline, pipeline_id, populate_existing=True)
                    run = await trigger_pipeline_run(
                        session, pipeline, self.dispatcher, triggered_by="scheduler", now=now
                    )
                    created.append(run)
                except Exception as e:
                    logger.error(f"Scheduler: failed to trigger pipeline '{pipeline_name}' - {e}")
                    await session.rollback()

        if created:
            logger.info(f"Scheduler: triggered {len(created)} of {len(due)} due pipelines")
        return created

    async def run_schedule_job(self):
        """Job to scan scheduled pipelines"""
        logger.debug("Scheduler: scanning scheduled pipelines")
        try:
            await self.check_scheduled_pipelines()
        except Exception as e:
            logger.error(f"Scheduler: scan failed - {e}")

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.run_schedule_job,
            trigger=IntervalTrigger(seconds=settings.SCHEDULER_INTERVAL_SECONDS),
            id="pipeline_schedule_scan",
            replace_existing=True,
            max_instances=1,  # One scan at a time
            coalesce=True
        )
        self.scheduler.start()
        logger.info(f"Pipeline scheduler started (every {settings.SCHEDULER_INTERVAL_SECONDS}s)")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown()
        logger.info("Pipeline scheduler stopped")
