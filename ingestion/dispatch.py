"""
Execution channel between triggers (API, scheduler) and the run state machine
"""

from abc import ABC, abstractmethod
from typing import List, Optional
import asyncio
import logging

from sqlalchemy.ext.asyncio import async_sessionmaker

from core.config import settings
from models import PipelineRun
from schemas.messages import PipelineExecutionMessage
from ingestion.query_engine import QueryEngine
from ingestion.runner import PipelineRunner, fail_abandoned_run

logger = logging.getLogger(__name__)

EXECUTE_PIPELINE_TASK = "worker.tasks.execute_pipeline"


class ExecutionDispatcher(ABC):
    """Publishes execution requests; implementations never execute inline."""

    @abstractmethod
    async def dispatch(self, message: PipelineExecutionMessage) -> None:
        pass


class CeleryDispatcher(ExecutionDispatcher):
    """Sends execution requests to the Celery worker queue."""

    def __init__(self, app=None, queue: Optional[str] = None):
        if app is None:
            from worker.celery_app import celery_app
            app = celery_app
        self.app = app
        self.queue = queue or settings.CELERY_QUEUE

    async def dispatch(self, message: PipelineExecutionMessage) -> None:
        # send_task blocks on the broker connection
        await asyncio.to_thread(
            self.app.send_task,
            EXECUTE_PIPELINE_TASK,
            kwargs=message.model_dump(mode="json"),
            queue=self.queue
        )
        logger.info(f"Dispatched run {message.run_id} to queue '{self.queue}'")


class InProcessDispatcher(ExecutionDispatcher):
    """
    asyncio.Queue inside the current process (development and tests).

    Requests are consumed by drain() or a run_forever() background task,
    each with its own database session.
    """

    def __init__(self, session_factory: async_sessionmaker, query_engine: Optional[QueryEngine] = None):
        self.session_factory = session_factory
        self.query_engine = query_engine or QueryEngine()
        self.queue: asyncio.Queue = asyncio.Queue()

    async def dispatch(self, message: PipelineExecutionMessage) -> None:
        await self.queue.put(message)
        logger.debug(f"Queued run {message.run_id} in-process ({self.queue.qsize()} pending)")

    async def _consume(self, message: PipelineExecutionMessage) -> Optional[PipelineRun]:
        async with self.session_factory() as session:
            runner = PipelineRunner(session, query_engine=self.query_engine)
            return await runner.consume(message)

    async def _execute(self, message: PipelineExecutionMessage) -> Optional[PipelineRun]:
        """Consume one request; a crash outside the state machine closes the run as FAILED."""
        try:
            return await self._consume(message)
        except Exception as e:
            logger.error(f"In-process consumer failed for run {message.run_id}: {e}")
            try:
                return await fail_abandoned_run(self.session_factory, message.run_id, e)
            except Exception as close_error:
                logger.error(f"Could not mark run {message.run_id} failed: {close_error}")
                return None

    async def drain(self) -> List[PipelineRun]:
        """Execute every queued request; returns the finished runs."""
        finished = []
        while not self.queue.empty():
            message = self.queue.get_nowait()
            try:
                run = await self._execute(message)
                if run is not None:
                    finished.append(run)
            finally:
                self.queue.task_done()
        return finished

    async def run_forever(self):
        logger.info("In-process pipeline consumer started")
        while True:
            message = await self.queue.get()
            try:
                await self._execute(message)
            finally:
                self.queue.task_done()


def create_dispatcher(session_factory: Optional[async_sessionmaker] = None) -> ExecutionDispatcher:
    """Dispatcher for the configured EXECUTION_BACKEND ("celery" or "inprocess")."""
    backend = settings.EXECUTION_BACKEND.lower()
    if backend == "inprocess":
        if session_factory is None:
            from core.database import async_session_maker
            session_factory = async_session_maker
        return InProcessDispatcher(session_factory)
    if backend == "celery":
        return CeleryDispatcher()
    raise ValueError(f"Unknown EXECUTION_BACKEND: {settings.EXECUTION_BACKEND}")
