# ============================================================================
# File: ingestion/runner.py
# Description: Pipeline run state machine (running -> succeeded | failed)
# ============================================================================
"""
Pipeline Runner - executes one PipelineRun per execution request.

This module drives a run through its single terminal transition:
- Resolves the pipeline, source dataset and target dataset of the run
- Builds the extraction query (full scan, custom query or incremental)
- Executes it through the query engine and writes to the target dataset
- Records rows, metrics and the error message, then commits exactly once
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.config import settings
from core.exceptions import (
    DataPlatformError,
    InvalidPipelineTypeError,
    PipelineRunNotFoundError,
    UnimplementedFeatureError,
    WatermarkColumnMissingError,
    error_message_of,
)
from core.utils import utcnow
from models import Dataset, Pipeline, PipelineRun
from models.base import PipelineRunStatus, PipelineType, WriteMode
from schemas.messages import PipelineExecutionMessage
from schemas.query import QueryResult
from ingestion.connectors.registry import ConnectorRegistry, default_registry
from ingestion.query_builder import ExtractionQuery, effective_query
from ingestion.query_engine import QueryEngine

logger = logging.getLogger(__name__)


class PipelineRunner:
    """
    Pipeline execution state machine.

    Responsibilities:
    - Consume PipelineExecutionMessage requests
    - Derive the incremental watermark from the last successful run
    - Never raise for execution failures: they become a FAILED run
    - Persist the run outcome with a single commit
    """

    def __init__(
        self,
        db_session: AsyncSession,
        query_engine: Optional[QueryEngine] = None,
        registry: Optional[ConnectorRegistry] = None
    ):
        self.db = db_session
        self.registry = registry or (query_engine.registry if query_engine else default_registry)
        self.query_engine = query_engine or QueryEngine(self.registry)

    async def consume(self, message: PipelineExecutionMessage) -> Optional[PipelineRun]:
        """
        Execute the run referenced by an execution request.

        Returns:
            The run in its terminal state, or None if the run does not exist
        """
        run = await self._load_run(message.run_id)
        if run is None:
            error = PipelineRunNotFoundError(
                "Pipeline run not found",
                context={"run_id": str(message.run_id), "pipeline_id": str(message.pipeline_id)}
            )
            logger.error(str(error))
            return None

        if run.is_terminal:
            logger.warning(f"Run {run.id} is already {run.status.value}; ignoring duplicate request")
            return run

        pipeline = run.pipeline
        logger.info(
            f"Starting run {run.id} of pipeline '{pipeline.name}' "
            f"({_value(pipeline.type)}, triggered by {message.triggered_by})"
        )

        metrics: Dict[str, Any] = {}

        try:
            # --------------------------------------------------
            # PHASE 1: EXTRACTION
            # --------------------------------------------------
            result = await self._extract(run, pipeline, metrics)
            run.rows_processed = result.total_rows

            # --------------------------------------------------
            # PHASE 2: LOAD INTO TARGET DATASET
            # --------------------------------------------------
            if pipeline.target_dataset is not None:
                await self._load(run, pipeline, result.rows, metrics)

            run.status = PipelineRunStatus.SUCCEEDED
            run.completed_at = utcnow()

            logger.info(
                f"Run {run.id} succeeded: {run.rows_processed} rows processed "
                f"in {metrics.get('query_execution_time_ms', 0)}ms"
            )

        except DataPlatformError as e:
            # Known platform errors - log with context
            logger.error(
                f"Run {run.id} failed: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            self._fail(run, e)

        except Exception as e:
            logger.exception(f"Unexpected error in run {run.id}")
            self._fail(run, e)

        run.metrics = metrics
        await self.db.commit()
        return run

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def _extract(self, run: PipelineRun, pipeline: Pipeline, metrics: Dict[str, Any]) -> QueryResult:
        source_dataset = pipeline.source_dataset
        pipeline_type = pipeline.type

        if pipeline_type == PipelineType.STREAMING:
            raise UnimplementedFeatureError(
                "Streaming pipelines are not implemented",
                context={"pipeline_id": str(pipeline.id)}
            )
        if pipeline_type not in (PipelineType.BATCH, PipelineType.FULL_REFRESH, PipelineType.INCREMENTAL):
            raise InvalidPipelineTypeError(
                f"Unknown pipeline type: {_value(pipeline_type)}",
                context={"pipeline_id": str(pipeline.id)}
            )

        connector = self.registry.get(source_dataset.data_source.type)
        base_query = effective_query(pipeline.source_query, connector.default_query(source_dataset.table_name))

        if pipeline_type == PipelineType.INCREMENTAL:
            column = settings.INCREMENTAL_WATERMARK_COLUMN
            if source_dataset.schema_columns and not source_dataset.has_column(column):
                raise WatermarkColumnMissingError(
                    f"Source dataset '{source_dataset.name}' has no '{column}' column",
                    context={"dataset_id": str(source_dataset.id), "watermark_column": column}
                )

            watermark = await self.get_watermark(pipeline.id, run.id)
            extraction = connector.with_watermark(base_query, column, watermark)
            metrics["watermark"] = watermark.isoformat()
            metrics["incremental"] = True
        else:
            extraction = ExtractionQuery(text=base_query)

        logger.debug(f"Run {run.id} extraction query: {extraction.render()}")

        result = await self.query_engine.execute_extraction(source_dataset, extraction)
        metrics["query_execution_time_ms"] = result.execution_time_ms
        metrics["columns_count"] = len(result.columns)
        return result

    async def _load(
        self,
        run: PipelineRun,
        pipeline: Pipeline,
        rows: List[Dict[str, Any]],
        metrics: Dict[str, Any]
    ):
        target = pipeline.target_dataset
        try:
            writer = self.registry.get_writer(target.data_source.type)
            written = await writer.write(
                target.data_source,
                target.table_name,
                rows,
                mode=pipeline.write_mode or WriteMode.APPEND,
                key_columns=target.primary_key_columns
            )
        except Exception:
            run.rows_failed = len(rows)
            raise

        metrics["rows_written"] = written
        metrics["target_dataset"] = target.name

    def _fail(self, run: PipelineRun, exc: BaseException):
        run.status = PipelineRunStatus.FAILED
        run.completed_at = utcnow()
        run.error_message = error_message_of(exc)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_watermark(self, pipeline_id: UUID, current_run_id: UUID) -> datetime:
        """
        completed_at of the latest successful run other than the current one.

        Ties on completed_at are broken by started_at, then id (both descending).
        Returns datetime.min when the pipeline has never succeeded.
        """
        result = await self.db.execute(
            select(PipelineRun.completed_at)
            .where(
                PipelineRun.pipeline_id == pipeline_id,
                PipelineRun.id != current_run_id,
                PipelineRun.status == PipelineRunStatus.SUCCEEDED,
                PipelineRun.completed_at.is_not(None)
            )
            .order_by(
                PipelineRun.completed_at.desc(),
                PipelineRun.started_at.desc(),
                PipelineRun.id.desc()
            )
            .limit(1)
        )
        return result.scalar_one_or_none() or datetime.min

    async def _load_run(self, run_id: UUID) -> Optional[PipelineRun]:
        result = await self.db.execute(
            select(PipelineRun)
            .where(PipelineRun.id == run_id)
            .options(
                selectinload(PipelineRun.pipeline)
                .selectinload(Pipeline.source_dataset)
                .selectinload(Dataset.data_source),
                selectinload(PipelineRun.pipeline)
                .selectinload(Pipeline.target_dataset)
                .selectinload(Dataset.data_source),
            )
        )
        return result.scalar_one_or_none()


async def fail_abandoned_run(session_factory, run_id: UUID, exc: BaseException) -> Optional[PipelineRun]:
    """
    Close a run left RUNNING because its execution crashed outside the state
    machine (for example, the final commit failed).

    Uses a fresh session. Terminal and unknown runs are returned unchanged.
    """
    async with session_factory() as session:
        run = await session.get(PipelineRun, run_id)
        if run is None or run.is_terminal:
            return run

        run.status = PipelineRunStatus.FAILED
        run.completed_at = utcnow()
        run.error_message = f"Execution aborted: {error_message_of(exc)}"
        await session.commit()

    logger.warning(f"Run {run_id} marked failed after an aborted execution")
    return run


def _value(enum_or_str) -> str:
    return getattr(enum_or_str, "value", str(enum_or_str))
