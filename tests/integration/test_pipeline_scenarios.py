"""
End-to-end pipeline scenarios: trigger -> queue -> state machine -> persisted run
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select

from core.utils import utcnow
from models import Pipeline, PipelineRun
from models.base import PipelineRunStatus, PipelineType
from ingestion.dispatch import InProcessDispatcher
from ingestion.query_engine import QueryEngine
from ingestion.scheduler import PipelineScheduler, should_run
from ingestion.trigger import trigger_pipeline_run


class RecordingQueryEngine(QueryEngine):
    """Query engine that remembers every extraction it executed"""

    def __init__(self, registry):
        super().__init__(registry)
        self.extractions = []

    async def execute_extraction(self, dataset, extraction):
        self.extractions.append(extraction)
        return await super().execute_extraction(dataset, extraction)


@pytest.fixture
def recording_engine(registry):
    return RecordingQueryEngine(registry)


@pytest.mark.asyncio
async def test_manual_batch_run(db_session, session_factory, recording_engine, make_dataset, make_pipeline):
    """A: batch pipeline with no query scans the whole table"""
    orders = await make_dataset("orders")
    p1 = await make_pipeline(orders, type=PipelineType.BATCH, source_query="", name="P1")
    dispatcher = InProcessDispatcher(session_factory, query_engine=recording_engine)

    run = await trigger_pipeline_run(db_session, p1, dispatcher, triggered_by="manual")
    assert run.status == PipelineRunStatus.RUNNING

    finished = await dispatcher.drain()

    assert recording_engine.extractions[0].render() == "SELECT * FROM orders"
    assert len(finished) == 1
    result = finished[0]
    assert result.id == run.id
    assert result.status == PipelineRunStatus.SUCCEEDED
    assert result.rows_processed == 3
    assert "query_execution_time_ms" in result.metrics
    assert result.triggered_by == "manual"


@pytest.mark.asyncio
async def test_incremental_run_after_success(
    db_session, session_factory, recording_engine, make_dataset, make_pipeline, make_run
):
    """B: incremental query is bounded by the last successful completion time"""
    events = await make_dataset("events")
    p2 = await make_pipeline(
        events,
        type=PipelineType.INCREMENTAL,
        source_query="SELECT * FROM events WHERE region='EU'",
        name="P2"
    )
    t0 = datetime(2024, 1, 1, 10, 0, 0)
    await make_run(p2, status=PipelineRunStatus.SUCCEEDED, started_at=t0 - timedelta(minutes=5), completed_at=t0)
    dispatcher = InProcessDispatcher(session_factory, query_engine=recording_engine)

    await trigger_pipeline_run(db_session, p2, dispatcher)
    finished = await dispatcher.drain()

    extraction = recording_engine.extractions[0]
    assert extraction.render() == "SELECT * FROM events WHERE region='EU' AND updated_at > '2024-01-01 10:00:00'"
    assert extraction.params == {"watermark": t0}

    result = finished[0]
    assert result.status == PipelineRunStatus.SUCCEEDED
    assert result.rows_processed == 2
    assert result.metrics["incremental"] is True
    assert result.metrics["watermark"] == t0.isoformat()


@pytest.mark.asyncio
async def test_incremental_run_does_not_reread_rows(
    db_session, session_factory, recording_engine, make_dataset, make_pipeline
):
    """Two consecutive incremental runs: the second only sees rows after the first"""
    events = await make_dataset("events")
    pipeline = await make_pipeline(events, type=PipelineType.INCREMENTAL)
    dispatcher = InProcessDispatcher(session_factory, query_engine=recording_engine)

    await trigger_pipeline_run(db_session, pipeline, dispatcher)
    first = (await dispatcher.drain())[0]
    await trigger_pipeline_run(db_session, pipeline, dispatcher)
    second = (await dispatcher.drain())[0]

    assert first.rows_processed == 4
    # Source rows all predate the first run's completion
    assert second.status == PipelineRunStatus.SUCCEEDED
    assert second.rows_processed == 0
    assert second.metrics["watermark"] == first.completed_at.isoformat()


@pytest.mark.asyncio
async def test_scheduler_triggers_due_daily_pipeline(session_factory, dispatcher, make_dataset, make_pipeline):
    """C: daily pipeline last run 25h ago is due, enqueued and stamped"""
    orders = await make_dataset("orders")
    now = utcnow()
    p3 = await make_pipeline(orders, schedule="daily", last_run_at=now - timedelta(hours=25), name="P3")
    assert should_run(p3, now) is True

    scheduler = PipelineScheduler(session_factory=session_factory, dispatcher=dispatcher)
    runs = await scheduler.check_scheduled_pipelines(now=now)

    assert len(runs) == 1
    assert runs[0].pipeline_id == p3.id
    assert runs[0].status == PipelineRunStatus.RUNNING
    assert [m.run_id for m in dispatcher.messages] == [runs[0].id]

    async with session_factory() as session:
        stored = await session.get(Pipeline, p3.id)
    assert stored.last_run_at == now


@pytest.mark.asyncio
async def test_scheduler_skips_recent_daily_pipeline(session_factory, dispatcher, make_dataset, make_pipeline):
    """D: daily pipeline last run 2h ago is not due"""
    orders = await make_dataset("orders")
    now = utcnow()
    last_run_at = now - timedelta(hours=2)
    p4 = await make_pipeline(orders, schedule="daily", last_run_at=last_run_at, name="P4")
    assert should_run(p4, now) is False

    scheduler = PipelineScheduler(session_factory=session_factory, dispatcher=dispatcher)
    runs = await scheduler.check_scheduled_pipelines(now=now)

    assert runs == []
    assert dispatcher.messages == []
    async with session_factory() as session:
        count = (await session.execute(select(func.count()).select_from(PipelineRun))).scalar_one()
        stored = await session.get(Pipeline, p4.id)
    assert count == 0
    assert stored.last_run_at == last_run_at
