import pytest
from datetime import datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

from sqlalchemy import select

from models import Pipeline, PipelineRun
from models.base import PipelineRunStatus, PipelineStatus
from ingestion.scheduler import PipelineScheduler, should_run

NOW = datetime(2024, 6, 1, 12, 0)


@pytest.mark.parametrize("schedule,last_run_at,expected", [
    ("", None, False),
    ("   ", None, False),
    ("hourly", None, True),
    ("hourly", NOW - timedelta(minutes=59), False),
    ("hourly", NOW - timedelta(hours=1), True),
    ("daily", NOW - timedelta(hours=23), False),
    ("daily", NOW - timedelta(days=1, seconds=1), True),
    ("weekly", NOW - timedelta(days=6), False),
    ("weekly", NOW - timedelta(days=7), True),
    ("Daily", NOW - timedelta(days=2), True),
    ("*/5 * * * *", NOW - timedelta(days=30), False),
    ("*/5 * * * *", None, True),
])
def test_should_run(schedule, last_run_at, expected):
    pipeline = SimpleNamespace(schedule=schedule, last_run_at=last_run_at)
    assert should_run(pipeline, NOW) is expected


def test_scheduler_initialization(dispatcher):
    session_factory = MagicMock()
    scheduler = PipelineScheduler(session_factory=session_factory, dispatcher=dispatcher)
    assert scheduler.scheduler is not None
    assert scheduler.dispatcher is dispatcher
    assert scheduler.SessionLocal is session_factory


@pytest.mark.asyncio
async def test_due_pipelines_are_triggered(session_factory, dispatcher, make_dataset, make_pipeline):
    orders = await make_dataset("orders")
    due = await make_pipeline(orders, schedule="hourly", last_run_at=NOW - timedelta(hours=2), name="due")
    never_run = await make_pipeline(orders, schedule="daily", name="never_run")
    await make_pipeline(orders, schedule="hourly", last_run_at=NOW - timedelta(minutes=5), name="recent")
    await make_pipeline(orders, schedule="", name="manual_only")
    await make_pipeline(orders, schedule="hourly", status=PipelineStatus.PAUSED, name="paused")

    scheduler = PipelineScheduler(session_factory=session_factory, dispatcher=dispatcher)

    runs = await scheduler.check_scheduled_pipelines(now=NOW)

    assert {run.pipeline_id for run in runs} == {due.id, never_run.id}
    assert all(run.triggered_by == "scheduler" for run in runs)
    assert all(run.status == PipelineRunStatus.RUNNING for run in runs)
    assert {m.run_id for m in dispatcher.messages} == {run.id for run in runs}
    assert all(m.triggered_by == "scheduler" for m in dispatcher.messages)


@pytest.mark.asyncio
async def test_last_run_at_stamped(session_factory, dispatcher, make_dataset, make_pipeline):
    orders = await make_dataset("orders")
    pipeline = await make_pipeline(orders, schedule="hourly", last_run_at=NOW - timedelta(hours=3))

    scheduler = PipelineScheduler(session_factory=session_factory, dispatcher=dispatcher)
    await scheduler.check_scheduled_pipelines(now=NOW)

    async with session_factory() as session:
        stored = await session.get(Pipeline, pipeline.id)
        assert stored.last_run_at == NOW

    # Stamped with the scan time, so a second scan at the same instant finds nothing due
    assert await scheduler.check_scheduled_pipelines(now=NOW) == []
    assert len(await scheduler.check_scheduled_pipelines(now=NOW + timedelta(hours=1))) == 1


@pytest.mark.asyncio
async def test_dispatch_failure_does_not_stop_scan(session_factory, dispatcher, make_dataset, make_pipeline):
    orders = await make_dataset("orders")
    await make_pipeline(orders, schedule="hourly", name="first")
    await make_pipeline(orders, schedule="daily", name="second")

    dispatcher.fail = True
    scheduler = PipelineScheduler(session_factory=session_factory, dispatcher=dispatcher)

    runs = await scheduler.check_scheduled_pipelines(now=NOW)

    assert runs == []
    async with session_factory() as session:
        result = await session.execute(select(PipelineRun))
        stored = result.scalars().all()
    assert len(stored) == 2
    assert all(run.status == PipelineRunStatus.FAILED for run in stored)
    assert all(run.error_message == "Dispatch failed: broker unavailable" for run in stored)


@pytest.mark.asyncio
async def test_schedule_job_swallows_scan_errors(session_factory, dispatcher):
    scheduler = PipelineScheduler(session_factory=session_factory, dispatcher=dispatcher)
    scheduler.check_scheduled_pipelines = AsyncMock(side_effect=RuntimeError("database down"))

    await scheduler.run_schedule_job()

    scheduler.check_scheduled_pipelines.assert_awaited_once()


def test_start_registers_single_instance_job(dispatcher):
    scheduler = PipelineScheduler(session_factory=MagicMock(), dispatcher=dispatcher)
    scheduler.scheduler = MagicMock()

    with patch("ingestion.scheduler.settings") as mock_settings:
        mock_settings.SCHEDULER_INTERVAL_SECONDS = 30
        scheduler.start()

    kwargs = scheduler.scheduler.add_job.call_args.kwargs
    assert kwargs["id"] == "pipeline_schedule_scan"
    assert kwargs["max_instances"] == 1
    assert kwargs["coalesce"] is True
    assert kwargs["trigger"].interval == timedelta(seconds=30)
    scheduler.scheduler.start.assert_called_once()
