import pytest
from unittest.mock import AsyncMock, MagicMock, Mock, patch
from collection.scheduler import CollectionScheduler, DRAIN_JOB_ID, TICK_JOB_ID
from collection.dispatcher import DrainWorker
from schemas.collection import TriggerResult

@pytest.mark.asyncio
async def test_scheduler_initialization():
    scheduler = CollectionScheduler()
    assert scheduler.scheduler is not None
    assert isinstance(scheduler.drain_worker, DrainWorker)
    assert scheduler.drain_worker.reschedule == scheduler.schedule_followup
    assert [p.key for p in scheduler.drain_worker.providers] == ["openai", "perplexity", "google-ai-overviews"]

@pytest.mark.asyncio
async def test_scheduler_tick_runs_trigger_then_drain():
    with patch("collection.scheduler.ScheduleTrigger") as mock_trigger_cls:
        mock_trigger = AsyncMock()
        mock_trigger.run.return_value = TriggerResult(jobs_created=4)
        mock_trigger_cls.return_value = mock_trigger

        mock_session = AsyncMock()
        mock_maker = MagicMock()
        mock_maker.return_value.__aenter__.return_value = mock_session

        drain_worker = AsyncMock()
        scheduler = CollectionScheduler(session_factory=mock_maker, drain_worker=drain_worker)

        await scheduler.run_tick()

        mock_trigger_cls.assert_called_once_with(mock_session)
        assert mock_trigger.run.called
        drain_worker.drain.assert_awaited_once()

@pytest.mark.asyncio
async def test_scheduler_tick_drains_even_if_trigger_fails():
    drain_worker = AsyncMock()
    scheduler = CollectionScheduler(session_factory=MagicMock(), drain_worker=drain_worker)
    scheduler.run_trigger = AsyncMock(side_effect=RuntimeError("database unavailable"))

    await scheduler.run_tick()

    drain_worker.drain.assert_awaited_once()

@pytest.mark.asyncio
async def test_drain_failure_is_logged_not_raised():
    drain_worker = AsyncMock()
    drain_worker.drain.side_effect = RuntimeError("boom")
    scheduler = CollectionScheduler(session_factory=MagicMock(), drain_worker=drain_worker)

    await scheduler.run_drain()

@pytest.mark.asyncio
async def test_schedule_followup_adds_one_shot_job():
    scheduler = CollectionScheduler(session_factory=MagicMock(), drain_worker=AsyncMock())

    scheduler.schedule_followup(delay_seconds=5)

    job = scheduler.scheduler.get_job(DRAIN_JOB_ID)
    assert job is not None
    assert job.func == scheduler.run_drain

@pytest.mark.asyncio
async def test_start_registers_interval_tick():
    scheduler = CollectionScheduler(session_factory=MagicMock(), drain_worker=AsyncMock(), interval_minutes=15)
    scheduler.scheduler = Mock()

    scheduler.start()

    _, kwargs = scheduler.scheduler.add_job.call_args
    assert kwargs["id"] == TICK_JOB_ID
    assert kwargs["trigger"].interval.total_seconds() == 15 * 60
    scheduler.scheduler.start.assert_called_once()
