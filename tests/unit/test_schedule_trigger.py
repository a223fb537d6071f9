"""
Unit tests for the schedule trigger
"""

import pytest
from datetime import datetime
from sqlalchemy import select
from collection.trigger import ScheduleTrigger, ran_this_month
from models import QueueJob, CollectionConfiguration
from models.base import JobStatus
from core.exceptions import ConfigurationNotFoundError

DUE = datetime(2026, 3, 15, 9, 5)


async def _jobs(db_session, config_id=None):
    stmt = select(QueueJob).order_by(QueueJob.id)
    if config_id is not None:
        stmt = stmt.where(QueueJob.config_id == config_id)
    result = await db_session.execute(stmt)
    return list(result.scalars().all())


class TestRanThisMonth:

    def test_same_month(self):
        assert ran_this_month(datetime(2026, 3, 1), DUE) is True

    def test_same_month_previous_year(self):
        assert ran_this_month(datetime(2025, 3, 15), DUE) is False

    def test_never_ran(self):
        assert ran_this_month(None, DUE) is False


class TestScheduleTrigger:
    """Test expansion of due configurations into queue jobs"""

    @pytest.mark.asyncio
    async def test_due_configuration_expands_to_cross_product(self, db_session, make_config):
        config = await make_config()

        result = await ScheduleTrigger(db_session, total_units=16).run(now=DUE)

        jobs = await _jobs(db_session)
        assert result.configs_checked == 1
        assert result.jobs_created == 4
        assert result.triggered_config_ids == [config.id]
        assert len(jobs) == 4
        assert [j.scope for j in jobs] == [
            {"industry": "Fintech", "country": "US"},
            {"industry": "Fintech", "country": "GB"},
            {"industry": "Retail", "country": "US"},
            {"industry": "Retail", "country": "GB"},
        ]
        assert all(j.status == JobStatus.PENDING for j in jobs)
        assert all(j.batch_index == 0 and j.total_units == 16 and j.retry_count == 0 for j in jobs)

        refreshed = await db_session.get(CollectionConfiguration, config.id, populate_existing=True)
        assert refreshed.last_run_at == DUE

    @pytest.mark.asyncio
    async def test_second_tick_in_same_month_is_deduplicated(self, db_session, make_config):
        await make_config()
        trigger = ScheduleTrigger(db_session)

        await trigger.run(now=DUE)
        second = await trigger.run(now=DUE.replace(minute=50))

        assert second.jobs_created == 0
        assert second.skipped[0].reason == "already ran this month"
        assert len(await _jobs(db_session)) == 4

    @pytest.mark.asyncio
    async def test_forced_run_bypasses_dedup_and_schedule(self, db_session, make_config):
        config = await make_config(schedule_day=2, schedule_hour=3, last_run_at=datetime(2026, 3, 2, 3))

        result = await ScheduleTrigger(db_session).run(now=DUE, force_config_id=config.id)

        assert result.jobs_created == 4
        assert result.triggered_config_ids == [config.id]

    @pytest.mark.asyncio
    async def test_forced_run_includes_inactive_configuration(self, db_session, make_config):
        config = await make_config(is_active=False)

        result = await ScheduleTrigger(db_session).run(now=DUE, force_config_id=config.id)

        assert result.jobs_created == 4

    @pytest.mark.asyncio
    async def test_forced_run_of_unknown_configuration_raises(self, db_session):
        with pytest.raises(ConfigurationNotFoundError):
            await ScheduleTrigger(db_session).run(now=DUE, force_config_id=999)

    @pytest.mark.asyncio
    async def test_empty_scope_is_skipped_and_others_continue(self, db_session, make_config):
        """Test one bad configuration never blocks the rest"""
        empty = await make_config(scope_dimensions={"industry": ["Fintech"], "country": []})
        good = await make_config(scope_dimensions={"industry": ["Retail"]})

        result = await ScheduleTrigger(db_session).run(now=DUE)

        assert result.configs_checked == 2
        assert result.triggered_config_ids == [good.id]
        assert result.skipped[0].config_id == empty.id
        assert result.skipped[0].reason == "Configuration has empty scope lists"
        assert await _jobs(db_session, empty.id) == []
        assert len(await _jobs(db_session, good.id)) == 1

        refreshed = await db_session.get(CollectionConfiguration, empty.id, populate_existing=True)
        assert refreshed.last_run_at is None

    @pytest.mark.asyncio
    async def test_configurations_not_due_are_ignored(self, db_session, make_config):
        await make_config(schedule_hour=10)
        await make_config(is_active=False)

        result = await ScheduleTrigger(db_session).run(now=DUE)

        assert result.configs_checked == 0
        assert result.jobs_created == 0
        assert await _jobs(db_session) == []
