"""
Unit tests for on-demand refresh
"""

import pytest
from sqlalchemy import select, func
from collection.collector import WorkTarget
from collection.progress import ProgressChannel
from collection.refresh import OnDemandRefresh
from collection.scopes import ScopeCatalog
from models import ResponseRecord, WorkItem
from core.exceptions import PersistenceError


async def _entity_item_ids(db_session, entity_id):
    result = await db_session.execute(
        select(WorkItem.id).where(WorkItem.entity_id == entity_id).order_by(WorkItem.id)
    )
    return list(result.scalars().all())


async def _response_count(db_session) -> int:
    return (await db_session.execute(select(func.count()).select_from(ResponseRecord))).scalar()


class TestGrouping:

    def test_group_by_scope_keeps_first_seen_order(self):
        targets = [
            WorkTarget(1, "a", "A", "entity:2"),
            WorkTarget(2, "b", "B", "industry=Fintech|country=US"),
            WorkTarget(3, "c", "C", "entity:2"),
        ]

        groups = OnDemandRefresh.group_by_scope(targets)

        assert list(groups) == ["entity:2", "industry=Fintech|country=US"]
        assert [t.work_item_id for t in groups["entity:2"]] == [1, 3]


class TestOnDemandRefresh:
    """Test refresh over a work item selection"""

    @pytest.mark.asyncio
    async def test_refresh_across_scopes(self, db_session, make_entity, providers):
        first = await make_entity(name="Acme", prompt_count=2)
        second = await make_entity(name="Globex", prompt_count=1)
        ids = await _entity_item_ids(db_session, first.id) + await _entity_item_ids(db_session, second.id)

        result = await OnDemandRefresh(db_session, inter_call_delay=0).refresh(providers, work_item_ids=ids)

        assert result.items_processed == 3
        assert result.responses_collected == 9
        assert result.errors == []
        assert await _response_count(db_session) == 9

    @pytest.mark.asyncio
    async def test_continue_mode_skips_existing(self, db_session, make_entity, providers):
        entity = await make_entity(prompt_count=2)
        refresh = OnDemandRefresh(db_session, inter_call_delay=0)

        await refresh.refresh(providers, entity_id=entity.id)
        again = await refresh.refresh(providers, entity_id=entity.id)

        assert again.items_processed == 2
        assert again.responses_collected == 0
        assert all(len(p.calls) == 2 for p in providers)

    @pytest.mark.asyncio
    async def test_full_refresh_overwrites_once(self, db_session, make_entity, providers):
        """Test a full refresh rewrites each unit without duplicating it"""
        entity = await make_entity(prompt_count=2)
        refresh = OnDemandRefresh(db_session, inter_call_delay=0)

        await refresh.refresh(providers, entity_id=entity.id)
        result = await refresh.refresh(providers, entity_id=entity.id, full_refresh=True)

        records = (await db_session.execute(
            select(ResponseRecord).execution_options(populate_existing=True)
        )).scalars().all()

        assert result.responses_collected == 6
        assert len(records) == 6
        assert all(r.attempt_count == 2 for r in records)

    @pytest.mark.asyncio
    async def test_subset_only_touches_selected_items(self, db_session, make_entity, providers):
        entity = await make_entity(prompt_count=3)
        ids = await _entity_item_ids(db_session, entity.id)

        result = await OnDemandRefresh(db_session, inter_call_delay=0).refresh(providers, work_item_ids=ids[1:2])

        assert result.items_processed == 1
        stored = (await db_session.execute(select(ResponseRecord.work_item_id).distinct())).scalars().all()
        assert stored == [ids[1]]

    @pytest.mark.asyncio
    async def test_unit_errors_are_reported_per_scope(self, db_session, make_entity, make_provider):
        entity = await make_entity(prompt_count=1)
        item_id = (await _entity_item_ids(db_session, entity.id))[0]
        providers = [make_provider("openai"), make_provider("deepseek", fail_always=True)]

        result = await OnDemandRefresh(db_session, inter_call_delay=0).refresh(providers, entity_id=entity.id)

        assert result.responses_collected == 1
        assert result.errors == [
            f"entity:{entity.id}: deepseek failed for work item {item_id}: deepseek is unavailable"
        ]

    @pytest.mark.asyncio
    async def test_failing_scope_does_not_stop_siblings(self, db_session, make_entity, providers):
        """Test a scope-level failure is recorded and the next scope still runs"""
        broken = await make_entity(name="Broken", prompt_count=1)
        healthy = await make_entity(name="Healthy", prompt_count=1)
        refresh = OnDemandRefresh(db_session, inter_call_delay=0)

        real_collect = refresh.collector.collect

        async def collect(items, scope_providers, **kwargs):
            if items[0].scope_key == f"entity:{broken.id}":
                raise PersistenceError("database unavailable")
            return await real_collect(items, scope_providers, **kwargs)

        refresh.collector.collect = collect
        result = await refresh.refresh(providers)

        assert result.errors == [f"entity:{broken.id}: database unavailable"]
        assert result.items_processed == 1
        assert result.responses_collected == 3
        assert await _entity_item_ids(db_session, healthy.id)

    @pytest.mark.asyncio
    async def test_refresh_includes_queue_scopes(self, db_session, make_provider):
        await ScopeCatalog(db_session).ensure_work_items({"industry": "Fintech", "country": "US"})
        provider = make_provider("openai")

        result = await OnDemandRefresh(db_session, inter_call_delay=0).refresh([provider])

        assert result.items_processed == 16
        assert len(provider.calls) == 16

    @pytest.mark.asyncio
    async def test_progress_is_published_and_closed(self, db_session, make_entity, providers):
        entity = await make_entity(prompt_count=2)
        channel = ProgressChannel()
        observer = channel.subscribe("refresh:test")

        await OnDemandRefresh(db_session, channel=channel, inter_call_delay=0).refresh(
            providers, entity_id=entity.id, run_key="refresh:test"
        )

        snapshots = []
        while not observer.empty():
            snapshots.append(observer.get_nowait())

        assert snapshots[-1] is None
        assert [s.completed for s in snapshots[:-1]] == list(range(1, 7))
        assert snapshots[0].total == 6
        assert snapshots[0].current_provider_label == "ChatGPT"

    @pytest.mark.asyncio
    async def test_empty_selection_is_a_no_op(self, db_session, providers):
        result = await OnDemandRefresh(db_session, inter_call_delay=0).refresh(providers, work_item_ids=[999])

        assert result.items_processed == 0
        assert result.errors == []
