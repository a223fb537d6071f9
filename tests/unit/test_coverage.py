"""
Unit tests for status labels
"""

import pytest
from collection.coverage import (
    coverage_label,
    entity_coverage_counts,
    entity_coverage_label,
    job_status_label,
)
from collection.sinks.response_sink import ResponseSink
from sqlalchemy import select
from models import QueueJob, WorkItem
from models.base import EntityCollectionState, JobStatus


class TestCoverageLabel:

    def test_phase_states_win(self):
        assert coverage_label(3, 0, EntityCollectionState.COLLECTING_PHASE1) == "Collecting insights"
        assert coverage_label(3, 0, EntityCollectionState.COLLECTING_PHASE2) == "Collecting AI"

    def test_no_prompts(self):
        assert coverage_label(0, 0) == "No prompts"
        assert coverage_label(0, 4) == "Completed"

    def test_full_coverage_per_item(self):
        assert coverage_label(2, 10, items_with_full_coverage=2) == "Completed"

    def test_partial_coverage_per_item(self):
        assert coverage_label(4, 12, items_with_full_coverage=1) == "Incomplete (1/4 prompts)"

    def test_total_only_is_never_completed(self):
        """Test a bare response total cannot claim completion"""
        assert coverage_label(2, 10) == "Incomplete (10/10)"
        assert coverage_label(2, 3, providers_per_item=3) == "Incomplete (3/6)"


class TestJobStatusLabel:

    @pytest.mark.parametrize("status,batch_index,expected", [
        (JobStatus.PENDING, 0, "Queued"),
        (JobStatus.PROCESSING, 5, "Processing (5/16)"),
        (JobStatus.COMPLETED, 16, "Completed"),
        (JobStatus.FAILED, 3, "Failed (3/16)"),
    ])
    def test_labels(self, status, batch_index, expected):
        job = QueueJob(status=status, batch_index=batch_index, total_units=16)
        assert job_status_label(job) == expected


class TestEntityCoverage:

    @pytest.mark.asyncio
    async def test_counts_distinct_providers_per_item(self, db_session, make_entity):
        entity = await make_entity(prompt_count=2)
        items = (await db_session.execute(
            select(WorkItem).where(WorkItem.entity_id == entity.id).order_by(WorkItem.id)
        )).scalars().all()

        sink = ResponseSink(db_session)
        for key in ("openai", "perplexity", "google-ai-overviews"):
            await sink.upsert(items[0].id, key, "text")
        await sink.upsert(items[1].id, "openai", "text")

        assert await entity_coverage_counts(db_session, entity.id, providers_per_item=3) == (2, 4, 1)
        assert await entity_coverage_label(db_session, entity.id, providers_per_item=3) == "Incomplete (1/2 prompts)"

    @pytest.mark.asyncio
    async def test_entity_without_prompts(self, db_session, make_entity):
        entity = await make_entity(prompt_count=0)

        assert await entity_coverage_label(db_session, entity.id) == "No prompts"
