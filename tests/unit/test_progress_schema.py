"""
Unit tests for progress records and the progress channel
"""

import pytest
from unittest.mock import AsyncMock
from pydantic import ValidationError
from collection.progress import ProgressChannel
from schemas.progress import CollectionProgress, EntityCollectionStatus
from models.base import EntityCollectionState


class TestCollectionProgress:
    """Test the fixed-shape progress record"""

    def test_defaults_are_fully_populated(self):
        progress = CollectionProgress()

        assert progress.to_stored() == {
            "currentItemLabel": "",
            "currentProviderLabel": "",
            "completed": 0,
            "total": 0,
        }

    def test_completed_cannot_exceed_total(self):
        with pytest.raises(ValidationError):
            CollectionProgress(completed=5, total=4)

    def test_negative_counters_rejected(self):
        with pytest.raises(ValidationError):
            CollectionProgress(completed=-1, total=4)

    def test_from_stored_fills_gaps(self):
        progress = CollectionProgress.from_stored({"completed": 3, "total": 10})

        assert progress.current_item_label == ""
        assert progress.current_provider_label == ""
        assert progress.percent == 30.0

    def test_from_stored_clamps_and_sanitizes(self):
        progress = CollectionProgress.from_stored({"completed": 12, "total": 10, "currentItemLabel": None})
        assert progress.completed == 10
        assert progress.current_item_label == ""

        broken = CollectionProgress.from_stored({"completed": "x", "total": -3})
        assert (broken.completed, broken.total) == (0, 0)

    def test_from_stored_rejects_non_objects(self):
        assert CollectionProgress.from_stored(None) is None
        assert CollectionProgress.from_stored("7/20") is None

    def test_snake_case_population(self):
        progress = CollectionProgress(current_item_label="Culture", current_provider_label="ChatGPT", completed=1, total=2)
        assert progress.to_stored()["currentItemLabel"] == "Culture"

    def test_percent_of_empty_total(self):
        assert CollectionProgress().percent == 0.0


class TestEntityCollectionStatus:

    def test_resumable_states(self):
        assert EntityCollectionStatus(entity_id=1, status=EntityCollectionState.COLLECTING_PHASE2).is_resumable
        assert not EntityCollectionStatus(entity_id=1, status=EntityCollectionState.COMPLETED).is_resumable
        assert not EntityCollectionStatus(entity_id=1).is_resumable


class TestProgressChannel:

    @pytest.mark.asyncio
    async def test_publish_reaches_subscribers_of_the_key(self):
        channel = ProgressChannel()
        mine = channel.subscribe("entity:1")
        other = channel.subscribe("entity:2")

        channel.publish("entity:1", CollectionProgress(completed=1, total=2))
        channel.close("entity:1")

        assert (await mine.get()).completed == 1
        assert await mine.get() is None
        assert other.empty()

    @pytest.mark.asyncio
    async def test_slow_observer_keeps_newest(self):
        channel = ProgressChannel(maxsize=2)
        queue = channel.subscribe("run")

        for completed in range(1, 5):
            channel.publish("run", CollectionProgress(completed=completed, total=4))

        assert [queue.get_nowait().completed for _ in range(2)] == [3, 4]

    def test_unsubscribe_removes_queue(self):
        channel = ProgressChannel()
        queue = channel.subscribe("run")

        channel.unsubscribe("run", queue)
        channel.publish("run", CollectionProgress())

        assert queue.empty()

    @pytest.mark.asyncio
    async def test_close_forgets_the_run(self):
        channel = ProgressChannel()
        queue = channel.subscribe("entity:1")

        channel.close("entity:1")

        assert channel.has_subscribers("entity:1") is False
        assert await queue.get() is None

    @pytest.mark.asyncio
    async def test_follow_yields_until_close(self):
        channel = ProgressChannel()
        queue = channel.subscribe("entity:1")

        channel.publish("entity:1", CollectionProgress(completed=1, total=3))
        channel.publish("entity:1", CollectionProgress(completed=2, total=3))
        channel.close("entity:1")

        seen = [progress.completed async for progress in channel.follow(queue)]

        assert seen == [1, 2]

    @pytest.mark.asyncio
    async def test_follow_stops_when_observer_disconnects(self):
        channel = ProgressChannel()
        queue = channel.subscribe("entity:1")
        is_disconnected = AsyncMock(return_value=True)

        seen = [p async for p in channel.follow(queue, is_disconnected=is_disconnected, poll_interval=0.01)]

        assert seen == []
        is_disconnected.assert_awaited_once()
