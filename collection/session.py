"""
Resumable, entity-scoped collection session.

Drives one entity's onboarding collection in two strictly ordered phases:

    phase 1: external insight gathering (failure is logged and tolerated)
    phase 2: work item x provider fan-out, sequential, skip-existing

The entity row carries the session state (collection_status) and the last
CollectionProgress. Starting or resuming always reads that state first: a
non-terminal session continues where it stopped instead of restarting,
and the skip-existing check makes already-stored units free on resume.
A caller that stops driving the session simply leaves the entity in its
last non-terminal state.
"""

from datetime import datetime
from typing import Callable, List, Optional, Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from collection.collector import ResponseCollector, UnitOutcome, WorkTarget, snapshot
from collection.coverage import entity_coverage_label
from collection.insights import InsightGatherer, HTTPInsightGatherer
from collection.progress import ProgressChannel
from collection.scopes import entity_scope_key
from collection.providers.base import ProviderAdapter
from collection.providers.registry import build_providers_for_tier
from collection.sinks.response_sink import ResponseSink
from models.base import EntityCollectionState, SubscriptionTier, TERMINAL_ENTITY_STATES
from models.entity import Entity
from models.work_item import WorkItem
from schemas.collection import SessionResult
from schemas.progress import CollectionProgress, EntityCollectionStatus
from core.config import settings
from core.exceptions import (
    CollectionException,
    EntityNotFoundError,
    NoWorkItemsError,
    SessionError,
)
import logging

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[SubscriptionTier], List[ProviderAdapter]]

PHASE1_STATES = (None, EntityCollectionState.PENDING, EntityCollectionState.COLLECTING_PHASE1)


class ResumableCollectionSession:
    """
    Session driver for one entity at a time.

    Responsibilities:
    - Phase ordering (insights before provider fan-out)
    - A fixed progress total per session so percentages are well defined
    - Monotonic progress, persisted on the entity and published to observers
    - Terminal transitions: completed (progress cleared) or failed
    """

    def __init__(
        self,
        db_session: AsyncSession,
        insights: Optional[InsightGatherer] = None,
        provider_factory: ProviderFactory = build_providers_for_tier,
        channel: Optional[ProgressChannel] = None,
        inter_call_delay: Optional[float] = None
    ):
        self.db = db_session
        self.insights = insights or HTTPInsightGatherer()
        self.provider_factory = provider_factory
        self.channel = channel
        self.collector = ResponseCollector(
            ResponseSink(db_session),
            inter_call_delay=settings.INTER_CALL_DELAY_SECONDS if inter_call_delay is None else inter_call_delay
        )

    # --------------------------------------------------
    # Public operations
    # --------------------------------------------------

    async def status(self, entity_id: int) -> EntityCollectionStatus:
        entity = await self._load_entity(entity_id)
        providers_per_item = len(self.provider_factory(entity.subscription_tier))
        label = await entity_coverage_label(
            self.db,
            entity_id,
            entity.collection_status,
            providers_per_item=providers_per_item
        )
        return EntityCollectionStatus(
            entity_id=entity.id,
            status=entity.collection_status,
            progress=CollectionProgress.from_stored(entity.collection_progress),
            label=label
        )

    async def start(self, entity_id: int) -> SessionResult:
        """
        Start collection for an entity.

        A session that is already in a non-terminal state is resumed
        rather than restarted from zero.
        """
        entity = await self._load_entity(entity_id)

        if entity.collection_status is not None and entity.collection_status not in TERMINAL_ENTITY_STATES:
            logger.info(f"[Session] Found incomplete collection for entity {entity_id}, resuming")
            return await self._run(entity, resumed=True)

        await self._update_entity(
            entity_id,
            collection_status=EntityCollectionState.PENDING,
            collection_progress=None,
            collection_started_at=datetime.utcnow(),
            collection_completed_at=None
        )
        entity = await self._load_entity(entity_id)
        logger.info(f"[Session] Starting collection for entity {entity_id}")
        return await self._run(entity, resumed=False)

    async def resume(self, entity_id: int) -> SessionResult:
        """
        Resume a non-terminal session.

        Raises:
            SessionError: If there is nothing to resume
        """
        entity = await self._load_entity(entity_id)
        if entity.collection_status is None or entity.collection_status in TERMINAL_ENTITY_STATES:
            raise SessionError(
                "No incomplete collection to resume",
                context={"entity_id": entity_id, "status": getattr(entity.collection_status, "value", None)}
            )

        logger.info(f"[Session] Resuming collection for entity {entity_id} ({entity.collection_status.value})")
        return await self._run(entity, resumed=True)

    # --------------------------------------------------
    # Driver
    # --------------------------------------------------

    async def _run(self, entity: Entity, resumed: bool) -> SessionResult:
        entity_id = entity.id
        entity_name = entity.name
        state = entity.collection_status
        stored_progress = CollectionProgress.from_stored(entity.collection_progress)
        providers = self.provider_factory(entity.subscription_tier)

        result = SessionResult(entity_id=entity_id, status=(state or EntityCollectionState.PENDING).value, resumed=resumed)

        try:
            if state in PHASE1_STATES:
                result.phase1_succeeded = await self._phase1(entity_id, entity_name)
                stored_progress = None

            await self._phase2(entity_id, providers, stored_progress, result)

        except CollectionException as e:
            logger.error(f"[Session] Collection failed for entity {entity_id}: {e.message}",
                         extra={"error_context": e.to_dict()})
            await self._mark_failed(entity_id)
            raise

        except Exception as e:
            logger.exception(f"[Session] Unexpected error collecting for entity {entity_id}")
            await self._mark_failed(entity_id)
            raise SessionError(
                "Unexpected error during collection",
                context={"entity_id": entity_id},
                original_exception=e
            )

        if self.channel is not None:
            self.channel.close(entity_scope_key(entity_id))
        return result

    async def _phase1(self, entity_id: int, entity_name: str) -> bool:
        await self._update_entity(entity_id, collection_status=EntityCollectionState.COLLECTING_PHASE1)

        try:
            await self.insights.gather(entity_id, entity_name)
            return True
        except CollectionException as e:
            logger.error(f"[Session] Search insights error for entity {entity_id}: {e.message}")
            return False

    async def _phase2(
        self,
        entity_id: int,
        providers: Sequence[ProviderAdapter],
        stored_progress: Optional[CollectionProgress],
        result: SessionResult
    ) -> None:
        targets = await self._load_targets(entity_id)
        if not targets:
            raise NoWorkItemsError("No prompts found", context={"entity_id": entity_id})
        if not providers:
            raise SessionError("No providers available", context={"entity_id": entity_id})

        total = len(targets) * len(providers)
        already_completed = 0
        if stored_progress is not None and stored_progress.total > 0:
            total = stored_progress.total
            already_completed = stored_progress.completed

        progress = CollectionProgress(
            current_item_label="Starting AI analysis...",
            current_provider_label="",
            completed=min(already_completed, total),
            total=total
        )
        await self._update_entity(
            entity_id,
            collection_status=EntityCollectionState.COLLECTING_PHASE2,
            collection_progress=progress.to_stored()
        )
        self._publish(entity_id, progress)
        result.status = EntityCollectionState.COLLECTING_PHASE2.value

        logger.info(
            f"[Session] Collecting {len(targets)} prompts x {len(providers)} providers for entity {entity_id} "
            f"(starting at {progress.completed}/{total})"
        )

        position = {target.work_item_id: index for index, target in enumerate(targets)}
        provider_position = {provider.key: index for index, provider in enumerate(providers)}
        state = {"completed": progress.completed}

        async def on_unit(target: WorkTarget, provider: ProviderAdapter, outcome: UnitOutcome) -> None:
            if outcome != UnitOutcome.SKIPPED:
                result.provider_calls += 1

            unit_index = position[target.work_item_id] * len(providers) + provider_position[provider.key]
            state["completed"] = min(max(state["completed"], unit_index + 1), total)

            current = CollectionProgress(
                current_item_label=target.label,
                current_provider_label=provider.display_name,
                completed=state["completed"],
                total=total
            )
            await self._update_entity(entity_id, collection_progress=current.to_stored())
            self._publish(entity_id, current)

        batch = await self.collector.collect(targets, providers, skip_existing=True, on_unit=on_unit)

        result.responses_collected = batch.responses_collected
        result.errors = [f"{e.provider_key}: {e.message}" for e in batch.errors]

        await self._update_entity(
            entity_id,
            collection_status=EntityCollectionState.COMPLETED,
            collection_progress=None,
            collection_completed_at=datetime.utcnow()
        )
        result.status = EntityCollectionState.COMPLETED.value
        logger.info(f"[Session] Collection completed for entity {entity_id}: {batch.summary()}")

    # --------------------------------------------------
    # Persistence helpers
    # --------------------------------------------------

    async def _load_entity(self, entity_id: int) -> Entity:
        entity = await self.db.get(Entity, entity_id, populate_existing=True)
        if entity is None:
            raise EntityNotFoundError("Entity not found", context={"entity_id": entity_id})
        return entity

    async def _load_targets(self, entity_id: int) -> List[WorkTarget]:
        result = await self.db.execute(
            select(WorkItem)
            .where(WorkItem.entity_id == entity_id, WorkItem.is_active.is_(True))
            .order_by(WorkItem.id)
        )
        return snapshot(result.scalars().all())

    async def _update_entity(self, entity_id: int, **values) -> None:
        values["last_updated"] = datetime.utcnow()
        try:
            await self.db.execute(
                update(Entity)
                .where(Entity.id == entity_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise SessionError(
                "Failed to update entity collection state",
                context={"entity_id": entity_id, "operation": "UPDATE", "table_name": "entities"},
                original_exception=e
            )

    async def _mark_failed(self, entity_id: int) -> None:
        try:
            await self._update_entity(entity_id, collection_status=EntityCollectionState.FAILED)
        except SessionError as e:
            logger.error(f"[Session] Could not mark entity {entity_id} as failed: {e.message}")
        if self.channel is not None:
            self.channel.close(entity_scope_key(entity_id))

    def _publish(self, entity_id: int, progress: CollectionProgress) -> None:
        if self.channel is not None:
            self.channel.publish(entity_scope_key(entity_id), progress)
