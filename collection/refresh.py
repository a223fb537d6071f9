"""
On-Demand Refresh - user-triggered collection over a work item subset.

Items are grouped by owning scope and each scope goes through the same
collect primitive as the session. Normal mode skips units that already
have a response; full-refresh mode overwrites every unit. A failing scope
is recorded and the remaining scopes still run.
"""

from collections import OrderedDict
from typing import Dict, List, Optional, Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from collection.collector import ResponseCollector, UnitOutcome, WorkTarget, snapshot
from collection.progress import ProgressChannel
from collection.providers.base import ProviderAdapter
from collection.sinks.response_sink import ResponseSink
from models.work_item import WorkItem
from schemas.collection import RefreshResult
from schemas.progress import CollectionProgress
from core.config import settings
from core.exceptions import CollectionException
import logging

logger = logging.getLogger(__name__)


class OnDemandRefresh:
    """Collector for an explicit (or all) work item selection"""

    def __init__(
        self,
        db_session: AsyncSession,
        channel: Optional[ProgressChannel] = None,
        inter_call_delay: Optional[float] = None
    ):
        self.db = db_session
        self.channel = channel
        self.collector = ResponseCollector(
            ResponseSink(db_session),
            inter_call_delay=settings.INTER_CALL_DELAY_SECONDS if inter_call_delay is None else inter_call_delay
        )

    async def select_items(
        self,
        work_item_ids: Optional[Sequence[int]] = None,
        entity_id: Optional[int] = None
    ) -> List[WorkTarget]:
        """Active work items by id, by entity, or all of them; ordered by id"""
        stmt = select(WorkItem).where(WorkItem.is_active.is_(True))
        if work_item_ids is not None:
            stmt = stmt.where(WorkItem.id.in_(list(work_item_ids)))
        if entity_id is not None:
            stmt = stmt.where(WorkItem.entity_id == entity_id)

        result = await self.db.execute(stmt.order_by(WorkItem.id))
        return snapshot(result.scalars().all())

    @staticmethod
    def group_by_scope(targets: Sequence[WorkTarget]) -> Dict[str, List[WorkTarget]]:
        groups: Dict[str, List[WorkTarget]] = OrderedDict()
        for target in targets:
            groups.setdefault(target.scope_key, []).append(target)
        return groups

    async def refresh(
        self,
        providers: Sequence[ProviderAdapter],
        work_item_ids: Optional[Sequence[int]] = None,
        entity_id: Optional[int] = None,
        full_refresh: bool = False,
        run_key: str = "refresh"
    ) -> RefreshResult:
        """
        Collect responses for the selected work items.

        Args:
            providers: Providers the caller is entitled to
            work_item_ids: Explicit subset; None means every active item
            entity_id: Restrict the selection to one entity's items
            full_refresh: Overwrite existing responses instead of skipping them
            run_key: Progress channel key for observers

        Returns:
            RefreshResult with itemsProcessed, responsesCollected, errors
        """
        result = RefreshResult()
        mode = "full refresh" if full_refresh else "continue collection"

        targets = await self.select_items(work_item_ids, entity_id)
        groups = self.group_by_scope(targets)
        total = len(targets) * len(providers)
        completed = 0

        logger.info(
            f"[Refresh] Starting {mode}: {len(targets)} items in {len(groups)} scopes, "
            f"{len(providers)} providers"
        )

        for scope, items in groups.items():
            offset = completed

            async def on_unit(target: WorkTarget, provider: ProviderAdapter, outcome: UnitOutcome) -> None:
                nonlocal completed
                completed += 1
                self._publish(run_key, CollectionProgress(
                    current_item_label=target.label,
                    current_provider_label=provider.display_name,
                    completed=min(completed, total),
                    total=total
                ))

            try:
                batch = await self.collector.collect(
                    items,
                    providers,
                    skip_existing=not full_refresh,
                    on_unit=on_unit
                )
            except CollectionException as e:
                logger.error(f"[Refresh] Scope {scope} failed: {e.message}", extra={"error_context": e.to_dict()})
                result.errors.append(f"{scope}: {e.message}")
                completed = offset + len(items) * len(providers)
                continue
            except Exception as e:
                logger.exception(f"[Refresh] Unexpected error in scope {scope}")
                result.errors.append(f"{scope}: {e}")
                completed = offset + len(items) * len(providers)
                continue

            result.items_processed += batch.items_processed
            result.responses_collected += batch.responses_collected
            result.errors.extend(
                f"{scope}: {error.provider_key} failed for work item {error.work_item_id}: {error.message}"
                for error in batch.errors
            )
            logger.info(f"[Refresh] Scope {scope}: {batch.summary()}")

        if self.channel is not None:
            self.channel.close(run_key)

        logger.info(
            f"[Refresh] Finished {mode}: items={result.items_processed}, "
            f"collected={result.responses_collected}, errors={len(result.errors)}"
        )
        return result

    def _publish(self, run_key: str, progress: CollectionProgress) -> None:
        if self.channel is not None:
            self.channel.publish(run_key, progress)
