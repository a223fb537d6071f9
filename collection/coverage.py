"""
User-visible status labels.

Labels are derived from stored counters only. Provider error text never
reaches a label; it stays in logs and error_log.
"""

from typing import Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, distinct
from models.base import EntityCollectionState, JobStatus
from models.queue_job import QueueJob
from models.response_record import ResponseRecord
from models.work_item import WorkItem
from collection.providers.registry import PRO_PROVIDERS

# "Completed" means every prompt has a response from every known provider
EXPECTED_PROVIDERS_PER_ITEM = len(PRO_PROVIDERS)


def coverage_label(
    item_count: int,
    response_count: int,
    state: Optional[EntityCollectionState] = None,
    items_with_full_coverage: Optional[int] = None,
    providers_per_item: int = EXPECTED_PROVIDERS_PER_ITEM
) -> str:
    if state == EntityCollectionState.COLLECTING_PHASE1:
        return "Collecting insights"
    if state == EntityCollectionState.COLLECTING_PHASE2:
        return "Collecting AI"
    if item_count == 0:
        return "Completed" if response_count > 0 else "No prompts"

    if items_with_full_coverage is not None:
        if items_with_full_coverage >= item_count:
            return "Completed"
        return f"Incomplete ({items_with_full_coverage}/{item_count} prompts)"

    # A total response count alone cannot prove every item is covered
    return f"Incomplete ({response_count}/{item_count * providers_per_item})"


def job_status_label(job: QueueJob) -> str:
    progress = f"{job.batch_index}/{job.total_units}"
    if job.status == JobStatus.PENDING:
        return "Queued"
    if job.status == JobStatus.PROCESSING:
        return f"Processing ({progress})"
    if job.status == JobStatus.COMPLETED:
        return "Completed"
    return f"Failed ({progress})"


async def entity_coverage_counts(
    db: AsyncSession,
    entity_id: int,
    providers_per_item: int = EXPECTED_PROVIDERS_PER_ITEM
) -> Tuple[int, int, int]:
    """Return (item_count, response_count, items_with_full_coverage) for an entity"""
    item_count = (await db.execute(
        select(func.count()).select_from(WorkItem).where(
            WorkItem.entity_id == entity_id,
            WorkItem.is_active.is_(True)
        )
    )).scalar() or 0

    per_item = (
        select(
            ResponseRecord.work_item_id,
            func.count(distinct(ResponseRecord.provider_key)).label("providers")
        )
        .join(WorkItem, WorkItem.id == ResponseRecord.work_item_id)
        .where(WorkItem.entity_id == entity_id, WorkItem.is_active.is_(True))
        .group_by(ResponseRecord.work_item_id)
        .subquery()
    )

    row = (await db.execute(
        select(
            func.coalesce(func.sum(per_item.c.providers), 0),
            func.count().filter(per_item.c.providers >= providers_per_item)
        )
    )).one()

    return item_count, int(row[0] or 0), int(row[1] or 0)


async def entity_coverage_label(
    db: AsyncSession,
    entity_id: int,
    state: Optional[EntityCollectionState] = None,
    providers_per_item: int = EXPECTED_PROVIDERS_PER_ITEM
) -> str:
    item_count, response_count, full = await entity_coverage_counts(db, entity_id, providers_per_item)
    return coverage_label(
        item_count,
        response_count,
        state,
        items_with_full_coverage=full,
        providers_per_item=providers_per_item
    )
