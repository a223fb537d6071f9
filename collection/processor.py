"""
Queue Processor - one bounded unit of work per invocation.

Each call to process_one():
1. Selects the oldest pending/processing job with a free lease
2. Claims it (pending flips to processing)
3. Self-heals a job whose cursor already reached the end
4. Otherwise collects exactly one batch of work items starting at the
   cursor, fanning each item out over the provider set and renewing the
   lease after every unit
5. Writes the outcome back: advance on success, retry or fail otherwise

Failures inside the batch never escape: they become a state transition.
A failed write-back releases the lease so the next tick retries the
same cursor.
"""

from typing import Optional, Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from collection.collector import ResponseCollector, snapshot
from collection.providers.base import ProviderAdapter
from collection.queue import JobQueue, JobLease
from collection.scopes import ScopeCatalog
from collection.sinks.response_sink import ResponseSink
from models.base import JobStatus
from schemas.collection import ProcessorResult, BatchResult, UnitError
from core.config import settings
from core.exceptions import CollectionException, JobLeaseError, PersistenceError
import logging

logger = logging.getLogger(__name__)


class QueueProcessor:
    """
    Executes one batch of the oldest non-terminal queue job.

    Responsibilities:
    - Claim ownership before doing any work
    - Never advance the cursor past total_units
    - Convert batch failures into retry / terminal-fail transitions
    - Report whether the caller should keep draining
    """

    def __init__(
        self,
        db_session: AsyncSession,
        providers: Sequence[ProviderAdapter],
        batch_size: Optional[int] = None,
        inter_call_delay: Optional[float] = None,
        queue: Optional[JobQueue] = None
    ):
        self.db = db_session
        self.providers = list(providers)
        self.batch_size = batch_size or settings.PROCESSOR_BATCH_SIZE
        self.queue = queue or JobQueue(db_session)
        self.catalog = ScopeCatalog(db_session)
        self.collector = ResponseCollector(
            ResponseSink(db_session),
            inter_call_delay=settings.INTER_CALL_DELAY_SECONDS if inter_call_delay is None else inter_call_delay
        )

    async def process_one(self) -> ProcessorResult:
        """
        Process at most one batch of one job.

        Returns:
            ProcessorResult; should_continue tells a drain loop whether
            another tick is worthwhile right away
        """
        job = await self.queue.next_available()
        if job is None:
            logger.debug("[Processor] No pending or processing jobs")
            return ProcessorResult()

        lease = await self.queue.claim(job)
        if lease is None:
            return ProcessorResult(
                message=f"Job {job.id} claimed elsewhere",
                job_id=job.id,
                should_continue=True
            )

        logger.info(
            f"[Processor] Processing Job {lease.job_id}: {lease.scope_key} "
            f"(Batch {lease.batch_index}/{lease.total_units})"
        )

        try:
            if lease.batch_index >= lease.total_units:
                await self.queue.mark_completed(lease)
                logger.info(f"[Processor] Job {lease.job_id} was already done, marked completed")
                return await self._result(
                    lease,
                    JobStatus.COMPLETED,
                    processed=0,
                    message="Marked completed (was already done)",
                    batch_index=lease.total_units
                )

            batch = await self._run_batch(lease)

            if batch.succeeded:
                status = await self.queue.record_success(lease, self.batch_size)
                next_index = min(lease.batch_index + self.batch_size, lease.total_units)
                logger.info(f"[Processor] Success. New status: {status.value}, Next Offset: {next_index}")
                return await self._result(
                    lease,
                    status,
                    processed=1,
                    message=f"Processed batch {lease.batch_index} for Job {lease.job_id}",
                    batch_index=next_index
                )

            error_message = "; ".join(
                f"{e.provider_key}: {e.message}" for e in batch.errors
            ) or "Batch failed"
            return await self._fail(lease, error_message)

        except JobLeaseError as e:
            logger.warning(f"[Processor] {e.message} for Job {lease.job_id}; leaving it to the new owner")
            return ProcessorResult(
                message=f"Lease lost for Job {lease.job_id}",
                job_id=lease.job_id,
                should_continue=True
            )

        except PersistenceError as e:
            logger.error(f"[Processor] Could not record the outcome of Job {lease.job_id}: {e}")
            await self.queue.release(lease)
            return ProcessorResult(
                message=f"Error: {e.message}",
                job_id=lease.job_id,
                batch_index=lease.batch_index,
                should_continue=False
            )

    async def _run_batch(self, lease: JobLease) -> BatchResult:
        """Collect the work items in [batch_index, batch_index + batch_size)"""
        try:
            work_items = await self.catalog.ensure_work_items(lease.scope)
        except CollectionException as e:
            await self.db.rollback()
            logger.error(f"[Processor] Could not resolve work items for Job {lease.job_id}: {e.message}")
            return BatchResult(units_failed=1, errors=[UnitError(
                work_item_id=0,
                provider_key="-",
                error_type=type(e).__name__,
                message=e.message
            )])

        end = min(lease.batch_index + self.batch_size, lease.total_units)
        targets = snapshot(work_items[lease.batch_index:end])
        if not targets:
            logger.warning(
                f"[Processor] Job {lease.job_id} has no work items at offset {lease.batch_index} "
                f"({len(work_items)} available)"
            )
            return BatchResult()

        async def keep_lease(target, provider, outcome) -> None:
            await self.queue.renew(lease)

        logger.info(f"[Processor] Collecting {len(targets)} item(s) x {len(self.providers)} provider(s)")
        return await self.collector.collect(targets, self.providers, skip_existing=True, on_unit=keep_lease)

    async def _fail(self, lease: JobLease, error_message: str) -> ProcessorResult:
        logger.error(f"[Processor] Error processing job {lease.job_id}: {error_message}")
        status = await self.queue.record_failure(lease, error_message)
        if status == JobStatus.FAILED:
            logger.error(
                f"[Processor] Job {lease.job_id} exceeded {self.queue.max_retries} retries, marked failed"
            )
        return ProcessorResult(
            processed=0,
            message=f"Error: {error_message}",
            job_id=lease.job_id,
            status=status,
            batch_index=lease.batch_index,
            should_continue=False
        )

    async def _result(
        self,
        lease: JobLease,
        status: JobStatus,
        processed: int,
        message: str,
        batch_index: int
    ) -> ProcessorResult:
        if status == JobStatus.PROCESSING:
            should_continue = True
        else:
            remaining = await self.queue.count_active(exclude_id=lease.job_id)
            should_continue = remaining > 0
            if should_continue:
                logger.info(f"[Processor] Job finished, but {remaining} active jobs remain")

        return ProcessorResult(
            processed=processed,
            message=message,
            job_id=lease.job_id,
            status=status,
            batch_index=batch_index,
            should_continue=should_continue
        )

