"""
Drain worker - keeps the queue moving without an external trigger per batch.

One wake runs processor ticks back to back, each on a fresh database
session, while the previous tick reported should_continue. It stops when
the queue is idle or a tick hit a retryable failure. It also stops when
its time or tick budget runs out; in that case it hands the remaining
backlog to a reschedule hook (fire-and-forget) and returns.
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional, Sequence, Set, Union
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from collection.processor import QueueProcessor
from collection.providers.base import ProviderAdapter
from schemas.collection import DrainResult, ProcessorResult
from core.config import settings
from core.exceptions import CollectionException
import logging

logger = logging.getLogger(__name__)

RescheduleHook = Callable[[], Union[None, Awaitable[None]]]

# Chained drains still running; the event loop only keeps weak references to tasks
_pending_chains: Set["asyncio.Future"] = set()


class DrainWorker:
    """Budgeted loop over QueueProcessor.process_one()"""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        providers: Sequence[ProviderAdapter],
        reschedule: Optional[RescheduleHook] = None,
        time_budget: Optional[float] = None,
        max_ticks: Optional[int] = None,
        batch_size: Optional[int] = None,
        inter_call_delay: Optional[float] = None
    ):
        self.session_factory = session_factory
        self.providers = list(providers)
        self.reschedule = reschedule
        self.time_budget = settings.DRAIN_TIME_BUDGET_SECONDS if time_budget is None else time_budget
        self.max_ticks = max_ticks or settings.DRAIN_MAX_TICKS
        self.batch_size = batch_size
        self.inter_call_delay = inter_call_delay

    def _processor(self, session: AsyncSession) -> QueueProcessor:
        return QueueProcessor(
            session,
            self.providers,
            batch_size=self.batch_size,
            inter_call_delay=self.inter_call_delay
        )

    async def tick(self) -> ProcessorResult:
        """Run one processor invocation on its own session"""
        async with self.session_factory() as session:
            return await self._processor(session).process_one()

    async def drain(self) -> DrainResult:
        """
        Process batches until idle, a failure, or the budget runs out.

        Returns:
            DrainResult; yielded is True when leftover work was handed to
            the reschedule hook
        """
        result = DrainResult()
        started = time.monotonic()

        while True:
            try:
                outcome = await self.tick()
            except CollectionException as e:
                logger.error(f"[Drain] Tick failed: {e}", extra={"error_context": e.to_dict()})
                result.last_message = f"Error: {e.message}"
                break

            result.ticks += 1
            result.units_processed += outcome.processed
            result.last_message = outcome.message

            if not outcome.should_continue:
                break

            elapsed = time.monotonic() - started
            if result.ticks >= self.max_ticks or elapsed >= self.time_budget:
                logger.info(
                    f"[Drain] Budget reached after {result.ticks} ticks ({elapsed:.1f}s), "
                    f"chaining a follow-up drain"
                )
                result.yielded = True
                self._chain()
                break

        logger.info(
            f"[Drain] Finished: ticks={result.ticks}, processed={result.units_processed}, "
            f"yielded={result.yielded}"
        )
        return result

    def _chain(self) -> None:
        """Fire the reschedule hook; its failure never affects this drain"""
        if self.reschedule is None:
            return

        try:
            outcome = self.reschedule()
        except Exception as e:
            logger.error(f"[Drain] Failed to chain execution: {e}")
            return

        if asyncio.iscoroutine(outcome):
            task = asyncio.ensure_future(outcome)
            _pending_chains.add(task)
            task.add_done_callback(_pending_chains.discard)
            task.add_done_callback(_log_chain_failure)


def _log_chain_failure(task: "asyncio.Future") -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error(f"[Drain] Failed to chain execution: {error}")
