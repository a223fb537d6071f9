"""
The "collect batch, skip existing" primitive.

Shared by the queue processor, the resumable collection session and the
on-demand refresh. For every (work item, provider) unit it:
1. Optionally skips the unit if a response is already stored
2. Invokes the provider
3. Upserts the result through the response sink

Units run strictly sequentially. A failing unit is recorded and the loop
moves on; nothing raised by a unit escapes collect().
"""

import asyncio
import enum
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence
from collection.metrics import derive_metrics
from collection.providers.base import ProviderAdapter
from collection.sinks.response_sink import ResponseSink
from core.exceptions import CollectionException
from schemas.collection import BatchResult, UnitError
import logging

logger = logging.getLogger(__name__)


class UnitOutcome(str, enum.Enum):
    COLLECTED = "collected"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class WorkTarget:
    """Detached snapshot of a work item, safe to use after a rollback"""
    work_item_id: int
    prompt_text: str
    label: str
    scope_key: str = ""

    @classmethod
    def from_item(cls, item) -> "WorkTarget":
        return cls(
            work_item_id=item.id,
            prompt_text=item.prompt_text,
            label=item.label,
            scope_key=item.scope_key or "",
        )


UnitCallback = Callable[[WorkTarget, ProviderAdapter, UnitOutcome], Awaitable[None]]


def snapshot(work_items: Iterable) -> List[WorkTarget]:
    return [item if isinstance(item, WorkTarget) else WorkTarget.from_item(item) for item in work_items]


class ResponseCollector:
    """Sequential collector over work items × providers"""

    def __init__(self, sink: ResponseSink, inter_call_delay: float = 0.0):
        self.sink = sink
        self.inter_call_delay = inter_call_delay

    async def collect(
        self,
        work_items: Iterable,
        providers: Sequence[ProviderAdapter],
        skip_existing: bool = True,
        on_unit: Optional[UnitCallback] = None
    ) -> BatchResult:
        """
        Collect responses for every unit.

        Args:
            work_items: WorkItem rows or WorkTarget snapshots
            providers: Providers to query for each item
            skip_existing: Skip units that already have a stored response
            on_unit: Awaited after each unit with its outcome

        Returns:
            BatchResult with counters and per-unit errors
        """
        result = BatchResult()
        targets = snapshot(work_items)

        for target in targets:
            for provider in providers:
                outcome = await self.collect_unit(target, provider, skip_existing, result)
                if on_unit is not None:
                    await on_unit(target, provider, outcome)
            result.items_processed += 1

        logger.info(f"Collect pass finished: {result.summary()}")
        return result

    async def collect_unit(
        self,
        target: WorkTarget,
        provider: ProviderAdapter,
        skip_existing: bool,
        result: BatchResult
    ) -> UnitOutcome:
        called_provider = False
        try:
            if skip_existing and await self.sink.exists(target.work_item_id, provider.key):
                result.units_skipped += 1
                logger.debug(f"Skipping {provider.key} for work_item_id={target.work_item_id}: already stored")
                return UnitOutcome.SKIPPED

            called_provider = True
            provider_result = await provider.invoke(target.prompt_text)

            await self.sink.upsert(
                work_item_id=target.work_item_id,
                provider_key=provider.key,
                response_text=provider_result.response_text,
                citations=provider_result.citations,
                metrics=derive_metrics(provider_result)
            )
            result.responses_collected += 1
            return UnitOutcome.COLLECTED

        except CollectionException as e:
            self._record_failure(result, target, provider, e)
            return UnitOutcome.FAILED

        except Exception as e:
            logger.exception(f"Unexpected error collecting {provider.key} for work_item_id={target.work_item_id}")
            self._record_failure(result, target, provider, e)
            return UnitOutcome.FAILED

        finally:
            if called_provider and self.inter_call_delay > 0:
                await asyncio.sleep(self.inter_call_delay)

    def _record_failure(
        self,
        result: BatchResult,
        target: WorkTarget,
        provider: ProviderAdapter,
        error: Exception
    ) -> None:
        message = error.message if isinstance(error, CollectionException) else str(error)
        result.units_failed += 1
        result.errors.append(UnitError(
            work_item_id=target.work_item_id,
            provider_key=provider.key,
            error_type=type(error).__name__,
            message=message
        ))
        logger.error(
            f"Unit failed: {provider.key} for work_item_id={target.work_item_id} ({target.label}): {message}",
            extra={"error_context": error.to_dict() if isinstance(error, CollectionException) else {}}
        )
