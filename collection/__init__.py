"""
Collection pipeline: queue, processor, sessions and refresh.

This package fans prompts out to AI-model providers and stores one
response per (work item, provider):

Modules:
    scopes: Scope expansion and work item templates
    queue: Durable job queue with leased ownership
    processor: One bounded batch per invocation
    dispatcher: Budgeted drain loop over the processor
    trigger: Expands due configurations into queue jobs
    scheduler: APScheduler integration (trigger + drain ticks)
    session: Resumable two-phase collection for one entity
    refresh: On-demand collection over a work item subset
    collector: The shared "collect batch, skip existing" primitive
    coverage: User-visible status labels

Subpackages:
    providers: Provider adapters and the provider catalogue
    sinks: Idempotent response persistence

Usage:
    from collection.processor import QueueProcessor
    from collection.providers import build_providers, FREE_PROVIDERS

Example:
    async with async_session_maker() as session:
        processor = QueueProcessor(session, build_providers(FREE_PROVIDERS))
        result = await processor.process_one()

    print(result.message)

Error Handling:
    Unit failures never escape a processing loop; they are recorded and
    turned into job or session state transitions. See core.exceptions.
"""

__all__ = [
    "JobQueue",
    "QueueProcessor",
    "DrainWorker",
    "ScheduleTrigger",
    "CollectionScheduler",
    "ResumableCollectionSession",
    "OnDemandRefresh",
    "ResponseCollector",
]
