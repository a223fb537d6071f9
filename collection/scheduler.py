import logging
from datetime import datetime, timedelta
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import async_sessionmaker
from core.config import settings
from core.database import async_session_maker
from collection.dispatcher import DrainWorker
from collection.providers.registry import FREE_PROVIDERS, build_providers
from collection.trigger import ScheduleTrigger

logger = logging.getLogger(__name__)

TICK_JOB_ID = "collection_tick"
DRAIN_JOB_ID = "collection_drain_followup"


class CollectionScheduler:
    """
    Periodic driver of the collection queue.

    Each interval tick runs the schedule trigger and then drains the queue.
    A drain that runs out of budget asks for a one-shot follow-up drain a
    moment later instead of waiting for the next interval.
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        drain_worker: Optional[DrainWorker] = None,
        interval_minutes: Optional[int] = None
    ):
        self.scheduler = AsyncIOScheduler()
        self.SessionLocal = session_factory or async_session_maker
        self.interval_minutes = interval_minutes or settings.SCHEDULER_INTERVAL_MINUTES
        self.drain_worker = drain_worker or DrainWorker(
            self.SessionLocal,
            build_providers(FREE_PROVIDERS),
            reschedule=self.schedule_followup
        )

    async def run_trigger(self):
        async with self.SessionLocal() as session:
            trigger = ScheduleTrigger(session)
            return await trigger.run()

    async def run_tick(self):
        """Job: schedule trigger, then drain"""
        logger.info("[Scheduler] Starting collection tick")
        try:
            result = await self.run_trigger()
            logger.info(f"[Scheduler] Trigger created {result.jobs_created} jobs")
        except Exception as e:
            logger.error(f"[Scheduler] Trigger failed - {e}")

        await self.run_drain()

    async def run_drain(self):
        try:
            await self.drain_worker.drain()
        except Exception as e:
            logger.error(f"[Scheduler] Drain failed - {e}")

    def schedule_followup(self, delay_seconds: float = 1.0) -> None:
        """Fire-and-forget follow-up drain"""
        self.scheduler.add_job(
            self.run_drain,
            trigger=DateTrigger(run_date=datetime.now() + timedelta(seconds=delay_seconds)),
            id=DRAIN_JOB_ID,
            replace_existing=True
        )
        logger.info("[Scheduler] Follow-up drain scheduled")

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.run_tick,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id=TICK_JOB_ID,
            replace_existing=True
        )
        self.scheduler.start()
        logger.info("Collection Scheduler started")

    def stop(self):
        self.scheduler.shutdown()
        logger.info("Collection Scheduler stopped")
