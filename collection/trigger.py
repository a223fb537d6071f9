"""
Schedule Trigger - expand due configurations into queue jobs
"""

from datetime import datetime
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from models.collection_config import CollectionConfiguration
from collection.queue import JobQueue
from collection.scopes import expand_scope, scope_key
from schemas.collection import TriggerResult, SkippedConfiguration
from core.config import settings
from core.exceptions import ConfigurationError, ConfigurationNotFoundError, PersistenceError
import logging

logger = logging.getLogger(__name__)


def ran_this_month(last_run_at: Optional[datetime], now: datetime) -> bool:
    return (
        last_run_at is not None
        and last_run_at.month == now.month
        and last_run_at.year == now.year
    )


class ScheduleTrigger:
    """
    Turns due CollectionConfigurations into pending QueueJobs.

    Ensures:
    - At most one expansion per configuration per calendar month,
      unless the run is forced
    - One job per scope combination, cursor at 0, fixed total_units
    - last_run_at is set only after the configuration's jobs are stored
    - One bad configuration never blocks the others
    """

    def __init__(self, db_session: AsyncSession, total_units: Optional[int] = None):
        self.db = db_session
        self.total_units = total_units or settings.JOB_TOTAL_UNITS

    async def due_configurations(self, now: datetime) -> List[CollectionConfiguration]:
        try:
            result = await self.db.execute(
                select(CollectionConfiguration).where(
                    CollectionConfiguration.is_active.is_(True),
                    CollectionConfiguration.schedule_day == now.day,
                    CollectionConfiguration.schedule_hour == now.hour
                ).order_by(CollectionConfiguration.id)
            )
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceError(
                "Failed to load due configurations",
                context={"operation": "SELECT", "table_name": "collection_configurations"},
                original_exception=e
            )
        return list(result.scalars().all())

    async def run(self, now: Optional[datetime] = None, force_config_id: Optional[int] = None) -> TriggerResult:
        """
        Run one trigger tick.

        Args:
            now: Current UTC time (defaults to utcnow)
            force_config_id: Expand this configuration regardless of its
                schedule, active flag and monthly dedup

        Raises:
            ConfigurationNotFoundError: If the forced configuration does not exist
        """
        now = now or datetime.utcnow()
        logger.info(f"[Scheduler] Checking for jobs at Day: {now.day}, Hour: {now.hour} UTC")

        if force_config_id is not None:
            logger.info(f"[Scheduler] FORCE RUN requested for config: {force_config_id}")
            config = await self.db.get(CollectionConfiguration, force_config_id)
            if config is None:
                raise ConfigurationNotFoundError(
                    "Configuration not found",
                    context={"config_id": force_config_id}
                )
            configs = [config]
        else:
            configs = await self.due_configurations(now)

        result = TriggerResult(configs_checked=len(configs))
        if configs:
            logger.info(f"[Scheduler] Found {len(configs)} configs to trigger.")

        # Rollbacks expire loaded rows, so each configuration is reloaded by id
        for config_id in [c.id for c in configs]:
            config = await self.db.get(CollectionConfiguration, config_id, populate_existing=True)

            if force_config_id is None and ran_this_month(config.last_run_at, now):
                logger.info(f"[Scheduler] Config {config_id} already ran this month.")
                result.skipped.append(SkippedConfiguration(config_id=config_id, reason="already ran this month"))
                continue

            try:
                created = await self._expand(config, now)
            except ConfigurationError as e:
                logger.info(f"[Scheduler] Config {config_id}: {e.message}, skipping.")
                result.skipped.append(SkippedConfiguration(config_id=config_id, reason=e.message))
                continue
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error(f"[Scheduler] Failed to insert jobs for config {config_id}: {e}")
                result.skipped.append(SkippedConfiguration(config_id=config_id, reason="failed to store jobs"))
                continue

            result.jobs_created += created
            result.triggered_config_ids.append(config_id)
            logger.info(f"[Scheduler] Successfully queued {created} jobs for config {config_id}")

        return result

    async def _expand(self, config: CollectionConfiguration, now: datetime) -> int:
        scopes = expand_scope(config.scope_dimensions or {}, config_id=config.id)

        queue = JobQueue(self.db)
        for scope in scopes:
            queue.enqueue(config.id, scope, scope_key(scope), self.total_units)

        config.last_run_at = now
        await self.db.commit()
        return len(scopes)
