"""
Run one collection tick from the command line (cron-friendly):
schedule trigger, then a budgeted drain of the queue.
"""

import argparse
import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import async_session_maker, engine
from core.logging import setup_logging
from collection.dispatcher import DrainWorker
from collection.providers.registry import FREE_PROVIDERS, build_providers
from collection.trigger import ScheduleTrigger
from core.exceptions import CollectionException

setup_logging()
logger = logging.getLogger(__name__)


async def run_tick(force_config_id=None, skip_trigger=False):
    """Trigger due configurations, then drain until idle or out of budget"""
    try:
        if not skip_trigger:
            async with async_session_maker() as session:
                result = await ScheduleTrigger(session).run(force_config_id=force_config_id)
                logger.info(
                    f"Trigger: checked={result.configs_checked}, created={result.jobs_created}, "
                    f"skipped={len(result.skipped)}"
                )

        worker = DrainWorker(async_session_maker, build_providers(FREE_PROVIDERS))
        drained = await worker.drain()
        logger.info(f"Drain: ticks={drained.ticks}, processed={drained.units_processed}, last='{drained.last_message}'")

        if drained.yielded:
            logger.info("Budget reached with work remaining; the next run continues the backlog")

    except CollectionException as e:
        logger.error(f"Collection tick failed: {e}")
        sys.exit(1)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run one collection queue tick")
    parser.add_argument("--force-config-id", type=int, default=None, help="Expand this configuration now")
    parser.add_argument("--drain-only", action="store_true", help="Skip the schedule trigger")
    args = parser.parse_args()

    logger.info(f"Environment: {settings.ENVIRONMENT}")
    asyncio.run(run_tick(force_config_id=args.force_config_id, skip_trigger=args.drain_only))
