"""
Health check endpoint with database and queue status
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from api.dependencies import get_db
from schemas.api import HealthCheckResponse
from collection.queue import JobQueue
from core.config import settings
from datetime import datetime
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Queue job counts by status
    """
    db_connected = False
    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except SQLAlchemyError as e:
        logger.error(f"Database connection failed: {str(e)}")

    jobs_by_status = {}
    if db_connected:
        try:
            jobs_by_status = await JobQueue(db).count_by_status()
        except SQLAlchemyError as e:
            logger.error(f"Failed to count queue jobs: {str(e)}")

    return HealthCheckResponse(
        timestamp=datetime.utcnow(),
        database_connected=db_connected,
        jobs_by_status=jobs_by_status,
        scheduler_enabled=settings.SCHEDULER_ENABLED
    )
