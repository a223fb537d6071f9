"""
Queue endpoints: schedule trigger, processor invocation, job listing
"""

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from api.dependencies import get_db, get_queue_providers, get_drain_worker
from schemas.api import (
    TriggerRequest,
    ProcessResponse,
    QueueJobResponse,
    QueueJobListResponse,
    PaginationMetadata,
)
from schemas.collection import TriggerResult
from collection.coverage import job_status_label
from collection.dispatcher import DrainWorker
from collection.processor import QueueProcessor
from collection.queue import JobQueue
from collection.trigger import ScheduleTrigger
from models.base import JobStatus
from models.queue_job import QueueJob
from core.exceptions import ConfigurationNotFoundError, PersistenceError
from typing import List, Optional
import uuid
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/queue", tags=["Queue"])


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", f"req_{uuid.uuid4().hex[:12]}")


def _job_response(job: QueueJob) -> QueueJobResponse:
    response = QueueJobResponse.model_validate(job)
    response.label = job_status_label(job)
    return response


@router.post("/trigger", response_model=TriggerResult)
async def trigger(
    request: Request,
    body: Optional[TriggerRequest] = None,
    db: AsyncSession = Depends(get_db)
):
    """
    Expand due configurations into queue jobs.

    An optional forceConfigId runs one configuration regardless of its
    schedule and of the monthly dedup check.
    """
    request_id = _request_id(request)
    force_config_id = body.force_config_id if body else None
    logger.info(f"[{request_id}] POST /queue/trigger force_config_id={force_config_id}")

    try:
        return await ScheduleTrigger(db).run(force_config_id=force_config_id)
    except ConfigurationNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except PersistenceError as e:
        logger.error(f"[{request_id}] Trigger failed: {e}")
        raise HTTPException(status_code=503, detail=e.message)


@router.post("/process", response_model=ProcessResponse)
async def process(
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    providers: List = Depends(get_queue_providers),
    drain_worker: DrainWorker = Depends(get_drain_worker)
):
    """
    Run one processor invocation.

    When more work is waiting, a drain is chained as a background task
    after the response is sent; its outcome never changes this response.
    """
    request_id = _request_id(request)
    logger.info(f"[{request_id}] POST /queue/process")

    try:
        result = await QueueProcessor(db, providers).process_one()
    except PersistenceError as e:
        logger.error(f"[{request_id}] Queue unavailable: {e}")
        raise HTTPException(status_code=503, detail=e.message)

    chained = False
    if result.should_continue:
        background_tasks.add_task(drain_worker.drain)
        chained = True
        logger.info(f"[{request_id}] Chaining a background drain")

    return ProcessResponse(
        processed=result.processed,
        message=result.message,
        job_id=result.job_id,
        status=result.status,
        batch_index=result.batch_index,
        chained=chained
    )


@router.get("/jobs", response_model=QueueJobListResponse)
async def list_jobs(
    request: Request,
    status: Optional[JobStatus] = Query(None, description="Filter by status"),
    config_id: Optional[int] = Query(None, alias="configId", description="Filter by configuration"),
    limit: int = Query(50, ge=1, le=500, description="Page size"),
    offset: int = Query(0, ge=0, description="Offset"),
    db: AsyncSession = Depends(get_db)
):
    """List queue jobs, oldest first, with derived status labels"""
    request_id = _request_id(request)
    logger.info(f"[{request_id}] GET /queue/jobs status={status} config_id={config_id}")

    count_query = select(func.count()).select_from(QueueJob)
    if status is not None:
        count_query = count_query.where(QueueJob.status == status)
    if config_id is not None:
        count_query = count_query.where(QueueJob.config_id == config_id)
    total_items = (await db.execute(count_query)).scalar() or 0

    jobs = await JobQueue(db).list_jobs(status=status, config_id=config_id, limit=limit, offset=offset)

    return QueueJobListResponse(
        jobs=[_job_response(job) for job in jobs],
        pagination=PaginationMetadata(
            total_items=total_items,
            limit=limit,
            offset=offset,
            has_next=offset + len(jobs) < total_items
        )
    )


@router.get("/jobs/{job_id}", response_model=QueueJobResponse)
async def get_job(job_id: int, db: AsyncSession = Depends(get_db)):
    job = await JobQueue(db).get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return _job_response(job)
