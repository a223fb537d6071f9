"""
Job queue repository.

All QueueJob state transitions go through this module. Ownership of a
job is explicit: a processor claims the job with a conditional UPDATE on
its version column, receives a lease token, and every later write-back is
conditional on still holding that token. No database lock is held while
provider calls run; an expired lease simply lets another worker pick the
job up again at the same cursor.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, or_
from sqlalchemy.exc import SQLAlchemyError
from models.queue_job import QueueJob
from models.base import JobStatus, ACTIVE_JOB_STATUSES
from core.config import settings
from core.exceptions import JobLeaseError, PersistenceError
import logging
import uuid

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JobLease:
    """A claimed job; plain values so it survives rollbacks of the session"""
    job_id: int
    token: str
    version: int
    scope: Dict[str, Any]
    scope_key: str
    batch_index: int
    total_units: int
    retry_count: int


class JobQueue:
    """
    Durable FIFO of collection jobs.

    Ensures:
    - Oldest non-terminal job first (updated_at, then id)
    - One owner per job at a time (version + lease token)
    - batch_index never decreases and never exceeds total_units
    """

    def __init__(
        self,
        db_session: AsyncSession,
        lease_seconds: Optional[int] = None,
        max_retries: Optional[int] = None
    ):
        self.db = db_session
        self.lease_seconds = lease_seconds if lease_seconds is not None else settings.JOB_LEASE_SECONDS
        self.max_retries = max_retries if max_retries is not None else settings.JOB_MAX_RETRIES

    # --------------------------------------------------
    # Enqueue
    # --------------------------------------------------

    def enqueue(self, config_id: int, scope: Dict[str, Any], scope_key: str, total_units: int) -> QueueJob:
        """Stage a new job in the session; the caller commits."""
        now = datetime.utcnow()
        job = QueueJob(
            config_id=config_id,
            scope=scope,
            scope_key=scope_key,
            status=JobStatus.PENDING,
            batch_index=0,
            total_units=total_units,
            retry_count=0,
            version=0,
            created_at=now,
            updated_at=now,
        )
        self.db.add(job)
        return job

    # --------------------------------------------------
    # Selection and claim
    # --------------------------------------------------

    async def _execute(self, stmt, operation: str, context: Dict[str, Any], commit: bool = False):
        """Run a statement; database errors roll back and become PersistenceError"""
        try:
            result = await self.db.execute(stmt)
            if commit:
                await self.db.commit()
            return result
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceError(
                f"Queue operation {operation} failed",
                context={**context, "operation": operation, "table_name": "queue_jobs"},
                original_exception=e
            )

    async def next_available(self, now: Optional[datetime] = None) -> Optional[QueueJob]:
        """Oldest pending/processing job whose lease is free or expired"""
        now = now or datetime.utcnow()
        result = await self._execute(
            select(QueueJob)
            .where(
                QueueJob.status.in_(ACTIVE_JOB_STATUSES),
                or_(
                    QueueJob.lease_token.is_(None),
                    QueueJob.lease_expires_at.is_(None),
                    QueueJob.lease_expires_at <= now
                )
            )
            .order_by(QueueJob.updated_at.asc(), QueueJob.id.asc())
            .limit(1)
            .execution_options(populate_existing=True),
            "next_available",
            {}
        )
        return result.scalar_one_or_none()

    async def claim(self, job: QueueJob, now: Optional[datetime] = None) -> Optional[JobLease]:
        """
        Take ownership of a job.

        Returns None if another worker changed the row since it was read.
        A pending job flips to processing as part of the claim.
        """
        now = now or datetime.utcnow()
        job_id = job.id
        token = uuid.uuid4().hex
        values = {
            "status": JobStatus.PROCESSING,
            "lease_token": token,
            "lease_expires_at": now + timedelta(seconds=self.lease_seconds),
            "version": QueueJob.version + 1,
        }
        if job.status == JobStatus.PENDING:
            values["updated_at"] = now

        result = await self._execute(
            update(QueueJob)
            .where(QueueJob.id == job_id, QueueJob.version == job.version)
            .values(**values)
            .execution_options(synchronize_session=False),
            "claim",
            {"job_id": job_id},
            commit=True
        )

        if result.rowcount != 1:
            logger.info(f"[Queue] Job {job_id} was claimed by another worker")
            return None

        claimed = await self._execute(
            select(QueueJob).where(QueueJob.id == job_id).execution_options(populate_existing=True),
            "claim",
            {"job_id": job_id}
        )
        claimed = claimed.scalar_one()
        return JobLease(
            job_id=claimed.id,
            token=token,
            version=claimed.version,
            scope=dict(claimed.scope or {}),
            scope_key=claimed.scope_key,
            batch_index=claimed.batch_index,
            total_units=claimed.total_units,
            retry_count=claimed.retry_count,
        )

    async def renew(self, lease: JobLease, now: Optional[datetime] = None) -> None:
        """
        Push the lease expiry out while a batch is still running.

        Called after every unit, so the lease only has to outlive one
        provider call (with its in-call retries).

        Raises:
            JobLeaseError: If another worker took the job over
            PersistenceError: If the database write fails
        """
        now = now or datetime.utcnow()
        result = await self._execute(
            update(QueueJob)
            .where(QueueJob.id == lease.job_id, QueueJob.lease_token == lease.token)
            .values(lease_expires_at=now + timedelta(seconds=self.lease_seconds))
            .execution_options(synchronize_session=False),
            "renew",
            {"job_id": lease.job_id},
            commit=True
        )
        if result.rowcount != 1:
            raise JobLeaseError(
                "Lease lost while the batch was running",
                context={"job_id": lease.job_id, "operation": "renew"}
            )

    async def release(self, lease: JobLease) -> bool:
        """
        Give the job back without changing its state.

        Used after a failed write-back so the next tick can pick the job up
        at the same cursor instead of waiting for the lease to expire.
        Returns False if the release itself could not be written.
        """
        try:
            await self._execute(
                update(QueueJob)
                .where(QueueJob.id == lease.job_id, QueueJob.lease_token == lease.token)
                .values(lease_token=None, lease_expires_at=None, version=QueueJob.version + 1)
                .execution_options(synchronize_session=False),
                "release",
                {"job_id": lease.job_id},
                commit=True
            )
        except PersistenceError as e:
            logger.error(f"[Queue] Could not release Job {lease.job_id}; it stays leased until expiry: {e}")
            return False
        return True

    # --------------------------------------------------
    # Write-backs (all conditional on the lease)
    # --------------------------------------------------

    async def _write_back(self, lease: JobLease, values: Dict[str, Any], operation: str) -> None:
        result = await self._execute(
            update(QueueJob)
            .where(QueueJob.id == lease.job_id, QueueJob.lease_token == lease.token)
            .values(
                lease_token=None,
                lease_expires_at=None,
                version=QueueJob.version + 1,
                updated_at=datetime.utcnow(),
                **values
            )
            .execution_options(synchronize_session=False),
            operation,
            {"job_id": lease.job_id},
            commit=True
        )

        if result.rowcount != 1:
            raise JobLeaseError(
                "Lease lost before write-back",
                context={"job_id": lease.job_id, "operation": operation}
            )

    async def mark_completed(self, lease: JobLease) -> None:
        """Self-healing path: the cursor already reached the end"""
        await self._write_back(
            lease,
            {
                "status": JobStatus.COMPLETED,
                "batch_index": lease.total_units,
                "completed_at": datetime.utcnow(),
            },
            "mark_completed"
        )

    async def record_success(self, lease: JobLease, batch_size: int) -> JobStatus:
        """Advance the cursor after a successful batch and return the new status"""
        next_index = min(lease.batch_index + batch_size, lease.total_units)
        status = JobStatus.COMPLETED if next_index >= lease.total_units else JobStatus.PROCESSING

        values = {"batch_index": next_index, "status": status, "error_log": None}
        if status == JobStatus.COMPLETED:
            values["completed_at"] = datetime.utcnow()

        await self._write_back(lease, values, "record_success")
        return status

    async def record_failure(self, lease: JobLease, error_message: str) -> JobStatus:
        """
        Count a failed batch; the cursor is left untouched.

        Returns FAILED once retry_count exceeds the cap, otherwise PENDING.
        """
        retry_count = lease.retry_count + 1
        status = JobStatus.FAILED if retry_count > self.max_retries else JobStatus.PENDING

        await self._write_back(
            lease,
            {"retry_count": retry_count, "status": status, "error_log": error_message},
            "record_failure"
        )
        return status

    # --------------------------------------------------
    # Queries
    # --------------------------------------------------

    async def count_active(self, exclude_id: Optional[int] = None) -> int:
        """Pending or processing jobs, optionally excluding one"""
        stmt = select(func.count()).select_from(QueueJob).where(QueueJob.status.in_(ACTIVE_JOB_STATUSES))
        if exclude_id is not None:
            stmt = stmt.where(QueueJob.id != exclude_id)
        result = await self._execute(stmt, "count_active", {})
        return result.scalar() or 0

    async def count_by_status(self) -> Dict[str, int]:
        result = await self.db.execute(
            select(QueueJob.status, func.count()).group_by(QueueJob.status)
        )
        counts = {status.value: 0 for status in JobStatus}
        for status, count in result.all():
            counts[status.value if isinstance(status, JobStatus) else str(status)] = count
        return counts

    async def get(self, job_id: int) -> Optional[QueueJob]:
        return await self.db.get(QueueJob, job_id, populate_existing=True)

    async def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        config_id: Optional[int] = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[QueueJob]:
        stmt = select(QueueJob)
        if status is not None:
            stmt = stmt.where(QueueJob.status == status)
        if config_id is not None:
            stmt = stmt.where(QueueJob.config_id == config_id)
        stmt = stmt.order_by(QueueJob.updated_at.asc(), QueueJob.id.asc()).offset(offset).limit(limit)

        result = await self.db.execute(stmt)
        return list(result.scalars().all())
