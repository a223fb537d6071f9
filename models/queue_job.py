from sqlalchemy import Column, Integer, String, Enum, DateTime, Text, Index, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import Base, JSONType, JobStatus


class QueueJob(Base):
    """
    One durable unit of scheduled collection work.

    Purpose:
    - Audit trail of every scheduled collection (rows are never deleted)
    - Progress cursor so a crash never loses or skips work
    - FIFO ordering by updated_at

    Design:
    - batch_index is the cursor into the job's ordered work items
      (0 <= batch_index <= total_units); it only advances after a
      successful batch
    - version and lease_token implement optimistic, leased ownership so
      overlapping processor invocations cannot double-advance the cursor
    """
    __tablename__ = "queue_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    config_id = Column(Integer, ForeignKey("collection_configurations.id"), nullable=False, index=True)

    # Scope descriptor
    scope = Column(JSONType, nullable=False)
    scope_key = Column(String(255), nullable=False, index=True)

    # Progress
    status = Column(Enum(JobStatus), default=JobStatus.PENDING, nullable=False, index=True)
    batch_index = Column(Integer, nullable=False, default=0)
    total_units = Column(Integer, nullable=False)

    # Failure tracking
    retry_count = Column(Integer, nullable=False, default=0)
    error_log = Column(Text, nullable=True)

    # Ownership
    version = Column(Integer, nullable=False, default=0)
    lease_token = Column(String(64), nullable=True)
    lease_expires_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)

    # Relationships
    configuration = relationship("CollectionConfiguration", back_populates="jobs")

    __table_args__ = (
        Index("idx_queue_status_updated", "status", "updated_at"),
        CheckConstraint("batch_index >= 0 AND batch_index <= total_units", name="ck_queue_cursor_bounds"),
        CheckConstraint("total_units > 0", name="ck_queue_total_positive"),
        CheckConstraint("retry_count >= 0", name="ck_queue_retry_non_negative"),
    )
