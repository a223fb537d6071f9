"""
SQLAlchemy ORM models for database tables.

This package defines the database schema using SQLAlchemy ORM models:

Models:
    base: Base declarative class and shared enums (JobStatus, EntityCollectionState, SubscriptionTier)
    collection_config: Recurring schedules and their scope dimensions
    queue_job: Durable queue of scheduled collection work with a progress cursor
    work_item: Collectable prompts, grouped by scope
    response_record: One collected provider response per (work item, provider)
    entity: Employers and their resumable collection status

Database Schema:
    All models inherit from the Base declarative class. JSON columns use
    JSONB on PostgreSQL and plain JSON on other dialects.

Usage:
    from models import QueueJob, ResponseRecord
    from models.base import JobStatus

Example:
    job = QueueJob(
        config_id=config.id,
        scope={"industry": "Fintech", "country": "US"},
        scope_key="industry=Fintech|country=US",
        total_units=16,
    )
    session.add(job)
    await session.commit()

Relationships:
    - CollectionConfiguration → QueueJob (one-to-many)
    - Entity → WorkItem (one-to-many)
    - WorkItem → ResponseRecord (one-to-many, one per provider)
"""

from models.base import Base, JobStatus, EntityCollectionState, SubscriptionTier
from models.collection_config import CollectionConfiguration
from models.queue_job import QueueJob
from models.entity import Entity
from models.work_item import WorkItem
from models.response_record import ResponseRecord

__all__ = [
    "Base",
    "JobStatus",
    "EntityCollectionState",
    "SubscriptionTier",
    "CollectionConfiguration",
    "QueueJob",
    "Entity",
    "WorkItem",
    "ResponseRecord",
]
