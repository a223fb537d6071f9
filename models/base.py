from sqlalchemy import JSON
from sqlalchemy.orm import declarative_base
from sqlalchemy.dialects.postgresql import JSONB
import enum

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


# ============================================================================
# ENUMS
# ============================================================================

class JobStatus(str, enum.Enum):
    """Queue job status"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class EntityCollectionState(str, enum.Enum):
    """Entity-scoped collection session status"""
    PENDING = "pending"
    COLLECTING_PHASE1 = "collecting_phase1"
    COLLECTING_PHASE2 = "collecting_phase2"
    COMPLETED = "completed"
    FAILED = "failed"


class SubscriptionTier(str, enum.Enum):
    """Provider entitlement tier"""
    FREE = "free"
    PRO = "pro"


ACTIVE_JOB_STATUSES = (JobStatus.PENDING, JobStatus.PROCESSING)
TERMINAL_JOB_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED)
TERMINAL_ENTITY_STATES = (EntityCollectionState.COMPLETED, EntityCollectionState.FAILED)
