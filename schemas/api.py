"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List, Dict, Any
from datetime import datetime
from models.base import JobStatus
from collection.providers.registry import PROVIDER_CATALOGUE


# ============================================================================
# Health Check Schemas
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Health check response model"""
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    database_connected: bool
    jobs_by_status: Dict[str, int] = Field(default_factory=dict)
    scheduler_enabled: bool = False
    # Declared last so the validator sees the fields above
    status: str = Field("healthy", description="Overall system status: healthy, degraded, unhealthy")

    @validator("status", pre=True, always=True)
    def determine_status(cls, v, values):
        """Determine overall health status"""
        if not values.get("database_connected", False):
            return "unhealthy"

        jobs = values.get("jobs_by_status") or {}
        if jobs.get(JobStatus.FAILED.value, 0) > 0:
            return "degraded"  # Failed jobs need a manual reset
        return "healthy"

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "timestamp": "2024-01-15T10:30:00Z",
                "database_connected": True,
                "jobs_by_status": {"pending": 4, "processing": 1, "completed": 12, "failed": 0},
                "scheduler_enabled": True
            }
        }


# ============================================================================
# Queue Schemas
# ============================================================================

class TriggerRequest(BaseModel):
    """Body of a trigger invocation; empty means a normal scheduled tick"""
    force_config_id: Optional[int] = Field(None, alias="forceConfigId", ge=1)

    class Config:
        populate_by_name = True


class QueueJobResponse(BaseModel):
    """Queue job with its derived status label"""
    id: int
    config_id: int
    scope: Dict[str, Any]
    scope_key: str
    status: JobStatus
    batch_index: int
    total_units: int
    retry_count: int
    error_log: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None
    label: str = ""

    class Config:
        from_attributes = True
        use_enum_values = True


class PaginationMetadata(BaseModel):
    """Pagination metadata"""
    total_items: int
    limit: int
    offset: int
    has_next: bool


class QueueJobListResponse(BaseModel):
    jobs: List[QueueJobResponse]
    pagination: PaginationMetadata


class ProcessResponse(BaseModel):
    """Result of one processor invocation, plus whether a drain was chained"""
    processed: int
    message: str
    job_id: Optional[int] = Field(None, alias="jobId")
    status: Optional[JobStatus] = None
    batch_index: Optional[int] = Field(None, alias="batchIndex")
    chained: bool = False

    class Config:
        populate_by_name = True
        use_enum_values = True


# ============================================================================
# Collection Schemas
# ============================================================================

class PromptCreateRequest(BaseModel):
    """Prompts confirmed for an entity during onboarding"""
    prompts: List[str] = Field(..., min_length=1)

    @validator("prompts", each_item=True)
    def clean_prompt(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Prompt cannot be empty")
        return v


class PromptCreateResponse(BaseModel):
    entity_id: int = Field(..., alias="entityId")
    work_item_ids: List[int] = Field(default_factory=list, alias="workItemIds")

    class Config:
        populate_by_name = True


class RefreshRequest(BaseModel):
    """
    On-demand refresh request.

    work_item_ids omitted means every active item (of the entity, if given).
    providers omitted means the entity's entitled providers, or the free set.
    """
    work_item_ids: Optional[List[int]] = Field(None, alias="workItemIds")
    entity_id: Optional[int] = Field(None, alias="entityId")
    providers: Optional[List[str]] = None
    full_refresh: bool = Field(False, alias="fullRefresh")

    @validator("providers")
    def known_providers(cls, v):
        if v is None:
            return v
        unknown = [key for key in v if key not in PROVIDER_CATALOGUE]
        if unknown:
            raise ValueError(f"Unknown providers: {', '.join(unknown)}")
        if not v:
            raise ValueError("At least one provider is required")
        return v

    class Config:
        populate_by_name = True

