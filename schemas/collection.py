"""
Pydantic schemas for provider results and collection outcomes
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from models.base import JobStatus


class ProviderResult(BaseModel):
    """Uniform result of one provider invocation"""

    response_text: str
    citations: List[Dict[str, Any]] = Field(default_factory=list)


class UnitError(BaseModel):
    """A failed (work item, provider) unit"""

    work_item_id: int = Field(..., alias="workItemId")
    provider_key: str = Field(..., alias="providerKey")
    error_type: str = Field(..., alias="errorType")
    message: str

    class Config:
        populate_by_name = True


class BatchResult(BaseModel):
    """Outcome of one call of the collect primitive"""

    items_processed: int = 0
    responses_collected: int = 0
    units_skipped: int = 0
    units_failed: int = 0
    errors: List[UnitError] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.units_failed == 0

    def summary(self) -> str:
        return (
            f"items={self.items_processed}, collected={self.responses_collected}, "
            f"skipped={self.units_skipped}, failed={self.units_failed}"
        )


class ProcessorResult(BaseModel):
    """Outcome of one queue processor invocation"""

    processed: int = 0
    message: str = "Idle"
    job_id: Optional[int] = Field(None, alias="jobId")
    status: Optional[JobStatus] = None
    batch_index: Optional[int] = Field(None, alias="batchIndex")
    should_continue: bool = Field(False, alias="shouldContinue")

    class Config:
        populate_by_name = True


class DrainResult(BaseModel):
    """Outcome of one drain-worker wake"""

    ticks: int = 0
    units_processed: int = Field(0, alias="unitsProcessed")
    yielded: bool = False
    last_message: str = Field("Idle", alias="lastMessage")

    class Config:
        populate_by_name = True


class SkippedConfiguration(BaseModel):
    config_id: int = Field(..., alias="configId")
    reason: str

    class Config:
        populate_by_name = True


class TriggerResult(BaseModel):
    """Outcome of one schedule trigger tick"""

    configs_checked: int = Field(0, alias="configsChecked")
    jobs_created: int = Field(0, alias="jobsCreated")
    triggered_config_ids: List[int] = Field(default_factory=list, alias="triggeredConfigIds")
    skipped: List[SkippedConfiguration] = Field(default_factory=list)

    class Config:
        populate_by_name = True


class RefreshResult(BaseModel):
    """Outcome of an on-demand refresh across scopes"""

    items_processed: int = Field(0, alias="itemsProcessed")
    responses_collected: int = Field(0, alias="responsesCollected")
    errors: List[str] = Field(default_factory=list)

    class Config:
        populate_by_name = True


class SessionResult(BaseModel):
    """Outcome of driving an entity collection session"""

    entity_id: int = Field(..., alias="entityId")
    status: str
    resumed: bool = False
    phase1_succeeded: Optional[bool] = Field(None, alias="phase1Succeeded")
    provider_calls: int = Field(0, alias="providerCalls")
    responses_collected: int = Field(0, alias="responsesCollected")
    errors: List[str] = Field(default_factory=list)

    class Config:
        populate_by_name = True
