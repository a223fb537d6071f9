"""
Fixed-shape progress records for collection sessions and refreshes
"""

from pydantic import BaseModel, Field, root_validator
from typing import Optional, Any
from models.base import EntityCollectionState


class CollectionProgress(BaseModel):
    """
    Progress of a collection run.

    Always fully populated: labels default to empty strings and counters
    to zero, so an observer never has to guess what a missing field means.
    Serialised with camelCase keys, which is also the stored JSON shape.
    """

    current_item_label: str = Field("", alias="currentItemLabel")
    current_provider_label: str = Field("", alias="currentProviderLabel")
    completed: int = Field(0, ge=0)
    total: int = Field(0, ge=0)

    @root_validator(skip_on_failure=True)
    def completed_within_total(cls, values):
        if values["completed"] > values["total"]:
            raise ValueError("completed cannot exceed total")
        return values

    @classmethod
    def from_stored(cls, data: Any) -> Optional["CollectionProgress"]:
        """Rebuild progress from a stored JSON blob, filling gaps with defaults"""
        if not isinstance(data, dict):
            return None

        total = data.get("total")
        total = total if isinstance(total, int) and total >= 0 else 0
        completed = data.get("completed")
        completed = completed if isinstance(completed, int) and completed >= 0 else 0

        return cls(
            currentItemLabel=str(data.get("currentItemLabel") or ""),
            currentProviderLabel=str(data.get("currentProviderLabel") or ""),
            completed=min(completed, total),
            total=total,
        )

    def to_stored(self) -> dict:
        return self.dict(by_alias=True)

    @property
    def percent(self) -> float:
        if self.total == 0:
            return 0.0
        return round(self.completed / self.total * 100, 1)

    class Config:
        populate_by_name = True


class EntityCollectionStatus(BaseModel):
    """Status of an entity's resumable collection session"""

    entity_id: int = Field(..., alias="entityId")
    status: Optional[EntityCollectionState] = None
    progress: Optional[CollectionProgress] = None
    label: str = ""

    @property
    def is_resumable(self) -> bool:
        return self.status is not None and self.status not in (
            EntityCollectionState.COMPLETED,
            EntityCollectionState.FAILED,
        )

    class Config:
        populate_by_name = True
        use_enum_values = False
