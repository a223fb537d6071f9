"""
Pydantic schemas for data validation and serialization.

This package defines Pydantic models for provider results, collection
outcomes, progress records and API request/response validation:

Schemas:
    collection: Provider results, batch/processor/trigger/refresh/session outcomes
    progress: Fixed-shape CollectionProgress and EntityCollectionStatus
    api: API endpoint request/response schemas

Features:
    - Automatic data validation
    - camelCase aliases on the wire, snake_case in code
    - JSON serialization/deserialization
    - OpenAPI schema generation for FastAPI

Usage:
    from schemas.progress import CollectionProgress
    from schemas.collection import ProcessorResult, RefreshResult

Example:
    progress = CollectionProgress(completed=7, total=20)

    # Always fully populated, stored with camelCase keys
    assert progress.to_stored() == {
        "currentItemLabel": "",
        "currentProviderLabel": "",
        "completed": 7,
        "total": 20,
    }

Validation:
    All schemas use Pydantic validators for:
    - Required field checking
    - Counter bounds (completed never exceeds total)
    - Known provider keys
"""

__all__ = [
    "ProviderResult",
    "BatchResult",
    "ProcessorResult",
    "TriggerResult",
    "RefreshResult",
    "SessionResult",
    "CollectionProgress",
    "EntityCollectionStatus",
]
