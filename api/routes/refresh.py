"""
On-demand refresh endpoint
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession
from api.dependencies import get_db, get_progress_channel, get_provider_builder, ProviderBuilder
from schemas.api import RefreshRequest
from schemas.collection import RefreshResult
from collection.progress import ProgressChannel
from collection.providers.registry import FREE_PROVIDERS, provider_keys_for_tier
from collection.refresh import OnDemandRefresh
from models.entity import Entity
import uuid
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Refresh"])


@router.post("/refresh", response_model=RefreshResult)
async def refresh(
    request: Request,
    body: RefreshRequest,
    db: AsyncSession = Depends(get_db),
    build: ProviderBuilder = Depends(get_provider_builder),
    channel: ProgressChannel = Depends(get_progress_channel)
):
    """
    Collect responses for a work item subset (or all items).

    - fullRefresh=false: continue collection, skipping stored units
    - fullRefresh=true: overwrite every unit

    Requested providers are limited to the entity's entitlement.
    """
    request_id = getattr(request.state, "request_id", f"req_{uuid.uuid4().hex[:12]}")
    logger.info(
        f"[{request_id}] POST /refresh entity_id={body.entity_id} "
        f"items={len(body.work_item_ids) if body.work_item_ids is not None else 'all'} "
        f"full_refresh={body.full_refresh}"
    )

    entitled = list(FREE_PROVIDERS)
    if body.entity_id is not None:
        entity = await db.get(Entity, body.entity_id)
        if entity is None:
            raise HTTPException(status_code=404, detail="Entity not found")
        entitled = provider_keys_for_tier(entity.subscription_tier)

    keys = body.providers if body.providers is not None else entitled
    not_entitled = [key for key in keys if key not in entitled]
    if not_entitled:
        raise HTTPException(status_code=403, detail=f"Providers not available on this plan: {', '.join(not_entitled)}")

    run_key = f"refresh:{body.entity_id}" if body.entity_id is not None else f"refresh:{request_id}"
    return await OnDemandRefresh(db, channel=channel).refresh(
        build(keys),
        work_item_ids=body.work_item_ids,
        entity_id=body.entity_id,
        full_refresh=body.full_refresh,
        run_key=run_key
    )
