"""
Entity collection session endpoints
"""

from typing import Any
from fastapi import APIRouter, Depends, HTTPException, Request
from sse_starlette import ServerSentEvent
from sse_starlette.sse import EventSourceResponse
from sqlalchemy.ext.asyncio import AsyncSession
from api.dependencies import get_db, get_insight_gatherer, get_progress_channel, get_provider_factory
from schemas.api import PromptCreateRequest, PromptCreateResponse
from schemas.collection import SessionResult
from schemas.progress import CollectionProgress, EntityCollectionStatus
from collection.insights import InsightGatherer
from collection.progress import ProgressChannel
from collection.scopes import ScopeCatalog, entity_scope_key
from collection.session import ResumableCollectionSession, ProviderFactory
from models.entity import Entity
from core.exceptions import EntityNotFoundError, NoWorkItemsError, SessionError
import json
import uuid
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/entities", tags=["Collection"])


def get_session_driver(
    db: AsyncSession = Depends(get_db),
    insights: InsightGatherer = Depends(get_insight_gatherer),
    provider_factory: ProviderFactory = Depends(get_provider_factory),
    channel: ProgressChannel = Depends(get_progress_channel)
) -> ResumableCollectionSession:
    return ResumableCollectionSession(
        db,
        insights=insights,
        provider_factory=provider_factory,
        channel=channel
    )


def _raise_http(e: SessionError):
    if isinstance(e, EntityNotFoundError):
        raise HTTPException(status_code=404, detail=e.message)
    if isinstance(e, NoWorkItemsError):
        raise HTTPException(status_code=422, detail=e.message)
    raise HTTPException(status_code=409, detail=e.message)


@router.post("/{entity_id}/prompts", response_model=PromptCreateResponse)
async def add_prompts(
    entity_id: int,
    body: PromptCreateRequest,
    db: AsyncSession = Depends(get_db)
):
    """Register the prompts confirmed for an entity (idempotent)"""
    if await db.get(Entity, entity_id) is None:
        raise HTTPException(status_code=404, detail="Entity not found")

    items = await ScopeCatalog(db).add_entity_prompts(entity_id, body.prompts)
    return PromptCreateResponse(entity_id=entity_id, work_item_ids=[item.id for item in items])


@router.get("/{entity_id}/collection", response_model=EntityCollectionStatus)
async def collection_status(
    entity_id: int,
    driver: ResumableCollectionSession = Depends(get_session_driver)
):
    """Session status, last stored progress and coverage label"""
    try:
        return await driver.status(entity_id)
    except SessionError as e:
        _raise_http(e)


@router.post("/{entity_id}/collection/start", response_model=SessionResult)
async def start_collection(
    request: Request,
    entity_id: int,
    driver: ResumableCollectionSession = Depends(get_session_driver)
):
    """
    Start (or continue an unfinished) collection for an entity.

    Runs synchronously; a caller that disconnects leaves the session in
    its last state and can resume it later.
    """
    request_id = getattr(request.state, "request_id", f"req_{uuid.uuid4().hex[:12]}")
    logger.info(f"[{request_id}] POST /entities/{entity_id}/collection/start")

    try:
        return await driver.start(entity_id)
    except SessionError as e:
        _raise_http(e)


@router.post("/{entity_id}/collection/resume", response_model=SessionResult)
async def resume_collection(
    request: Request,
    entity_id: int,
    driver: ResumableCollectionSession = Depends(get_session_driver)
):
    """Resume an unfinished collection from its stored progress"""
    request_id = getattr(request.state, "request_id", f"req_{uuid.uuid4().hex[:12]}")
    logger.info(f"[{request_id}] POST /entities/{entity_id}/collection/resume")

    try:
        return await driver.resume(entity_id)
    except SessionError as e:
        _raise_http(e)


@router.get("/{entity_id}/progress/stream", response_model=None)
async def progress_stream(
    request: Request,
    entity_id: int,
    db: AsyncSession = Depends(get_db),
    channel: ProgressChannel = Depends(get_progress_channel)
) -> EventSourceResponse:
    """
    Server-sent progress events for an entity's collection session.

    Emits the stored progress first, then every snapshot the running
    session publishes, and a final "done" event when the run ends. A
    session that is not running yields only the stored state.
    """
    run_key = entity_scope_key(entity_id)
    # Subscribe before reading the row so a run ending in between still closes this stream
    queue = channel.subscribe(run_key)

    entity = await db.get(Entity, entity_id)
    if entity is None:
        channel.unsubscribe(run_key, queue)
        raise HTTPException(status_code=404, detail="Entity not found")

    stored = CollectionProgress.from_stored(entity.collection_progress)
    running = EntityCollectionStatus(entity_id=entity_id, status=entity.collection_status).is_resumable

    async def gen() -> Any:
        try:
            if stored is not None:
                yield ServerSentEvent(event="progress", data=json.dumps(stored.to_stored()))
            if running:
                async for progress in channel.follow(queue, is_disconnected=request.is_disconnected):
                    yield ServerSentEvent(event="progress", data=json.dumps(progress.to_stored()))
            yield ServerSentEvent(event="done", data=json.dumps({"entityId": entity_id}))
        finally:
            channel.unsubscribe(run_key, queue)

    return EventSourceResponse(
        gen(),
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )
