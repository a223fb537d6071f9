"""
In-process progress channel.

Workers publish CollectionProgress snapshots; observers subscribe and
receive them on their own asyncio.Queue. Observers in other processes
read the persisted copy on the entity row instead.
"""

import asyncio
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional
from schemas.progress import CollectionProgress
import logging

logger = logging.getLogger(__name__)


class ProgressChannel:
    """Fan-out of progress snapshots keyed by a run identifier"""

    def __init__(self, maxsize: int = 100):
        self.maxsize = maxsize
        self._subscribers: Dict[str, List[asyncio.Queue]] = {}

    def subscribe(self, run_key: str) -> "asyncio.Queue[Optional[CollectionProgress]]":
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.maxsize)
        self._subscribers.setdefault(run_key, []).append(queue)
        return queue

    def unsubscribe(self, run_key: str, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(run_key, [])
        if queue in queues:
            queues.remove(queue)
        if not queues:
            self._subscribers.pop(run_key, None)

    def has_subscribers(self, run_key: str) -> bool:
        return bool(self._subscribers.get(run_key))

    def publish(self, run_key: str, progress: CollectionProgress) -> None:
        for queue in self._subscribers.get(run_key, []):
            if queue.full():
                # Slow observer: keep the newest snapshot
                queue.get_nowait()
            queue.put_nowait(progress)

    def close(self, run_key: str) -> None:
        """Signal end of run with a None sentinel and forget its observers."""
        for queue in self._subscribers.pop(run_key, []):
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(None)

    async def follow(
        self,
        queue: asyncio.Queue,
        is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
        poll_interval: float = 15.0
    ) -> AsyncIterator[CollectionProgress]:
        """
        Yield snapshots from a subscribed queue until the run closes.

        Stops early when is_disconnected reports the observer went away.
        """
        while True:
            try:
                progress = await asyncio.wait_for(queue.get(), timeout=poll_interval)
            except asyncio.TimeoutError:
                if is_disconnected is not None and await is_disconnected():
                    logger.debug("Progress observer disconnected")
                    return
                continue

            if progress is None:
                return
            yield progress
