# path: tracking_api/notifier.py
"""Live push of tracking updates to connected WebSocket clients.

`emit` is synchronous and never blocks or raises: it serializes the record
and puts it on a bounded queue. A background task started with the app
drains that queue and fans every message out to the per-connection queues
handed out by `subscribe`. A full queue drops the message with a warning.
"""

import asyncio
import logging
from typing import Optional, Set

from .schemas import EntityKind, TrackedEntity

logger = logging.getLogger("tracking_api.notifier")


class Notifier:
    def __init__(self, maxsize: int = 1000, subscriber_maxsize: int = 100) -> None:
        self._queue: asyncio.Queue[dict] = asyncio.Queue(maxsize=maxsize)
        self._subscriber_maxsize = subscriber_maxsize
        self._subscribers: Set[asyncio.Queue] = set()
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def emit(self, kind: EntityKind, record: TrackedEntity) -> None:
        message = {"type": kind.value, "data": record.model_dump(mode="json", by_alias=True)}
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning("notification queue full, dropping %s update", kind.value)

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue[dict] = asyncio.Queue(maxsize=self._subscriber_maxsize)
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers.discard(queue)

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._dispatch())
            logger.info("notification dispatcher started")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("notification dispatcher stopped")

    async def _dispatch(self) -> None:
        while True:
            message = await self._queue.get()
            for queue in list(self._subscribers):
                try:
                    queue.put_nowait(message)
                except asyncio.QueueFull:
                    logger.warning("subscriber queue full, dropping %s update", message["type"])
            self._queue.task_done()
