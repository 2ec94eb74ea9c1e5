# =============================================================================
# Job Queue — In-Memory FIFO Hand-off From Producers to Workers
# =============================================================================
#
#   enqueue(id)  → append, never blocks, never rejects, never deduplicates
#   dequeue()    → wait for the next id (FIFO) or None once closed
#   close()      → wake every waiting worker with the closed signal
#
# Each enqueued id is delivered to exactly one worker: an id is either
# handed straight to the longest-waiting worker's future or appended to the
# backlog, never both. Delivery order is submission order.
#
# NOT DURABLE: ids still queued at close() (or at process exit) are lost.
# Their records stay QUEUED and the startup recovery sweep resubmits them.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import AsyncIterator

from app.exceptions import QueueClosedError

logger = logging.getLogger(__name__)


class JobQueue:
    """Unbounded FIFO of document ids shared by all workers."""

    def __init__(self) -> None:
        self._items: deque[int] = deque()
        self._waiters: deque[asyncio.Future[int | None]] = deque()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return len(self._items)

    def enqueue(self, document_id: int) -> None:
        """
        Append `document_id`, or hand it directly to a waiting worker.

        Raises:
            QueueClosedError: The queue has been closed.
        """
        if self._closed:
            raise QueueClosedError(f"Queue closed; cannot enqueue document {document_id}")
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(document_id)
                return
        self._items.append(document_id)

    async def dequeue(self) -> int | None:
        """Return the next document id, or None once the queue is closed."""
        if self._items:
            return self._items.popleft()
        if self._closed:
            return None

        waiter: asyncio.Future[int | None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            return await waiter
        except asyncio.CancelledError:
            # An id handed over just before cancellation goes back to the head
            if waiter.done() and not waiter.cancelled() and waiter.result() is not None:
                self._items.appendleft(waiter.result())
            raise

    def close(self) -> None:
        """Close the queue and release every blocked dequeue()."""
        if self._closed:
            return
        self._closed = True
        dropped = len(self._items)
        self._items.clear()
        if dropped:
            logger.warning("Job queue closed with %d pending jobs dropped", dropped)
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)

    def __aiter__(self) -> AsyncIterator[int]:
        return self._drain()

    async def _drain(self) -> AsyncIterator[int]:
        while True:
            document_id = await self.dequeue()
            if document_id is None:
                return
            yield document_id
