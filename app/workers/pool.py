# =============================================================================
# Worker Pool — Long-Lived asyncio Workers Draining the Job Queue
# =============================================================================
#
# submit(id):  record → QUEUED, persist, THEN enqueue
#              (a caller re-reading the record sees QUEUED immediately)
#
# worker loop: dequeue → acquire concurrency cap → pipeline.run → release
#
# CONCURRENCY:
#   One asyncio.Semaphore sized `max_concurrent` (defaults to worker_count).
#   Effective parallelism = min(worker_count, max_concurrent).
#
# SHUTDOWN:
#   stop() closes the queue and cancels every worker. Cancellation reaches
#   in-flight model calls and backoff sleeps. Interrupted documents stay
#   PROCESSING until the stale sweep re-queues them.
# =============================================================================

from __future__ import annotations

import asyncio
import logging

from app.config import settings
from app.db.models import DocumentStatus
from app.db.repository import RecordStore
from app.exceptions import DocumentNotFoundError, QueueClosedError
from app.workers.pipeline import DocumentPipeline
from app.workers.queue import JobQueue

logger = logging.getLogger(__name__)


class WorkerPool:
    """A fixed set of asyncio tasks processing queued documents."""

    def __init__(
        self,
        records: RecordStore,
        pipeline: DocumentPipeline,
        worker_count: int | None = None,
        max_concurrent: int | None = None,
        queue: JobQueue | None = None,
    ) -> None:
        self._records = records
        self._pipeline = pipeline
        self._worker_count = max(1, worker_count or settings.worker_count)
        self._max_concurrent = max(
            1, max_concurrent or settings.max_concurrent_documents or self._worker_count
        )
        self._queue = queue or JobQueue()
        self._semaphore = asyncio.Semaphore(self._max_concurrent)
        self._workers: list[asyncio.Task] = []
        self._in_flight = 0

    # -- Introspection -------------------------------------------------------

    @property
    def worker_count(self) -> int:
        return self._worker_count

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def in_flight(self) -> int:
        """Documents currently inside pipeline.run()."""
        return self._in_flight

    @property
    def queued(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._workers)

    @property
    def accepting(self) -> bool:
        return not self._queue.closed

    # -- Lifecycle -----------------------------------------------------------

    def start(self) -> None:
        """Spawn the worker tasks. Must be called inside a running loop."""
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"document-worker-{i}")
            for i in range(self._worker_count)
        ]
        logger.info(
            "Worker pool started: workers=%d max_concurrent=%d",
            self._worker_count, self._max_concurrent,
        )

    async def stop(self) -> None:
        """Close the queue and cancel every worker."""
        self._queue.close()
        for task in self._workers:
            task.cancel()
        if self._workers:
            await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("Worker pool stopped")

    # -- Submission ----------------------------------------------------------

    async def submit(self, document_id: int) -> int:
        """
        Mark a document QUEUED and hand it to the workers.

        Raises:
            DocumentNotFoundError: No record with this id.
            QueueClosedError: The pool is shutting down.
            InvalidStatusTransitionError: The record cannot be queued.
        """
        if self._queue.closed:
            raise QueueClosedError(f"Worker pool stopped; cannot submit document {document_id}")

        document = await self._records.get(document_id)
        if document is None:
            raise DocumentNotFoundError(document_id)

        document.transition_to(DocumentStatus.QUEUED)
        await self._records.update(document)
        self._queue.enqueue(document_id)

        logger.info("Document %d queued (backlog=%d)", document_id, self._queue.qsize())
        return document_id

    # -- Worker loop ---------------------------------------------------------

    async def _worker(self, index: int) -> None:
        logger.debug("Worker %d started", index)
        async for document_id in self._queue:
            async with self._semaphore:
                self._in_flight += 1
                try:
                    await self._pipeline.run(document_id)
                except Exception:
                    logger.exception(
                        "Worker %d: unhandled error for document %d", index, document_id
                    )
                finally:
                    self._in_flight -= 1
        logger.debug("Worker %d exiting", index)
