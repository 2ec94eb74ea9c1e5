# =============================================================================
# Unit Tests — Recovery Sweeps
# =============================================================================

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

from app.db.models import Document, DocumentStatus
from app.db.repository import InMemoryRecordStore
from app.exceptions import DocumentNotFoundError
from app.workers.pool import WorkerPool
from app.workers.recovery import (
    requeue_stale_documents,
    requeue_unfinished_documents,
    run_periodic_sweep,
)

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


async def _add(records, status, started=None, name="doc"):
    return await records.add(
        Document(
            file_name=name,
            storage_path=name,
            status=status,
            processing_started_at=started,
        )
    )


class TestRequeueUnfinished:
    """Startup recovery of PENDING and QUEUED records."""

    def test_pending_and_queued_are_resubmitted(self):
        async def scenario():
            records = InMemoryRecordStore()
            pool = WorkerPool(records, AsyncMock(), worker_count=1)
            queued = await _add(records, DocumentStatus.QUEUED)
            pending = await _add(records, DocumentStatus.PENDING)
            done = await _add(records, DocumentStatus.PROCESSED)
            count = await requeue_unfinished_documents(pool, records)
            return count, pool.queued, [
                (await records.get(d.id)).status for d in (queued, pending, done)
            ]

        count, backlog, statuses = _run(scenario())
        assert count == 2
        assert backlog == 2
        assert statuses == [
            DocumentStatus.QUEUED,
            DocumentStatus.QUEUED,
            DocumentStatus.PROCESSED,
        ]

    def test_per_record_failure_is_skipped(self):
        async def scenario():
            records = InMemoryRecordStore()
            await _add(records, DocumentStatus.PENDING)
            await _add(records, DocumentStatus.PENDING)
            pool = AsyncMock()
            pool.submit.side_effect = [DocumentNotFoundError(1), 2]
            return await requeue_unfinished_documents(pool, records)

        assert _run(scenario()) == 1


class TestRequeueStale:
    """Stale PROCESSING records past the threshold are re-queued."""

    def test_only_stale_records_are_requeued(self):
        async def scenario():
            records = InMemoryRecordStore()
            pool = WorkerPool(records, AsyncMock(), worker_count=1)
            stale = await _add(records, DocumentStatus.PROCESSING, NOW - timedelta(minutes=45))
            fresh = await _add(records, DocumentStatus.PROCESSING, NOW - timedelta(minutes=5))
            count = await requeue_stale_documents(
                pool, records, timedelta(minutes=30), now=NOW
            )
            return count, (await records.get(stale.id)).status, (await records.get(fresh.id)).status

        assert _run(scenario()) == (1, DocumentStatus.QUEUED, DocumentStatus.PROCESSING)

    def test_naive_timestamps_are_treated_as_utc(self):
        async def scenario():
            records = InMemoryRecordStore()
            pool = WorkerPool(records, AsyncMock(), worker_count=1)
            naive = (NOW - timedelta(hours=2)).replace(tzinfo=None)
            await _add(records, DocumentStatus.PROCESSING, naive)
            return await requeue_stale_documents(pool, records, timedelta(minutes=30), now=NOW)

        assert _run(scenario()) == 1

    def test_missing_start_time_counts_as_stale(self):
        async def scenario():
            records = InMemoryRecordStore()
            pool = WorkerPool(records, AsyncMock(), worker_count=1)
            await _add(records, DocumentStatus.PROCESSING, None)
            return await requeue_stale_documents(pool, records, timedelta(minutes=30), now=NOW)

        assert _run(scenario()) == 1

    def test_nothing_stale(self):
        async def scenario():
            records = InMemoryRecordStore()
            pool = AsyncMock()
            await _add(records, DocumentStatus.PROCESSED)
            count = await requeue_stale_documents(pool, records, timedelta(minutes=30), now=NOW)
            return count, pool.submit.await_count

        assert _run(scenario()) == (0, 0)


class TestPeriodicSweep:
    """The background sweep keeps running until cancelled."""

    def test_sweep_runs_repeatedly_and_survives_errors(self):
        async def scenario():
            records = AsyncMock()
            records.list_by_status.side_effect = [RuntimeError("db down"), [], []]
            task = asyncio.create_task(
                run_periodic_sweep(AsyncMock(), records, 0.001, timedelta(minutes=30))
            )
            for _ in range(200):
                if records.list_by_status.await_count >= 3:
                    break
                await asyncio.sleep(0.005)
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            return records.list_by_status.await_count

        assert _run(scenario()) >= 3
