# =============================================================================
# Recovery Sweeps — Re-queue Documents the In-Memory Queue Lost
# =============================================================================
#
# The job queue is not durable, so two kinds of record can be orphaned:
#
#   PENDING / QUEUED  — queued (or never submitted) when the process died.
#                       requeue_unfinished_documents() runs once at startup.
#   PROCESSING        — a worker was cancelled or the process died
#                       mid-flight. requeue_stale_documents() re-submits
#                       records PROCESSING for longer than the threshold,
#                       either periodically or via the admin endpoint.
#
# Per-record failures are logged and skipped; one bad record never stops a
# sweep.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta

from app.db.models import DocumentStatus
from app.db.repository import RecordStore, utcnow
from app.workers.pool import WorkerPool

logger = logging.getLogger(__name__)


async def _resubmit(pool: WorkerPool, document_ids: list[int], reason: str) -> int:
    count = 0
    for document_id in document_ids:
        try:
            await pool.submit(document_id)
            count += 1
        except Exception as exc:
            logger.warning(
                "Could not re-queue %s document %d: %s", reason, document_id, exc
            )
    return count


async def requeue_unfinished_documents(pool: WorkerPool, records: RecordStore) -> int:
    """Submit every PENDING and QUEUED record. Returns how many were queued."""
    ids: list[int] = []
    for status in (DocumentStatus.QUEUED, DocumentStatus.PENDING):
        # Oldest first, so recovered jobs keep their original order
        ids.extend(d.id for d in reversed(await records.list_by_status(status)))

    count = await _resubmit(pool, ids, "unfinished")
    if count:
        logger.info("Startup recovery re-queued %d documents", count)
    return count


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they were stored as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


async def requeue_stale_documents(
    pool: WorkerPool,
    records: RecordStore,
    threshold: timedelta,
    now: datetime | None = None,
) -> int:
    """
    Re-submit documents stuck in PROCESSING for longer than `threshold`.

    Records without processing_started_at are treated as stale.
    """
    cutoff = (now or utcnow()) - threshold
    stale = [
        d.id
        for d in reversed(await records.list_by_status(DocumentStatus.PROCESSING))
        if d.processing_started_at is None or _as_utc(d.processing_started_at) < cutoff
    ]
    if not stale:
        return 0

    count = await _resubmit(pool, stale, "stale")
    logger.warning("Stale sweep re-queued %d stuck documents", count)
    return count


async def run_periodic_sweep(
    pool: WorkerPool,
    records: RecordStore,
    interval: float,
    threshold: timedelta,
) -> None:
    """Run requeue_stale_documents every `interval` seconds until cancelled."""
    logger.info(
        "Stale sweep every %.0fs (threshold %s)", interval, threshold
    )
    while True:
        await asyncio.sleep(interval)
        try:
            await requeue_stale_documents(pool, records, threshold)
        except Exception:
            logger.exception("Stale sweep failed")
