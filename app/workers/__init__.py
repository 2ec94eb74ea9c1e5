# =============================================================================
# Workers Package — In-Process Background Processing
# =============================================================================
#   - queue.py: in-memory FIFO of document ids
#   - pipeline.py: per-document status state machine
#   - pool.py: long-lived asyncio workers with a concurrency cap
#   - recovery.py: startup and stale-processing re-queue sweeps
#
# Everything runs on the API server's event loop. The queue is not durable;
# record status in the database is the source of truth on restart.
# =============================================================================
