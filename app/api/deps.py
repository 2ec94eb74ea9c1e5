# =============================================================================
# API Dependencies — Pipeline Components for Route Handlers
# =============================================================================
#
# The app lifespan builds the record store and worker pool once and parks
# them on app.state. Route handlers receive them through Depends(), which
# tests can swap out with app.dependency_overrides.
# =============================================================================

from __future__ import annotations

from fastapi import HTTPException, Request

from app.db.repository import RecordStore
from app.workers.pool import WorkerPool


def get_record_store(request: Request) -> RecordStore:
    return request.app.state.records


def get_worker_pool(request: Request) -> WorkerPool:
    """Return the running worker pool, or 503 if the app has none."""
    pool = getattr(request.app.state, "pool", None)
    if pool is None:
        raise HTTPException(status_code=503, detail="Worker pool is not running.")
    return pool
