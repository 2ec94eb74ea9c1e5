# =============================================================================
# FastAPI Application — Entry Point
# =============================================================================
#
# Run with:  uvicorn app.main:app
#
# LIFESPAN:
#   startup   configure logging → create tables (SQLAlchemy backend) →
#             build record store, blob store, enrichment, pipeline, pool →
#             start workers → re-queue PENDING/QUEUED records lost with the
#             previous process → start the periodic stale sweep
#   shutdown  cancel the sweep → stop the pool → dispose the DB engine
#
# create_app() accepts pre-built components so tests can run the full
# lifespan against an in-memory store and fake enrichment.
# =============================================================================

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI

from app.api.documents import router as documents_router
from app.config import settings
from app.db.engine import create_tables, dispose_engine
from app.db.repository import RecordStore, SqlAlchemyRecordStore, get_record_store
from app.services.enrichment import EnrichmentService
from app.services.invoker import ModelInvoker
from app.services.storage import BlobStore, LocalBlobStore
from app.workers.pipeline import DocumentPipeline
from app.workers.pool import WorkerPool
from app.workers.recovery import requeue_unfinished_documents, run_periodic_sweep

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def create_app(
    records: RecordStore | None = None,
    blobs: BlobStore | None = None,
    enrichment: EnrichmentService | None = None,
    pool: WorkerPool | None = None,
) -> FastAPI:
    """Build the FastAPI application; components default to the configured ones."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging()
        logger.info(
            "Starting %s v%s | records=%s workers=%d max_concurrent=%d",
            settings.app_name, settings.app_version,
            settings.record_store_backend, settings.worker_count,
            settings.effective_concurrency,
        )

        store = records or get_record_store()
        if isinstance(store, SqlAlchemyRecordStore):
            await create_tables()

        worker_pool = pool
        if worker_pool is None:
            pipeline = DocumentPipeline(
                store,
                blobs or LocalBlobStore(),
                enrichment or EnrichmentService(ModelInvoker()),
            )
            worker_pool = WorkerPool(store, pipeline)

        app.state.records = store
        app.state.pool = worker_pool
        worker_pool.start()
        await requeue_unfinished_documents(worker_pool, store)

        sweep: asyncio.Task | None = None
        if settings.stale_sweep_interval_seconds > 0:
            sweep = asyncio.create_task(
                run_periodic_sweep(
                    worker_pool,
                    store,
                    interval=settings.stale_sweep_interval_seconds,
                    threshold=timedelta(minutes=settings.stale_processing_minutes),
                ),
                name="stale-sweep",
            )

        yield

        logger.info("Shutting down %s", settings.app_name)
        if sweep is not None:
            sweep.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweep
        await worker_pool.stop()
        if isinstance(store, SqlAlchemyRecordStore):
            await dispose_engine()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=(
            "Background document processing: classification and "
            "summarisation of stored documents by a bounded worker pool."
        ),
        lifespan=lifespan,
    )
    app.include_router(documents_router)
    return app


app = create_app()
