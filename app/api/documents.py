# =============================================================================
# Documents API — Submission, Status and Maintenance Endpoints
# =============================================================================
#
# ENDPOINTS:
#   GET  /health                          — liveness + pool state
#   GET  /documents?status=<status>       — list records by status
#   GET  /documents/{id}                  — one record
#   POST /documents/{id}/process          — queue a document (202)
#   POST /admin/cleanup-stuck-documents   — re-queue stale PROCESSING records
#
# POST /documents/{id}/process is also the resubmission path for failed
# documents: FAILED → QUEUED is a valid transition and nothing retries
# automatically. Documents currently PROCESSING get 409; the stale sweep
# owns those.
# =============================================================================

import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Query

from app.api.deps import get_record_store, get_worker_pool
from app.config import Settings, get_settings
from app.db.models import DocumentStatus
from app.db.repository import RecordStore
from app.exceptions import (
    DocumentNotFoundError,
    InvalidStatusTransitionError,
    QueueClosedError,
)
from app.models.responses import (
    CleanupResponse,
    DocumentResponse,
    HealthResponse,
    SubmitResponse,
)
from app.workers.pool import WorkerPool
from app.workers.recovery import requeue_stale_documents

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(
    pool: WorkerPool = Depends(get_worker_pool),
    settings: Settings = Depends(get_settings),
) -> HealthResponse:
    return HealthResponse(
        status="ok" if pool.running else "degraded",
        version=settings.app_version,
        service=settings.app_name,
        workers=pool.worker_count,
        queued=pool.queued,
        in_flight=pool.in_flight,
    )


@router.get(
    "/documents",
    response_model=list[DocumentResponse],
    tags=["Documents"],
    summary="List documents by processing status",
)
async def list_documents(
    status: DocumentStatus = Query(
        default=DocumentStatus.FAILED,
        description="Processing status to filter by",
    ),
    records: RecordStore = Depends(get_record_store),
) -> list[DocumentResponse]:
    documents = await records.list_by_status(status)
    return [DocumentResponse.model_validate(d) for d in documents]


@router.get(
    "/documents/{document_id}",
    response_model=DocumentResponse,
    tags=["Documents"],
)
async def get_document(
    document_id: int,
    records: RecordStore = Depends(get_record_store),
) -> DocumentResponse:
    document = await records.get(document_id)
    if document is None:
        raise HTTPException(status_code=404, detail=f"Document {document_id} not found")
    return DocumentResponse.model_validate(document)


@router.post(
    "/documents/{document_id}/process",
    response_model=SubmitResponse,
    status_code=202,
    tags=["Documents"],
    summary="Queue a document for classification and summarisation",
    description=(
        "Marks the document queued and hands it to the worker pool. Returns "
        "immediately. Failed documents can be resubmitted here."
    ),
)
async def process_document(
    document_id: int,
    records: RecordStore = Depends(get_record_store),
    pool: WorkerPool = Depends(get_worker_pool),
) -> SubmitResponse:
    # In-flight documents are only re-queued by the stale sweep
    document = await records.get(document_id)
    if document is not None and document.status == DocumentStatus.PROCESSING:
        raise HTTPException(
            status_code=409, detail=f"Document {document_id} is being processed"
        )

    try:
        await pool.submit(document_id)
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidStatusTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except QueueClosedError as exc:
        raise HTTPException(
            status_code=503, detail="Worker pool is shutting down."
        ) from exc

    return SubmitResponse(document_id=document_id)


@router.post(
    "/admin/cleanup-stuck-documents",
    response_model=CleanupResponse,
    tags=["Admin"],
)
async def cleanup_stuck_documents(
    records: RecordStore = Depends(get_record_store),
    pool: WorkerPool = Depends(get_worker_pool),
    settings: Settings = Depends(get_settings),
) -> CleanupResponse:
    """Re-queue documents stuck in processing past the stale threshold."""
    threshold = timedelta(minutes=settings.stale_processing_minutes)
    count = await requeue_stale_documents(pool, records, threshold)
    return CleanupResponse(
        message=f"Re-queued {count} stuck documents",
        count=count,
    )
