# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# Shape of data coming OUT of the API. Separate from the ORM model so the
# full extracted text and internal storage paths stay out of listings.
# =============================================================================

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.db.models import DocumentStatus


class HealthResponse(BaseModel):
    """Response for GET /health — liveness plus worker pool state."""

    status: str = "ok"
    version: str
    service: str
    workers: int = Field(description="Number of worker tasks in the pool")
    queued: int = Field(description="Jobs waiting in the in-memory queue")
    in_flight: int = Field(description="Documents currently being processed")


class DocumentResponse(BaseModel):
    """A document processing record."""

    id: int
    file_name: str
    file_size: int
    content_type: str | None = None
    status: DocumentStatus
    retry_count: int = 0
    error_message: str | None = None
    summary: str | None = None
    document_type_name: str | None = None
    document_type_category: str | None = None
    processing_started_at: datetime | None = None
    processing_completed_at: datetime | None = None
    processed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class SubmitResponse(BaseModel):
    """
    Response for POST /documents/{id}/process.

    The document is queued, not processed. Poll GET /documents/{id} until
    the status is "processed" or "failed".
    """

    document_id: int
    status: str = "queued"
    message: str = "Document queued for processing."


class CleanupResponse(BaseModel):
    """Response for POST /admin/cleanup-stuck-documents."""

    message: str
    count: int = Field(description="Number of stuck documents re-queued")
