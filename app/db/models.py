# =============================================================================
# Database Models — SQLAlchemy ORM
# =============================================================================
#
# The document processing record. One row per uploaded document; the
# pipeline reads it, moves it through the status state machine and writes
# the enrichment outputs on the terminal transition.
#
# SCHEMA OVERVIEW:
#
# ┌──────────────────────────────┐
# │  documents                   │
# ├──────────────────────────────┤
# │ id (PK)                      │
# │ file_name / storage_path     │
# │ status                       │  pending → queued → processing
# │ retry_count                  │                      → processed | failed
# │ error_message                │
# │ processing_started_at        │  brackets each processing attempt;
# │ processing_completed_at      │  the stale sweep reads started_at
# │ extracted_text / summary     │
# │ document_type_name/category  │
# │ created_at / updated_at      │
# └──────────────────────────────┘
#
# Column types are portable (no JSONB / vector columns) so the same model
# runs on PostgreSQL in production and SQLite in tests.
# =============================================================================

import enum
from datetime import datetime

from sqlalchemy import DateTime, Enum, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from app.exceptions import InvalidStatusTransitionError


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class."""

    pass


class DocumentStatus(str, enum.Enum):
    """
    Tracks the processing pipeline state for a document.

    State machine:
        PENDING → QUEUED → PROCESSING → PROCESSED
                    ↑  ↺               → FAILED
                    └── re-submission (FAILED, PROCESSED)
                    └── stale sweep   (PROCESSING)
                    └── startup recovery (QUEUED → QUEUED)
    """

    PENDING = "pending"          # Uploaded, never submitted
    QUEUED = "queued"            # Submitted, waiting in the in-memory queue
    PROCESSING = "processing"    # A worker owns it
    PROCESSED = "processed"      # Enrichment finished (possibly degraded)
    FAILED = "failed"            # Pipeline error (see error_message)

    @property
    def is_terminal(self) -> bool:
        return self in (DocumentStatus.PROCESSED, DocumentStatus.FAILED)

    def can_transition_to(self, target: "DocumentStatus") -> bool:
        return target in _ALLOWED_TRANSITIONS[self]


_ALLOWED_TRANSITIONS: dict[DocumentStatus, frozenset[DocumentStatus]] = {
    DocumentStatus.PENDING: frozenset({DocumentStatus.QUEUED}),
    DocumentStatus.QUEUED: frozenset(
        {DocumentStatus.QUEUED, DocumentStatus.PROCESSING}
    ),
    DocumentStatus.PROCESSING: frozenset(
        {DocumentStatus.PROCESSED, DocumentStatus.FAILED, DocumentStatus.QUEUED}
    ),
    DocumentStatus.PROCESSED: frozenset({DocumentStatus.QUEUED}),
    DocumentStatus.FAILED: frozenset({DocumentStatus.QUEUED}),
}


class Document(Base):
    """
    Represents an uploaded document and its processing lifecycle.

    The record store owns persistence; the pipeline mutates fields on
    detached instances and hands them back through `RecordStore.update()`.
    """

    __tablename__ = "documents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # File name as uploaded (the extension drives content extraction)
    file_name: Mapped[str] = mapped_column(String(500), nullable=False)

    # Path relative to settings.storage_path
    storage_path: Mapped[str] = mapped_column(String(1000), nullable=False)

    file_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    content_type: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[DocumentStatus] = mapped_column(
        Enum(DocumentStatus),
        nullable=False,
        default=DocumentStatus.PENDING,
    )

    # Incremented once per failed processing attempt, never decremented
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    processing_started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    processing_completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Enrichment outputs, written only on the terminal transition
    extracted_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    document_type_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    document_type_category: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def transition_to(self, target: DocumentStatus) -> None:
        """Move to `target`, raising if the state machine forbids it."""
        current = self.status or DocumentStatus.PENDING
        if not current.can_transition_to(target):
            raise InvalidStatusTransitionError(current.value, target.value)
        self.status = target

    def __repr__(self) -> str:
        return (
            f"<Document(id={self.id}, file_name='{self.file_name}', "
            f"status={self.status})>"
        )
