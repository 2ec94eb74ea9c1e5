# =============================================================================
# Record Store — Pluggable Document Record Persistence
# =============================================================================
#
# The pipeline only needs three operations on document records:
#   get(id)                 → Document | None
#   update(document)        → Document   (always stamps updated_at)
#   list_by_status(status)  → list[Document], newest first
#
# ARCHITECTURE:
#   RecordStore (Protocol)
#   ├── SqlAlchemyRecordStore — async SQLAlchemy session per call
#   ├── InMemoryRecordStore   — dict-backed, process-local
#   └── get_record_store()    — factory, reads settings.record_store_backend
#
# Concurrent updates are last-write-wins. No optimistic locking: the caller
# guarantees a document id is in at most one worker's custody at a time.
# =============================================================================

from __future__ import annotations

import asyncio
import itertools
import logging
from datetime import UTC, datetime
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.db.models import Document, DocumentStatus

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class RecordStore(Protocol):
    """Protocol defining the document record store interface."""

    async def get(self, document_id: int) -> Document | None:
        ...

    async def update(self, document: Document) -> Document:
        """Persist all fields of `document` and return the stored record."""
        ...

    async def list_by_status(self, status: DocumentStatus) -> list[Document]:
        ...


# ---------------------------------------------------------------------------
# Implementation 1: SQLAlchemy (PostgreSQL in production)
# ---------------------------------------------------------------------------


class SqlAlchemyRecordStore:
    """
    Record store backed by the `documents` table.

    Each call opens its own short-lived session, so concurrent workers never
    share a session. Returned records are detached (the session factory is
    configured with expire_on_commit=False).
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        if session_factory is None:
            from app.db.engine import get_async_session_factory

            session_factory = get_async_session_factory()
        self._session_factory = session_factory

    async def get(self, document_id: int) -> Document | None:
        async with self._session_factory() as session:
            return await session.get(Document, document_id)

    async def update(self, document: Document) -> Document:
        document.updated_at = utcnow()
        async with self._session_factory() as session:
            try:
                merged = await session.merge(document)
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            return merged

    async def list_by_status(self, status: DocumentStatus) -> list[Document]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Document)
                .where(Document.status == status)
                .order_by(Document.created_at.desc(), Document.id.desc())
            )
            return list(result.scalars().all())

    async def add(self, document: Document) -> Document:
        """Insert a new record (used by seeding scripts and tests)."""
        async with self._session_factory() as session:
            session.add(document)
            await session.commit()
            return document


# ---------------------------------------------------------------------------
# Implementation 2: In-memory
# ---------------------------------------------------------------------------


class InMemoryRecordStore:
    """
    Process-local record store.

    Holds the Document instances themselves, so a caller re-reading a
    record sees every persisted field immediately. Nothing survives a
    restart.
    """

    def __init__(self) -> None:
        self._records: dict[int, Document] = {}
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    async def add(self, document: Document) -> Document:
        async with self._lock:
            if document.id is None:
                document.id = next(self._ids)
            now = utcnow()
            if document.status is None:
                document.status = DocumentStatus.PENDING
            if document.retry_count is None:
                document.retry_count = 0
            if document.file_size is None:
                document.file_size = 0
            document.created_at = document.created_at or now
            document.updated_at = now
            self._records[document.id] = document
            return document

    async def get(self, document_id: int) -> Document | None:
        return self._records.get(document_id)

    async def update(self, document: Document) -> Document:
        if document.id not in self._records:
            raise KeyError(f"Document {document.id} is not stored")
        document.updated_at = utcnow()
        self._records[document.id] = document
        return document

    async def list_by_status(self, status: DocumentStatus) -> list[Document]:
        matching = [d for d in self._records.values() if d.status == status]
        matching.sort(key=lambda d: (d.created_at, d.id), reverse=True)
        return matching


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------


def get_record_store(
    override_backend: str | None = None,
) -> SqlAlchemyRecordStore | InMemoryRecordStore:
    """
    Factory that returns the configured record store backend.

    Reads `record_store_backend` from settings:
    - "sqlalchemy" → SqlAlchemyRecordStore (default)
    - "memory" → InMemoryRecordStore
    """
    backend = override_backend or settings.record_store_backend

    if backend == "memory":
        logger.info("Using in-memory record store")
        return InMemoryRecordStore()

    logger.info("Using SQLAlchemy record store")
    return SqlAlchemyRecordStore()
