# =============================================================================
# Document Pipeline — Per-Document Processing State Machine
# =============================================================================
#
# PIPELINE (one run per dequeued document id):
#   1. Load record → QUEUED → PROCESSING, stamp processing_started_at, persist
#   2. Open two independent blob handles; classify and summarize
#      concurrently, wait for both
#   3. Merge results → PROCESSED, stamp processing_completed_at, persist
#   4. Any exception in 1–3 → FAILED, error message, retry_count += 1,
#      stamp processing_completed_at, persist. No automatic re-enqueue.
#
# Enrichment calls never raise (they return degraded results), so step 4
# only sees pipeline-level problems: blob I/O, persistence, bad transitions.
#
# Jobs for unknown ids are dropped (caller error, never retried). Jobs whose
# record is no longer QUEUED are dropped as duplicates: another enqueue of
# the same id already took it.
# =============================================================================

from __future__ import annotations

import asyncio
import logging

from app.db.models import Document, DocumentStatus
from app.db.repository import RecordStore, utcnow
from app.services.enrichment import EnrichmentService
from app.services.parsers import ClassificationResult, SummaryResult
from app.services.storage import BlobStore

logger = logging.getLogger(__name__)


class DocumentPipeline:
    """Runs the processing state machine for one document at a time."""

    def __init__(
        self,
        records: RecordStore,
        blobs: BlobStore,
        enrichment: EnrichmentService,
    ) -> None:
        self._records = records
        self._blobs = blobs
        self._enrichment = enrichment

    async def run(self, document_id: int) -> DocumentStatus | None:
        """
        Process one document.

        Returns the terminal status reached, or None when the job was
        dropped without touching the record. Raises only if the record
        cannot be loaded or the FAILED state cannot be persisted.
        """
        document = await self._records.get(document_id)
        if document is None:
            logger.error("Document %d not found; dropping job", document_id)
            return None
        if document.status != DocumentStatus.QUEUED:
            logger.warning(
                "Document %d is %s, not queued; dropping duplicate job",
                document_id, document.status.value,
            )
            return None

        try:
            # --- Step 1: QUEUED → PROCESSING ---
            document.transition_to(DocumentStatus.PROCESSING)
            document.processing_started_at = utcnow()
            document.processing_completed_at = None
            document = await self._records.update(document)
            logger.info("Processing document %d (%s)", document_id, document.file_name)

            # --- Step 2: concurrent enrichment on independent handles ---
            with (
                await self._blobs.open(document.storage_path) as classify_stream,
                await self._blobs.open(document.storage_path) as summary_stream,
            ):
                classification, summary = await asyncio.gather(
                    self._enrichment.classify(document, classify_stream),
                    self._enrichment.summarize(document, summary_stream),
                )

            # --- Step 3: PROCESSING → PROCESSED ---
            _apply_results(document, classification, summary)
            document.transition_to(DocumentStatus.PROCESSED)
            now = utcnow()
            document.processed_at = now
            document.processing_completed_at = now
            document.error_message = None
            try:
                await self._records.update(document)
            except Exception:
                # The PROCESSED state never landed; fail from PROCESSING
                document.status = DocumentStatus.PROCESSING
                document.processed_at = None
                raise

            logger.info(
                "Processed document %d: category=%s",
                document_id, classification.primary_category,
            )
            return DocumentStatus.PROCESSED

        except Exception as exc:
            # --- Step 4: PROCESSING → FAILED ---
            logger.exception("Processing failed for document %d", document_id)
            await self._mark_failed(document, exc)
            return DocumentStatus.FAILED

    async def _mark_failed(self, document: Document, exc: Exception) -> None:
        # Status is already PROCESSING in memory, even if persisting it failed
        document.transition_to(DocumentStatus.FAILED)
        document.error_message = str(exc) or type(exc).__name__
        document.retry_count = (document.retry_count or 0) + 1
        document.processing_completed_at = utcnow()
        await self._records.update(document)


def _apply_results(
    document: Document,
    classification: ClassificationResult,
    summary: SummaryResult,
) -> None:
    """Merge enrichment results into the record."""
    if summary.summary:
        document.summary = summary.summary

    category = classification.primary_category
    if category:
        document.document_type_name = category
        document.document_type_category = category
        if not document.extracted_text:
            text = f"Classification: {category}"
            if classification.tags:
                text += f"; Tags: {', '.join(classification.tags)}"
            document.extracted_text = text
