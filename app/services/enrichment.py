# =============================================================================
# Enrichment Service — classify() and summarize()
# =============================================================================
#
# Composes the content extractor, the model invoker and the response
# parsers into the two enrichment operations the pipeline runs
# concurrently for every document:
#
#   extract content → build prompt → invoke model → parse response
#
# Neither operation raises. Any failure (extraction, fatal or exhausted
# model call, parsing) is logged and returned as a DEGRADED result:
#   classify  → primary_category="Error", notes=<message>
#   summarize → summary="Error: <message>"
# so the document still reaches PROCESSED with degraded metadata.
# Cancellation is not absorbed.
#
# Both operations measure their own wall-clock duration.
# =============================================================================

from __future__ import annotations

import logging
import time
from datetime import timedelta
from typing import BinaryIO

from app.config import settings
from app.db.models import Document
from app.services.extractor import extract_content
from app.services.invoker import ModelInvoker
from app.services.parsers import (
    ClassificationResult,
    SummaryResult,
    parse_classification_response,
    parse_summary_response,
)

logger = logging.getLogger(__name__)

ERROR_CATEGORY = "Error"

CLASSIFICATION_PROMPT = (
    "Analyze this document and classify it.\n\n"
    "Document: {file_name}\n"
    "Content:\n{content}\n\n"
    'Respond with JSON: {{"category": "Invoice", "confidence": 0.95, '
    '"tags": ["financial"]}}'
)

SUMMARY_PROMPT = (
    "Summarize this document in 1000 characters.\n\n"
    "Document: {file_name}\n"
    "Content:\n{content}"
)


class EnrichmentService:
    """Runs classification and summarisation for a single document."""

    def __init__(
        self,
        invoker: ModelInvoker,
        classification_model_id: str | None = None,
        summarization_model_id: str | None = None,
        max_content_length: int | None = None,
        csv_max_rows: int | None = None,
    ) -> None:
        self._invoker = invoker
        self._classification_model_id = (
            classification_model_id or settings.classification_model_id
        )
        self._summarization_model_id = (
            summarization_model_id or settings.summarization_model_id
        )
        self._max_content_length = max_content_length or settings.max_content_length
        self._csv_max_rows = csv_max_rows or settings.csv_max_rows

    async def _prompt_content(self, document: Document, stream: BinaryIO) -> str:
        content = await extract_content(
            document.file_name,
            stream,
            max_length=self._max_content_length,
            csv_max_rows=self._csv_max_rows,
        )
        return content.for_prompt()

    async def classify(
        self, document: Document, stream: BinaryIO
    ) -> ClassificationResult:
        """Classify `document`; always returns a result."""
        t0 = time.monotonic()
        try:
            content = await self._prompt_content(document, stream)
            prompt = CLASSIFICATION_PROMPT.format(
                file_name=document.file_name, content=content
            )
            response = await self._invoker.invoke(self._classification_model_id, prompt)
            result = parse_classification_response(response)
        except Exception as exc:
            logger.error(
                "Error classifying document %s: %s", document.id, exc, exc_info=True
            )
            result = ClassificationResult(primary_category=ERROR_CATEGORY, notes=str(exc))

        result.processing_time = timedelta(seconds=time.monotonic() - t0)
        logger.info(
            "Classified document %s as %s in %.2fs",
            document.id, result.primary_category,
            result.processing_time.total_seconds(),
        )
        return result

    async def summarize(self, document: Document, stream: BinaryIO) -> SummaryResult:
        """Summarise `document`; always returns a result."""
        t0 = time.monotonic()
        try:
            content = await self._prompt_content(document, stream)
            prompt = SUMMARY_PROMPT.format(file_name=document.file_name, content=content)
            response = await self._invoker.invoke(self._summarization_model_id, prompt)
            result = parse_summary_response(response)
        except Exception as exc:
            logger.error(
                "Error summarizing document %s: %s", document.id, exc, exc_info=True
            )
            result = SummaryResult(summary=f"Error: {exc}")

        result.processing_time = timedelta(seconds=time.monotonic() - t0)
        logger.info(
            "Summarized document %s (%d key points) in %.2fs",
            document.id, len(result.key_points),
            result.processing_time.total_seconds(),
        )
        return result
