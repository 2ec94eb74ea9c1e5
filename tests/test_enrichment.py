# =============================================================================
# Unit Tests — Enrichment Service
# =============================================================================
#
# classify() and summarize() with a mocked invoker. Failures anywhere in
# extract → invoke → parse must come back as degraded results.
# =============================================================================

from __future__ import annotations

import asyncio
import io
from unittest.mock import AsyncMock, patch

from app.db.models import Document
from app.exceptions import ModelInvocationError, ModelRetriesExhaustedError
from app.services.enrichment import ERROR_CATEGORY, EnrichmentService


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _service(invoke_side_effect=None, invoke_return=None):
    invoker = AsyncMock()
    if invoke_side_effect is not None:
        invoker.invoke.side_effect = invoke_side_effect
    else:
        invoker.invoke.return_value = invoke_return
    service = EnrichmentService(
        invoker,
        classification_model_id="classify-model",
        summarization_model_id="summary-model",
    )
    return service, invoker


def _document(file_name="report.txt"):
    return Document(id=1, file_name=file_name, storage_path=file_name)


class TestClassify:
    """Classification happy path and degraded results."""

    def test_parses_model_answer(self):
        service, invoker = _service(
            invoke_return='```json\n{"category": "Report", "confidence": 0.8, "tags": ["q3"]}\n```'
        )
        result = _run(service.classify(_document(), io.BytesIO(b"Quarterly numbers")))

        assert result.primary_category == "Report"
        assert result.tags == ["q3"]
        assert result.processing_time.total_seconds() >= 0

        model_id, prompt = invoker.invoke.await_args.args
        assert model_id == "classify-model"
        assert "Document: report.txt" in prompt
        assert "[Type: text]\n[Content]\nQuarterly numbers" in prompt

    def test_fatal_model_error_degrades(self):
        service, _ = _service(invoke_side_effect=ModelInvocationError("bad request", 400))
        result = _run(service.classify(_document(), io.BytesIO(b"x")))
        assert result.primary_category == ERROR_CATEGORY
        assert result.notes == "bad request"

    def test_exhausted_retries_degrade(self):
        service, _ = _service(invoke_side_effect=ModelRetriesExhaustedError("m", 3))
        result = _run(service.classify(_document(), io.BytesIO(b"x")))
        assert result.primary_category == ERROR_CATEGORY
        assert "failed after 3 attempts" in result.notes

    def test_unparseable_answer_is_unknown_not_error(self):
        service, _ = _service(invoke_return="no idea")
        result = _run(service.classify(_document(), io.BytesIO(b"x")))
        assert result.primary_category == "Unknown"

    def test_extraction_failure_degrades(self):
        service, invoker = _service(invoke_return="{}")
        with patch(
            "app.services.enrichment.extract_content",
            side_effect=OSError("stream closed"),
        ):
            result = _run(service.classify(_document(), io.BytesIO(b"x")))
        assert result.primary_category == ERROR_CATEGORY
        assert result.notes == "stream closed"
        invoker.invoke.assert_not_awaited()


class TestSummarize:
    """Summarisation happy path and degraded results."""

    def test_returns_summary_and_key_points(self):
        service, invoker = _service(
            invoke_return="Revenue grew strongly this quarter. Costs were flat overall."
        )
        result = _run(service.summarize(_document(), io.BytesIO(b"numbers")))

        assert result.summary.startswith("Revenue grew")
        assert len(result.key_points) == 2
        assert invoker.invoke.await_args.args[0] == "summary-model"

    def test_model_error_degrades(self):
        service, _ = _service(invoke_side_effect=ModelRetriesExhaustedError("summary-model", 3))
        result = _run(service.summarize(_document(), io.BytesIO(b"x")))
        assert result.summary == "Error: Model summary-model failed after 3 attempts"
        assert result.key_points == []

    def test_unsupported_file_still_invokes_model(self):
        service, invoker = _service(invoke_return="An image with no readable text content.")
        _run(service.summarize(_document("photo.jpg"), io.BytesIO(b"\xff\xd8")))
        prompt = invoker.invoke.await_args.args[1]
        assert "[Unsupported: .jpg]" in prompt
