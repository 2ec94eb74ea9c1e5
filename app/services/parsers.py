# =============================================================================
# Response Parsers — Raw Model Text → Structured Results
# =============================================================================
#
# The model is asked for JSON but is not trusted to emit ONLY JSON: answers
# arrive wrapped in code fences or surrounded by prose. Classification
# parsing therefore strips fences and slices from the first "{" to the
# last "}" before decoding.
#
# Neither parser raises. A classification that cannot be parsed becomes
# category "Unknown" with a note explaining why.
# =============================================================================

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import timedelta

logger = logging.getLogger(__name__)

UNKNOWN_CATEGORY = "Unknown"
MAX_KEY_POINTS = 5
MIN_KEY_POINT_LENGTH = 20

_SENTENCE_SPLIT = re.compile(r"[.!?]")


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class ClassificationResult:
    """
    Outcome of classifying one document.

    confidences maps category → probability; the model reports a single
    confidence for its primary category.
    """

    primary_category: str = ""
    confidences: dict[str, float] = field(default_factory=dict)
    tags: list[str] = field(default_factory=list)
    processing_time: timedelta = timedelta(0)
    notes: str = ""


@dataclass
class SummaryResult:
    """Outcome of summarising one document."""

    summary: str = ""
    key_points: list[str] = field(default_factory=list)
    language: str = ""
    processing_time: timedelta = timedelta(0)


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def parse_classification_response(response: str) -> ClassificationResult:
    """
    Parse a classification answer of the form
    {"category": "...", "confidence": 0.9, "tags": ["..."]}.

    Returns category "Unknown" (with a note) when no JSON object can be
    found or decoded.
    """
    cleaned = response.replace("```json", "").replace("```", "").strip()
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start < 0 or end <= start:
        return ClassificationResult(
            primary_category=UNKNOWN_CATEGORY,
            notes="No JSON object found in model response",
        )

    try:
        payload = json.loads(cleaned[start : end + 1])
    except json.JSONDecodeError as exc:
        logger.error("Classification parse error: %s", exc)
        return ClassificationResult(
            primary_category=UNKNOWN_CATEGORY,
            notes=f"Parse error: {exc}",
        )

    if not isinstance(payload, dict):
        return ClassificationResult(
            primary_category=UNKNOWN_CATEGORY,
            notes="Model response JSON is not an object",
        )

    category = payload.get("category")
    if not isinstance(category, str) or not category.strip():
        category = UNKNOWN_CATEGORY
    result = ClassificationResult(primary_category=category.strip())

    confidence = payload.get("confidence")
    if isinstance(confidence, (int, float)) and not isinstance(confidence, bool):
        result.confidences[result.primary_category] = float(confidence)

    tags = payload.get("tags")
    if isinstance(tags, list):
        result.tags = [tag for tag in tags if isinstance(tag, str)]

    return result


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------


def parse_summary_response(response: str) -> SummaryResult:
    """
    The trimmed response is the summary. Key points are the first five
    sentence fragments (split on . ! ?) longer than 20 characters.
    """
    fragments = (f.strip() for f in _SENTENCE_SPLIT.split(response))
    key_points = [f for f in fragments if len(f) > MIN_KEY_POINT_LENGTH]
    return SummaryResult(
        summary=response.strip(),
        key_points=key_points[:MAX_KEY_POINTS],
        language="en",
    )
