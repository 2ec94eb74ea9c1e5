# =============================================================================
# Content Extractor — Bounded Plain Text From Raw Document Bytes
# =============================================================================
#
# Converts a stored document into the plain text embedded in model prompts.
# Dispatches on the declared file extension:
#
#   .pdf              → Docling layout-aware conversion, per-page text
#                       joined with "--- Page N ---" headers
#   .txt .log .md     → full decoded text
#   .csv              → "Columns: ..." + up to csv_max_rows pipe-delimited
#                       rows + "Total Rows: N"
#   anything else     → stub tagged "unsupported" (not an error)
#   any exception     → stub tagged "error" carrying the message
#
# After dispatch the text is capped at max_content_length characters with a
# trailing "[Truncated]" marker. The cap bounds prompt size and cost.
#
# We use our own dataclass (ExtractedContent) rather than passing Docling
# types downstream; only this module knows about Docling.
# =============================================================================

from __future__ import annotations

import asyncio
import csv
import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from docling.datamodel.base_models import DocumentStream, InputFormat
from docling.datamodel.pipeline_options import PdfPipelineOptions
from docling.document_converter import DocumentConverter, PdfFormatOption
from docling_core.types.doc.labels import DocItemLabel

from app.config import settings

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n[Truncated]"

TEXT_EXTENSIONS = frozenset({".txt", ".log", ".md"})

_TEXT_LABELS = frozenset({
    DocItemLabel.TITLE,
    DocItemLabel.SECTION_HEADER,
    DocItemLabel.TEXT,
    DocItemLabel.LIST_ITEM,
    DocItemLabel.CAPTION,
    DocItemLabel.FOOTNOTE,
})


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class ExtractedContent:
    """
    Plain-text content of one document, produced per extraction call.

    content_type: "pdf", "text", "csv", "unsupported" or "error"
    truncated:    True iff the text exceeded the cap before truncation
    """

    text: str
    content_type: str
    truncated: bool = False

    def for_prompt(self) -> str:
        return f"[Type: {self.content_type}]\n[Content]\n{self.text}"


# ---------------------------------------------------------------------------
# Docling Converter — Lazy Singleton
# ---------------------------------------------------------------------------
# Initialization loads layout models into memory (a few seconds on first
# use). One converter is shared by all workers.
# ---------------------------------------------------------------------------

_converter: DocumentConverter | None = None


def _get_converter() -> DocumentConverter:
    """Lazily initialize and cache the Docling DocumentConverter."""
    global _converter
    if _converter is None:
        logger.info(
            "Initializing Docling DocumentConverter "
            "(first use, may take a few seconds)..."
        )
        pipeline_options = PdfPipelineOptions()
        pipeline_options.do_table_structure = True
        pipeline_options.do_ocr = False

        _converter = DocumentConverter(
            format_options={
                InputFormat.PDF: PdfFormatOption(
                    pipeline_options=pipeline_options,
                ),
            }
        )
        logger.info("Docling DocumentConverter initialized")
    return _converter


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def extract_content(
    file_name: str,
    stream: BinaryIO,
    max_length: int | None = None,
    csv_max_rows: int | None = None,
) -> ExtractedContent:
    """
    Extract bounded plain text from a document stream.

    Never raises: extraction failures come back as content tagged "error".

    Args:
        file_name: Declared file name; its extension selects the extractor.
        stream: Binary read handle positioned at the start of the document.
        max_length: Character cap (default settings.max_content_length).
        csv_max_rows: Data-row cap for CSV (default settings.csv_max_rows).
    """
    _max_length = max_length or settings.max_content_length
    _csv_max_rows = csv_max_rows or settings.csv_max_rows
    ext = Path(file_name).suffix.lower()

    try:
        if ext == ".pdf":
            data = await asyncio.to_thread(stream.read)
            text = await asyncio.to_thread(_extract_pdf, data, _max_length)
            content = ExtractedContent(text=text, content_type="pdf")
        elif ext in TEXT_EXTENSIONS:
            data = await asyncio.to_thread(stream.read)
            content = ExtractedContent(text=_decode(data), content_type="text")
        elif ext == ".csv":
            data = await asyncio.to_thread(stream.read)
            content = ExtractedContent(
                text=_extract_csv(_decode(data), _csv_max_rows),
                content_type="csv",
            )
        else:
            return ExtractedContent(
                text=f"[Unsupported: {ext}]", content_type="unsupported"
            )
    except Exception as exc:
        logger.error("Extraction failed for '%s': %s", file_name, exc, exc_info=True)
        return ExtractedContent(text=f"[Error: {exc}]", content_type="error")

    return truncate_content(content, _max_length)


def truncate_content(content: ExtractedContent, max_length: int) -> ExtractedContent:
    """Apply the character cap, appending the truncation marker."""
    if len(content.text) > max_length:
        content.text = content.text[:max_length] + TRUNCATION_MARKER
        content.truncated = True
    return content


# ---------------------------------------------------------------------------
# Format-specific extractors
# ---------------------------------------------------------------------------


def _decode(data: bytes) -> str:
    return data.decode("utf-8-sig", errors="replace")


def _extract_pdf(data: bytes, max_length: int) -> str:
    return render_pdf_pages(_pdf_pages(data), max_length)


def render_pdf_pages(pages: list[tuple[int, str]], max_length: int) -> str:
    """
    Join page texts with "--- Page N ---" headers.

    Blank pages are skipped. Stops after the page that pushes the
    accumulated length past `max_length`.
    """
    parts: list[str] = []
    length = 0
    for page_no, text in pages:
        if not text.strip():
            continue
        block = f"--- Page {page_no} ---\n{text}\n"
        parts.append(block)
        length += len(block)
        if length > max_length:
            break
    return "".join(parts)


def _pdf_pages(data: bytes) -> list[tuple[int, str]]:
    """
    Convert a PDF with Docling and group its items by page, in reading order.

    Tables are exported as markdown; text-bearing items contribute their
    text. Items without provenance are attached to page 1.
    """
    converter = _get_converter()
    result = converter.convert(DocumentStream(name="document.pdf", stream=io.BytesIO(data)))
    document = result.document

    pages: dict[int, list[str]] = {}
    for item, _level in document.iterate_items():
        page_no = 1
        if getattr(item, "prov", None):
            page_no = item.prov[0].page_no

        label = getattr(item, "label", None)
        if label == DocItemLabel.TABLE:
            text = _table_to_markdown(item, document)
        elif label in _TEXT_LABELS:
            text = getattr(item, "text", "").strip()
        else:
            continue

        if text:
            pages.setdefault(page_no, []).append(text)

    logger.info("Docling extracted text from %d pages", len(pages))
    return [(page_no, "\n".join(pages[page_no])) for page_no in sorted(pages)]


def _table_to_markdown(table_item: object, document: object) -> str:
    """Export a Docling TableItem as markdown, falling back to its text."""
    try:
        if hasattr(table_item, "export_to_markdown"):
            return table_item.export_to_markdown(doc=document)
    except Exception as exc:
        logger.warning("Table export to markdown failed: %s", exc)

    text = getattr(table_item, "text", "")
    return text.strip() if text else ""


def _extract_csv(text: str, max_rows: int) -> str:
    """
    Render a CSV as a header line plus up to `max_rows` pipe-delimited rows.

    Blank lines are skipped and not counted. Missing cells render empty; a
    row the csv module cannot parse is rendered as a row of empty cells and
    still counted.
    """
    reader = csv.reader(io.StringIO(text, newline=""), strict=False)
    headers: list[str] = []
    try:
        for row in reader:
            if row:
                headers = row
                break
    except csv.Error as exc:
        logger.warning("Unreadable CSV header row: %s", exc)
        headers = []
    if not headers:
        return ""

    lines = [f"Columns: {', '.join(headers)}"]
    row_count = 0
    while row_count < max_rows:
        try:
            row = next(reader)
        except StopIteration:
            break
        except csv.Error as exc:
            logger.debug("Malformed CSV row %d: %s", row_count + 1, exc)
            row = [""]
        if not row:
            continue
        cells = [row[i] if i < len(row) else "" for i in range(len(headers))]
        lines.append(" | ".join(cells))
        row_count += 1

    lines.append(f"\nTotal Rows: {row_count}")
    return "\n".join(lines) + "\n"
