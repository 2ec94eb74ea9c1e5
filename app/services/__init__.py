# =============================================================================
# Services Package — Business Logic
# =============================================================================
#   - storage.py: blob store for raw document bytes
#   - extractor.py: PDF (Docling), CSV and plain-text content extraction
#   - llm.py: multi-provider LLM abstraction (Anthropic, OpenAI-compatible)
#   - invoker.py: model calls with linear-backoff retry on 429/503
#   - parsers.py: model responses → classification / summary results
#   - enrichment.py: classify() and summarize() for one document
# =============================================================================
