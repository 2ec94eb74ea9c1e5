# =============================================================================
# Document Processor
# =============================================================================
# Background classification and summarisation of stored documents.
# Documents are submitted by id, queued in memory, and drained by a bounded
# pool of asyncio workers that call an LLM endpoint twice per document.
#
# Package structure:
#   app/
#   ├── api/          → FastAPI route handlers (submit, status, admin sweep)
#   ├── db/           → Async engine, ORM model, record store backends
#   ├── models/       → Pydantic V2 response schemas
#   ├── services/     → Blob storage, content extraction, model endpoint,
#   │                    retrying invoker, response parsing, enrichment
#   └── workers/      → Job queue, per-document pipeline, worker pool,
#                        recovery sweeps
# =============================================================================
