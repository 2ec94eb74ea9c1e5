# =============================================================================
# Exceptions — Processing Pipeline Error Taxonomy
# =============================================================================
#
#   DocumentProcessorError
#   ├── DocumentNotFoundError        — record id unknown to the record store
#   ├── InvalidStatusTransitionError — status change outside the state machine
#   ├── QueueClosedError             — enqueue after the pool shut down
#   ├── BlobNotFoundError            — stored bytes missing
#   ├── StorageAccessError           — storage path escapes the blob root
#   └── ModelInvocationError         — fatal model call failure (not retried)
#       ├── TransientModelError      — rate limited / unavailable (retried)
#       └── ModelRetriesExhaustedError
#
# Enrichment-level errors never leave the enrichment service; they are
# turned into degraded results. Pipeline-level errors mark the document
# FAILED. Nothing escapes a worker's loop iteration.
# =============================================================================

from __future__ import annotations


class DocumentProcessorError(Exception):
    """Base class for all pipeline errors."""


class DocumentNotFoundError(DocumentProcessorError):
    def __init__(self, document_id: int) -> None:
        self.document_id = document_id
        super().__init__(f"Document {document_id} not found")


class InvalidStatusTransitionError(DocumentProcessorError):
    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Invalid status transition: {current} -> {target}")


class QueueClosedError(DocumentProcessorError):
    """Raised when a job is enqueued after the queue has been closed."""


class BlobNotFoundError(DocumentProcessorError):
    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Not found: {path}")


class StorageAccessError(DocumentProcessorError):
    """Raised when a storage path resolves outside the storage root."""


class ModelInvocationError(DocumentProcessorError):
    """A model call failed in a way that retrying will not fix."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class TransientModelError(ModelInvocationError):
    """Rate limited or temporarily unavailable; safe to retry."""


class ModelRetriesExhaustedError(ModelInvocationError):
    def __init__(self, model_id: str, attempts: int) -> None:
        self.model_id = model_id
        self.attempts = attempts
        super().__init__(f"Model {model_id} failed after {attempts} attempts")
