# =============================================================================
# Blob Store — Raw Document Bytes
# =============================================================================
#
# The pipeline opens stored documents through `BlobStore.open(path)`.
# Every call returns a NEW, independent read handle: classification and
# summarisation read the same document concurrently, each from its own
# stream position.
#
# LocalBlobStore keeps files under settings.storage_path. Record storage
# paths are relative; anything resolving outside the root is refused.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import BinaryIO, Protocol

from app.config import settings
from app.exceptions import BlobNotFoundError, StorageAccessError

logger = logging.getLogger(__name__)


class BlobStore(Protocol):
    """Protocol defining the blob store interface."""

    async def open(self, path: str) -> BinaryIO:
        """Open an independent binary read handle for `path`."""
        ...


class LocalBlobStore:
    """Filesystem blob store rooted at a base directory."""

    def __init__(self, base_path: str | Path | None = None) -> None:
        self._base_path = Path(base_path or settings.storage_path).resolve()
        if not self._base_path.exists():
            self._base_path.mkdir(parents=True, exist_ok=True)
            logger.debug("Created storage directory %s", self._base_path)

    @property
    def base_path(self) -> Path:
        return self._base_path

    def resolve(self, path: str) -> Path:
        full_path = (self._base_path / path).resolve()
        if not full_path.is_relative_to(self._base_path):
            raise StorageAccessError(f"Access denied: {path}")
        return full_path

    async def open(self, path: str) -> BinaryIO:
        full_path = self.resolve(path)
        if not full_path.is_file():
            raise BlobNotFoundError(path)
        return await asyncio.to_thread(full_path.open, "rb")
