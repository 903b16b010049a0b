"""Archive of original invoice uploads.

The pipeline writes every accepted document under a freshly generated name
(never the user's file name) before the invoice record is persisted, and
discards it again if persistence fails.
"""

import asyncio
import logging
import os
import re
import uuid
from pathlib import Path
from typing import Protocol

from invoiceflow.shared.config import Settings
from invoiceflow.storage.service import StorageService

logger = logging.getLogger(__name__)

_SAFE_SUFFIX = re.compile(r"^\.[A-Za-z0-9]{1,8}$")


class ArchiveError(Exception):
    """The archive could not store or remove a document."""


class DocumentArchive(Protocol):
    """Durable storage for original documents."""

    async def archive(self, data: bytes, object_name: str, content_type: str | None) -> str:
        """Store bytes and return a durable reference (path or bucket/object)."""
        ...

    async def discard(self, object_name: str) -> None:
        """Remove a previously archived object."""
        ...

    async def is_ready(self) -> bool:
        """True if documents can be archived right now."""
        ...


def generate_object_name(file_name: str) -> str:
    """Collision-free object name keeping only a short, safe file extension."""
    suffix = Path(file_name).suffix.lower()
    if not _SAFE_SUFFIX.match(suffix):
        suffix = ""
    return f"{uuid.uuid4().hex}{suffix}"


class MinioDocumentArchive:
    """Archive backed by S3-compatible object storage."""

    def __init__(self, storage: StorageService) -> None:
        self.storage = storage

    async def archive(self, data: bytes, object_name: str, content_type: str | None) -> str:
        result = await asyncio.to_thread(
            self.storage.upload_bytes, data, object_name, content_type
        )
        if not result.success:
            raise ArchiveError(result.error or f"Upload of {object_name} failed")
        return f"{result.bucket}/{result.object_name}"

    async def discard(self, object_name: str) -> None:
        result = await asyncio.to_thread(self.storage.delete_object, object_name)
        if not result.success:
            raise ArchiveError(result.error or f"Delete of {object_name} failed")

    async def is_ready(self) -> bool:
        return await asyncio.to_thread(self.storage.health_check)


class FilesystemDocumentArchive:
    """Archive in a local directory, for single-node and development setups."""

    def __init__(self, root: Path) -> None:
        self.root = root

    async def archive(self, data: bytes, object_name: str, content_type: str | None) -> str:
        path = self.root / object_name
        try:
            await asyncio.to_thread(self._write, path, data)
        except OSError as e:
            raise ArchiveError(f"Could not write {path}: {e}") from e
        logger.info(f"Archived {object_name} to {self.root} ({len(data)} bytes)")
        return str(path)

    async def discard(self, object_name: str) -> None:
        path = self.root / object_name
        try:
            await asyncio.to_thread(path.unlink, True)
        except OSError as e:
            raise ArchiveError(f"Could not delete {path}: {e}") from e

    async def is_ready(self) -> bool:
        try:
            await asyncio.to_thread(self.root.mkdir, parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(f"Archive directory {self.root} unavailable: {e}")
            return False
        return os.access(self.root, os.W_OK)

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        # Exclusive create: an existing object is never overwritten
        with path.open("xb") as f:
            f.write(data)


def create_document_archive(settings: Settings) -> DocumentArchive:
    """Create the archive selected by ``settings.archive_backend``."""
    if settings.archive_backend == "minio":
        storage = StorageService(settings)
        if not storage.is_available():
            logger.warning("MinIO archive selected but storage credentials are not configured")
        return MinioDocumentArchive(storage)
    return FilesystemDocumentArchive(Path(settings.archive_dir))
