"""
adcraft.infrastructure.object_storage - Binary Asset Storage
==============================================================

Generated images and videos are uploaded to object storage and referenced by
URL from the session state.

    upload(data, name, mime_type) -> StoredObject(url, size, stored)

When storage is down the ErrorHandler substitutes a placeholder reference with
``stored=False`` so the pipeline keeps moving without the file.

Implementations:
    - ObjectStorage (ABC)
    - InMemoryObjectStorage: dict-backed, for development and tests
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class StoredObject(BaseModel):
    """Reference to an uploaded (or placeholder) object.

    Attributes:
        file_name: Object name within the bucket.
        url: Public or signed URL.
        size: Bytes stored (0 for placeholders).
        mime_type: Content type.
        stored: False when the upload was skipped by a fallback.
    """

    file_name: str
    url: str
    size: int = Field(default=0, ge=0)
    mime_type: str = "application/octet-stream"
    stored: bool = True


class ObjectStorage(ABC):
    """Abstract interface for binary object storage."""

    @abstractmethod
    async def upload(self, data: bytes, name: str, mime_type: str) -> StoredObject:
        """Store ``data`` under ``name`` and return its reference."""


class InMemoryObjectStorage(ObjectStorage):
    """Dict-backed object storage.

    Example:
        >>> storage = InMemoryObjectStorage(bucket="assets")
        >>> ref = await storage.upload(b"png-bytes", "hero.png", "image/png")
        >>> ref.url
        'memory://assets/hero.png'
    """

    def __init__(self, bucket: str = "adcraft-assets") -> None:
        self.bucket = bucket
        self._objects: dict[str, tuple[bytes, str]] = {}
        self._pending_failures: list[Exception] = []

    def inject_failure(self, error: Exception, times: int = 1) -> None:
        """Make the next ``times`` uploads raise ``error``."""
        self._pending_failures.extend([error] * times)

    async def upload(self, data: bytes, name: str, mime_type: str) -> StoredObject:
        if self._pending_failures:
            raise self._pending_failures.pop(0)
        self._objects[name] = (data, mime_type)
        logger.debug("Stored object %s (%d bytes)", name, len(data))
        return StoredObject(
            file_name=name,
            url=f"memory://{self.bucket}/{name}",
            size=len(data),
            mime_type=mime_type,
        )

    def read(self, name: str) -> Optional[bytes]:
        """Return the stored bytes for ``name``, if any."""
        entry = self._objects.get(name)
        return entry[0] if entry else None

    def __len__(self) -> int:
        return len(self._objects)
