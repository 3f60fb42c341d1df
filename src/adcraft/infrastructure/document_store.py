"""
adcraft.infrastructure.document_store - Document Persistence Layer
====================================================================

This module provides the document store abstraction used for session
persistence. Documents are plain JSON-compatible dicts grouped into
collections ("sessions", ...) and addressed by id.

Architecture Context:

    ┌────────────────┐   get / create / update   ┌─────────────────┐
    │ SessionManager │ ────────────────────────→ │  DocumentStore  │
    │                │ ←──────────────────────── │  (ABC)          │
    └────────────────┘          dict             └────────┬────────┘
                                                          │
                                        ┌─────────────────┴───────────┐
                                        │ InMemoryDocumentStore       │
                                        │ (Future) FirestoreStore     │
                                        └─────────────────────────────┘

Semantics:
    - get() returns None for an unknown id.
    - create() refuses to overwrite an existing document.
    - update() shallow-merges a patch into an existing document.
    - There is no locking: concurrent writers race and the last write wins.

Implementations may raise ServiceError subclasses (timeouts, unavailability)
or plain exceptions; the ErrorHandler classifies both.
"""

from __future__ import annotations

import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from adcraft.core.exceptions import StateError

logger = logging.getLogger(__name__)


# =============================================================================
# Abstract Base Class: DocumentStore
# =============================================================================
class DocumentStore(ABC):
    """Abstract interface for document persistence.

    Example:
        >>> async def load(store: DocumentStore, session_id: str):
        ...     return await store.get("sessions", session_id)
    """

    async def connect(self) -> None:
        """Open the backend connection. No-op by default."""

    async def disconnect(self) -> None:
        """Close the backend connection. No-op by default."""

    @abstractmethod
    async def get(self, collection: str, document_id: str) -> Optional[dict[str, Any]]:
        """Fetch a document.

        Returns:
            A copy of the document, or None if it does not exist.
        """

    @abstractmethod
    async def create(self, collection: str, document_id: str, data: dict[str, Any]) -> None:
        """Create a new document.

        Raises:
            StateError: If the document already exists.
        """

    @abstractmethod
    async def update(self, collection: str, document_id: str, patch: dict[str, Any]) -> None:
        """Shallow-merge ``patch`` into an existing document.

        Raises:
            StateError: If the document does not exist.
        """


# =============================================================================
# In-Memory Implementation
# =============================================================================
class InMemoryDocumentStore(DocumentStore):
    """Dict-backed document store for development and testing.

    Data is lost when the process exits. Failures can be injected to exercise
    the document-store fallbacks.

    Example:
        >>> store = InMemoryDocumentStore()
        >>> await store.create("sessions", "s-1", {"status": "created"})
        >>> await store.update("sessions", "s-1", {"status": "ready"})
        >>> (await store.get("sessions", "s-1"))["status"]
        'ready'
    """

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._pending_failures: list[Exception] = []
        self.operation_count: int = 0

    # -------------------------------------------------------------------------
    # Failure Injection
    # -------------------------------------------------------------------------
    def inject_failure(self, error: Exception, times: int = 1) -> None:
        """Make the next ``times`` operations raise ``error``."""
        self._pending_failures.extend([error] * times)

    def clear_failures(self) -> None:
        self._pending_failures.clear()

    def _maybe_fail(self) -> None:
        self.operation_count += 1
        if self._pending_failures:
            raise self._pending_failures.pop(0)

    # -------------------------------------------------------------------------
    # DocumentStore API
    # -------------------------------------------------------------------------
    async def get(self, collection: str, document_id: str) -> Optional[dict[str, Any]]:
        self._maybe_fail()
        document = self._collections.get(collection, {}).get(document_id)
        return copy.deepcopy(document) if document is not None else None

    async def create(self, collection: str, document_id: str, data: dict[str, Any]) -> None:
        self._maybe_fail()
        documents = self._collections.setdefault(collection, {})
        if document_id in documents:
            raise StateError(
                message=f"Document already exists: {collection}/{document_id}",
                collection=collection,
                document_id=document_id,
                error_code="DOCUMENT_EXISTS",
            )
        documents[document_id] = copy.deepcopy(data)
        logger.debug("Created document %s/%s", collection, document_id)

    async def update(self, collection: str, document_id: str, patch: dict[str, Any]) -> None:
        self._maybe_fail()
        documents = self._collections.get(collection, {})
        if document_id not in documents:
            raise StateError(
                message=f"Document not found: {collection}/{document_id}",
                collection=collection,
                document_id=document_id,
                error_code="DOCUMENT_NOT_FOUND",
            )
        documents[document_id].update(copy.deepcopy(patch))
        logger.debug("Updated document %s/%s (%d keys)", collection, document_id, len(patch))

    def count(self, collection: str) -> int:
        """Number of documents in ``collection``."""
        return len(self._collections.get(collection, {}))
