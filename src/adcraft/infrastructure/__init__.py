"""
adcraft.infrastructure - Persistence Layer
============================================

Storage capabilities the pipeline depends on:

    - DocumentStore (ABC) / InMemoryDocumentStore: session documents
    - ObjectStorage (ABC) / InMemoryObjectStorage: generated images and videos
"""

from adcraft.infrastructure.document_store import DocumentStore, InMemoryDocumentStore
from adcraft.infrastructure.object_storage import (
    InMemoryObjectStorage,
    ObjectStorage,
    StoredObject,
)

__all__ = [
    "DocumentStore",
    "InMemoryDocumentStore",
    "ObjectStorage",
    "InMemoryObjectStorage",
    "StoredObject",
]
