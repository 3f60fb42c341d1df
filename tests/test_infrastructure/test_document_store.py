"""
Tests for adcraft.infrastructure.document_store
=================================================

What's Being Tested:
    - InMemoryDocumentStore (get, create, update, count)
    - Copy semantics (callers never share the stored dict)
    - Edge cases (missing documents, duplicate create)
    - Failure injection used by resilience tests

All tests use InMemoryDocumentStore with no external dependencies.
"""

import pytest

from adcraft.core.exceptions import StateError
from adcraft.infrastructure.document_store import DocumentStore, InMemoryDocumentStore


# =============================================================================
# Tests: Basic Operations
# =============================================================================
class TestDocumentStoreOperations:
    """Tests for get/create/update."""

    def test_is_a_document_store(self) -> None:
        assert isinstance(InMemoryDocumentStore(), DocumentStore)

    async def test_create_then_get(self, document_store) -> None:
        await document_store.create("sessions", "s-1", {"status": "created"})
        assert await document_store.get("sessions", "s-1") == {"status": "created"}
        assert document_store.count("sessions") == 1

    async def test_get_missing_returns_none(self, document_store) -> None:
        assert await document_store.get("sessions", "nope") is None

    async def test_update_merges_shallowly(self, document_store) -> None:
        await document_store.create("sessions", "s-1", {"status": "created", "phase": "analysis"})
        await document_store.update("sessions", "s-1", {"status": "ready"})
        assert await document_store.get("sessions", "s-1") == {
            "status": "ready",
            "phase": "analysis",
        }

    async def test_returned_documents_are_copies(self, document_store) -> None:
        """Mutating a returned dict never changes the stored document."""
        await document_store.create("sessions", "s-1", {"costs": {"total": 0.0}})
        doc = await document_store.get("sessions", "s-1")
        doc["costs"]["total"] = 99.0
        assert (await document_store.get("sessions", "s-1"))["costs"]["total"] == 0.0

    async def test_connect_and_disconnect_are_noops(self, document_store) -> None:
        await document_store.connect()
        await document_store.disconnect()


# =============================================================================
# Tests: Edge Cases
# =============================================================================
class TestDocumentStoreErrors:
    """Tests for duplicate and missing documents."""

    async def test_duplicate_create(self, document_store) -> None:
        await document_store.create("sessions", "s-1", {})
        with pytest.raises(StateError) as exc_info:
            await document_store.create("sessions", "s-1", {})
        assert exc_info.value.error_code == "DOCUMENT_EXISTS"

    async def test_update_missing(self, document_store) -> None:
        with pytest.raises(StateError) as exc_info:
            await document_store.update("sessions", "ghost", {"status": "ready"})
        assert exc_info.value.error_code == "DOCUMENT_NOT_FOUND"
        assert exc_info.value.document_id == "ghost"


# =============================================================================
# Tests: Failure Injection
# =============================================================================
class TestFailureInjection:
    """Tests for inject_failure()."""

    async def test_fails_the_next_n_operations(self, document_store) -> None:
        document_store.inject_failure(ConnectionError("network down"), times=2)
        for _ in range(2):
            with pytest.raises(ConnectionError):
                await document_store.get("sessions", "s-1")
        assert await document_store.get("sessions", "s-1") is None
        assert document_store.operation_count == 3

    async def test_clear_failures(self, document_store) -> None:
        document_store.inject_failure(ConnectionError("network down"))
        document_store.clear_failures()
        await document_store.create("sessions", "s-1", {})
