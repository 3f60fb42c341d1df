"""
Tests for adcraft.orchestration.session_manager
=================================================

What's Being Tested:
    - Session creation, loading and persistence
    - The status state machine (transition table, begin_request release)
    - Generation admission at the concurrency cap, and cancellation
    - Costs, conversation and handoff acceptance
    - Document-store outages: retry, cached copy, degraded writes
"""

import asyncio

import pytest

from adcraft.core.enums import AgentType, Locale, SessionStatus
from adcraft.core.exceptions import (
    ConcurrencyLimitError,
    SessionNotFoundError,
    SessionStateError,
    ServiceUnavailableError,
    StateError,
)
from adcraft.core.models import HandoffPackage
from adcraft.orchestration.session_manager import SESSIONS_COLLECTION


async def _ready_session(manager, agent=AgentType.PRODUCT_INTELLIGENCE):
    session = await manager.create_session(agent=agent)
    return await manager.initialize_stage(session.session_id, agent)


def _package(session_id: str) -> HandoffPackage:
    return HandoffPackage(
        session_id=session_id,
        source_agent=AgentType.PRODUCT_INTELLIGENCE,
        target_agent=AgentType.CREATIVE_DIRECTOR,
        payload={"product": {"name": "Kettle"}},
        confidence=0.9,
    )


# =============================================================================
# Test: Create / Read / Write
# =============================================================================
class TestPersistence:
    """Tests for create_session(), get_session() and save()."""

    async def test_create_session_defaults(self, session_manager, document_store) -> None:
        session = await session_manager.create_session()
        assert session.status == SessionStatus.CREATED
        assert session.current_agent == AgentType.PRODUCT_INTELLIGENCE
        assert session.phase == "analysis"
        assert session.locale == Locale.EN
        assert document_store.count(SESSIONS_COLLECTION) == 1

    async def test_create_with_locale_and_id(self, session_manager) -> None:
        session = await session_manager.create_session(locale=Locale.JA, session_id="s-fixed")
        loaded = await session_manager.get_session("s-fixed")
        assert loaded.session_id == session.session_id
        assert loaded.locale == Locale.JA

    async def test_unknown_session(self, session_manager) -> None:
        with pytest.raises(SessionNotFoundError):
            await session_manager.get_session("missing")

    async def test_mutate_round_trip(self, session_manager) -> None:
        session = await _ready_session(session_manager)

        def rename(s):
            s.product.product["name"] = "Kettle"

        await session_manager.mutate(session.session_id, rename)
        loaded = await session_manager.get_session(session.session_id)
        assert loaded.product.product == {"name": "Kettle"}


# =============================================================================
# Test: State Machine
# =============================================================================
class TestStateMachine:
    """Tests for transitions and begin_request()."""

    async def test_initialize_stage(self, session_manager) -> None:
        session = await _ready_session(session_manager)
        assert session.status == SessionStatus.READY

    async def test_initialize_stage_is_idempotent(self, session_manager) -> None:
        session = await _ready_session(session_manager)
        again = await session_manager.initialize_stage(
            session.session_id, AgentType.PRODUCT_INTELLIGENCE
        )
        assert again.status == SessionStatus.READY

    async def test_initialize_wrong_agent(self, session_manager) -> None:
        session = await session_manager.create_session()
        with pytest.raises(SessionStateError):
            await session_manager.initialize_stage(session.session_id, AgentType.VIDEO_PRODUCER)

    async def test_illegal_transition(self, session_manager) -> None:
        session = await session_manager.create_session()
        with pytest.raises(SessionStateError) as exc_info:
            async with session_manager.begin_request(
                session.session_id, AgentType.PRODUCT_INTELLIGENCE, SessionStatus.ANALYZING
            ):
                pass
        assert exc_info.value.error_code == "SESSION_INVALID_STATE"

    async def test_begin_request_holds_busy_status(self, session_manager) -> None:
        session = await _ready_session(session_manager)
        sid = session.session_id
        async with session_manager.begin_request(
            sid, AgentType.PRODUCT_INTELLIGENCE, SessionStatus.ANALYZING
        ) as busy:
            assert busy.status == SessionStatus.ANALYZING
            assert (await session_manager.get_session(sid)).status == SessionStatus.ANALYZING
        assert (await session_manager.get_session(sid)).status == SessionStatus.READY

    async def test_begin_request_releases_on_error(self, session_manager) -> None:
        """An exception inside the block still returns the session to READY."""
        session = await _ready_session(session_manager)
        sid = session.session_id
        with pytest.raises(RuntimeError):
            async with session_manager.begin_request(
                sid, AgentType.PRODUCT_INTELLIGENCE, SessionStatus.CREATING
            ):
                raise RuntimeError("boom")
        assert (await session_manager.get_session(sid)).status == SessionStatus.READY

    async def test_begin_request_requires_ready(self, session_manager) -> None:
        session = await session_manager.create_session()
        with pytest.raises(SessionStateError):
            async with session_manager.begin_request(
                session.session_id, AgentType.PRODUCT_INTELLIGENCE, SessionStatus.ANALYZING
            ):
                pass

    async def test_begin_request_rejects_non_busy_status(self, session_manager) -> None:
        session = await _ready_session(session_manager)
        with pytest.raises(ValueError):
            async with session_manager.begin_request(
                session.session_id, AgentType.PRODUCT_INTELLIGENCE, SessionStatus.COMPLETED
            ):
                pass


# =============================================================================
# Test: Generation Admission
# =============================================================================
class TestGenerationSlots:
    """Tests for the per-session concurrency cap."""

    async def test_cap_rejects_fourth_generation(self, session_manager) -> None:
        session = await _ready_session(session_manager)
        sid = session.session_id
        release = asyncio.Event()
        admitted = asyncio.Event()
        entered = 0

        async def generate():
            nonlocal entered
            async with session_manager.generation_slot(sid):
                entered += 1
                if entered == 3:
                    admitted.set()
                await release.wait()

        tasks = [asyncio.create_task(generate()) for _ in range(3)]
        await admitted.wait()
        assert (await session_manager.get_session(sid)).active_generations == 3

        with pytest.raises(ConcurrencyLimitError) as exc_info:
            async with session_manager.generation_slot(sid):
                pass
        assert exc_info.value.error_code == "RATE_LIMITED"
        assert exc_info.value.limit == 3

        release.set()
        await asyncio.gather(*tasks)
        assert (await session_manager.get_session(sid)).active_generations == 0

    async def test_counter_survives_full_saves(self, session_manager) -> None:
        """Whole-session writes never overwrite the generation counter."""
        session = await _ready_session(session_manager)
        sid = session.session_id
        async with session_manager.generation_slot(sid):
            await session_manager.record_cost(sid, "chat", 0.15)
            assert (await session_manager.get_session(sid)).active_generations == 1

    async def test_cancel_generations(self, session_manager) -> None:
        session = await _ready_session(session_manager)
        sid = session.session_id
        async with session_manager.generation_slot(sid) as slot:
            assert slot.is_cancelled is False
            assert session_manager.cancel_generations(sid) == 1
            assert slot.is_cancelled is True
        assert session_manager.cancel_generations(sid) == 0


# =============================================================================
# Test: Session Content
# =============================================================================
class TestSessionContent:
    """Tests for costs, messages and handoffs."""

    async def test_record_cost(self, session_manager) -> None:
        session = await _ready_session(session_manager)
        sid = session.session_id
        await session_manager.record_cost(sid, "analysis", 0.2)
        updated = await session_manager.record_cost(sid, "chat", 0.15)
        assert updated.costs.total == pytest.approx(0.35)
        assert updated.costs.by_category == {"analysis": 0.2, "chat": 0.15}

    async def test_append_message(self, session_manager) -> None:
        session = await _ready_session(session_manager)
        message = await session_manager.append_message(
            session.session_id, AgentType.PRODUCT_INTELLIGENCE, "user", "hello"
        )
        loaded = await session_manager.get_session(session.session_id)
        assert loaded.conversation[-1].id == message.id
        assert loaded.messages_for(AgentType.PRODUCT_INTELLIGENCE)[0].content == "hello"

    async def test_accept_handoff(self, session_manager) -> None:
        session = await _ready_session(session_manager)
        sid = session.session_id
        updated = await session_manager.accept_handoff(sid, _package(sid))
        assert updated.current_agent == AgentType.CREATIVE_DIRECTOR
        assert updated.status == SessionStatus.CREATED
        assert updated.phase == "analysis"
        assert updated.ready_for_handoff is False
        assert updated.completed_stages == [AgentType.PRODUCT_INTELLIGENCE]
        assert updated.latest_handoff(AgentType.CREATIVE_DIRECTOR).payload["product"] == {
            "name": "Kettle"
        }

    async def test_accept_handoff_wrong_owner(self, session_manager) -> None:
        session = await _ready_session(session_manager, AgentType.CREATIVE_DIRECTOR)
        with pytest.raises(SessionStateError):
            await session_manager.accept_handoff(session.session_id, _package(session.session_id))

    async def test_complete_final_stage(self, session_manager) -> None:
        session = await _ready_session(session_manager, AgentType.VIDEO_PRODUCER)
        done = await session_manager.complete_final_stage(session.session_id)
        assert done.status == SessionStatus.COMPLETED
        assert done.completed_stages == [AgentType.VIDEO_PRODUCER]

    async def test_completed_is_terminal(self, session_manager) -> None:
        session = await _ready_session(session_manager, AgentType.VIDEO_PRODUCER)
        await session_manager.complete_final_stage(session.session_id)
        with pytest.raises(SessionStateError):
            await session_manager.initialize_stage(session.session_id, AgentType.VIDEO_PRODUCER)


# =============================================================================
# Test: Document Store Outages
# =============================================================================
class TestStoreOutages:
    """Tests for reads and writes while the document store fails."""

    async def test_read_retried(self, session_manager, document_store) -> None:
        session = await _ready_session(session_manager)
        document_store.inject_failure(RuntimeError("service unavailable"))
        loaded = await session_manager.get_session(session.session_id)
        assert loaded.status == SessionStatus.READY

    async def test_read_served_from_cache(self, session_manager, document_store) -> None:
        """A non-retryable read failure falls back to the cached copy."""
        session = await _ready_session(session_manager)
        document_store.inject_failure(RuntimeError("unauthorized"))
        loaded = await session_manager.get_session(session.session_id)
        assert loaded.session_id == session.session_id
        assert loaded.status == SessionStatus.READY

    async def test_read_without_cache_raises(self, session_manager, document_store) -> None:
        session = await _ready_session(session_manager)
        session_manager.cache.drop(session.session_id)
        document_store.inject_failure(RuntimeError("unauthorized"))
        with pytest.raises(StateError) as exc_info:
            await session_manager.get_session(session.session_id)
        assert exc_info.value.error_code == "SESSION_STORE_UNAVAILABLE"

    async def test_write_degraded_keeps_cache_current(self, session_manager, document_store) -> None:
        """A failed write is absorbed and the cache holds the new state."""
        session = await _ready_session(session_manager)
        sid = session.session_id
        loaded = await session_manager.get_session(sid)
        loaded.phase = "conversation"
        document_store.inject_failure(RuntimeError("unauthorized"))
        await session_manager.save(loaded)
        assert session_manager.cache.get(sid)["phase"] == "conversation"
        assert (await document_store.get(SESSIONS_COLLECTION, sid))["phase"] == "analysis"

    async def test_degraded_write_written_back_on_next_read(
        self, session_manager, document_store
    ) -> None:
        """Once the store answers again, the cached state is persisted."""
        session = await _ready_session(session_manager)
        sid = session.session_id
        loaded = await session_manager.get_session(sid)
        loaded.phase = "conversation"
        document_store.inject_failure(RuntimeError("unauthorized"))
        await session_manager.save(loaded)

        reloaded = await session_manager.get_session(sid)
        assert reloaded.phase == "conversation"
        assert (await document_store.get(SESSIONS_COLLECTION, sid))["phase"] == "conversation"

    async def test_degraded_create_survives_recovery(
        self, session_manager, document_store
    ) -> None:
        """A session created during an outage is found after the store recovers."""
        document_store.inject_failure(
            ServiceUnavailableError("firestore down", service="firestore"), times=4
        )
        session = await session_manager.create_session()
        sid = session.session_id
        assert document_store.count(SESSIONS_COLLECTION) == 0

        ready = await session_manager.initialize_stage(sid, AgentType.PRODUCT_INTELLIGENCE)
        assert ready.status == SessionStatus.READY
        stored = await document_store.get(SESSIONS_COLLECTION, sid)
        assert stored["status"] == SessionStatus.READY.value

    async def test_first_stage_initializes_during_outage(
        self, maya, document_store, session_manager
    ) -> None:
        document_store.inject_failure(
            ServiceUnavailableError("firestore down", service="firestore"), times=4
        )
        session = await maya.initialize()
        assert session.status == SessionStatus.READY
        loaded = await session_manager.get_session(session.session_id)
        assert loaded.current_agent == AgentType.PRODUCT_INTELLIGENCE

    async def test_write_back_failure_still_serves_cache(
        self, session_manager, document_store, monkeypatch
    ) -> None:
        document_store.inject_failure(RuntimeError("unauthorized"))
        session = await session_manager.create_session()
        sid = session.session_id

        async def still_down(collection, document_id, data):
            raise RuntimeError("service unavailable")

        monkeypatch.setattr(document_store, "create", still_down)
        loaded = await session_manager.get_session(sid)
        assert loaded.session_id == sid

        monkeypatch.undo()
        await session_manager.get_session(sid)
        assert await document_store.get(SESSIONS_COLLECTION, sid) is not None
