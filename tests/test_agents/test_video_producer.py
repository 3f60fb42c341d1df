"""
Tests for adcraft.agents.video_producer - Zara
================================================

What's Being Tested:
    - Initialization from David's handoff package
    - Narrative and music selection
    - start_production(): video produced, priced per 15 seconds
    - Per-operation cap and duration bounds, checked before the provider call
    - Degraded production (demo video)
    - Best-effort thumbnail upload
    - Phase restored when production is refused or cancelled
    - accept_production() completes the pipeline; Zara never hands off
"""

import asyncio
from contextlib import AsyncExitStack

import pytest

from adcraft.core.enums import AgentType, ProductionPhase, ResolutionStrategy, SessionStatus
from adcraft.core.exceptions import (
    BudgetExceededError,
    ConcurrencyLimitError,
    GenerationCancelledError,
    InvalidRequestError,
    SessionStateError,
)
from adcraft.orchestration.fallbacks import DEMO_VIDEO_URL


async def _with_narrative(zara, session_id: str) -> str:
    await zara.select_narrative(session_id, "story-driven")
    return session_id


# =============================================================================
# Test: Setup
# =============================================================================
class TestInitialize:
    """Tests for starting the production stage."""

    async def test_seeded_from_handoff(self, zara_session, session_manager) -> None:
        session = await session_manager.get_session(zara_session)
        assert session.current_agent == AgentType.VIDEO_PRODUCER
        assert session.status == SessionStatus.READY
        assert session.phase == ProductionPhase.NARRATIVE_SELECTION.value
        assert session.production.duration == 15

    async def test_select_narrative_and_music(self, zara, zara_session) -> None:
        await zara.select_narrative(zara_session, " story-driven ")
        reply = await zara.select_music(zara_session, "lo-fi")
        assert reply.production.narrative_style == "story-driven"
        assert reply.production.music_genre == "lo-fi"
        assert reply.cost == 0.0

    async def test_blank_selection(self, zara, zara_session) -> None:
        with pytest.raises(InvalidRequestError):
            await zara.select_music(zara_session, " ")


# =============================================================================
# Test: Production
# =============================================================================
class TestStartProduction:
    """Tests for start_production()."""

    async def test_produces_video(self, zara, zara_session, session_manager, mock_provider) -> None:
        sid = await _with_narrative(zara, zara_session)
        reply = await zara.start_production(sid)

        assert reply.degraded is False
        assert reply.cost == pytest.approx(1.5)
        assert reply.production.video_url == f"memory://adcraft-assets/{sid}/commercial.mp4"
        assert reply.production.job_id.startswith("job_")
        assert reply.production.music_genre == "ambient"
        assert reply.phase == ProductionPhase.DELIVERY.value

        request = mock_provider.calls_of("video")[0]
        assert request.parameters["duration"] == 15
        assert request.prompt.startswith("story-driven commercial for Ceramic pour-over coffee set")
        assert request.parameters["assets"]

        session = await session_manager.get_session(sid)
        assert session.status == SessionStatus.READY
        assert session.ready_for_handoff is True
        assert session.costs.by_category["video_generation"] == pytest.approx(1.5)

    async def test_thirty_seconds(self, zara, zara_session) -> None:
        sid = await _with_narrative(zara, zara_session)
        reply = await zara.start_production(sid, duration=30)
        assert reply.cost == pytest.approx(3.0)
        assert reply.production.duration == 30

    async def test_requires_narrative(self, zara, zara_session, mock_provider) -> None:
        with pytest.raises(InvalidRequestError) as exc_info:
            await zara.start_production(zara_session)
        assert exc_info.value.field == "narrative_style"
        assert mock_provider.calls_of("video") == []

    async def test_duration_bounds(self, zara, zara_session) -> None:
        sid = await _with_narrative(zara, zara_session)
        with pytest.raises(InvalidRequestError):
            await zara.start_production(sid, duration=90)

    async def test_sixty_seconds_exceeds_operation_cap(
        self, zara, zara_session, mock_provider, session_manager
    ) -> None:
        """$6 for 60s is over the $5 cap even with budget left."""
        sid = await _with_narrative(zara, zara_session)
        with pytest.raises(BudgetExceededError) as exc_info:
            await zara.start_production(sid, duration=60)
        assert exc_info.value.details["reason"] == "per_operation_cap"
        assert mock_provider.calls_of("video") == []
        session = await session_manager.get_session(sid)
        assert session.status == SessionStatus.READY
        assert session.production.video_url is None

    async def test_degraded_production(self, zara, zara_session, mock_provider) -> None:
        sid = await _with_narrative(zara, zara_session)
        mock_provider.set_should_fail(True)
        reply = await zara.start_production(sid)
        assert reply.degraded is True
        assert reply.cost == 0.0
        assert reply.production.video_url == DEMO_VIDEO_URL
        assert reply.production.fallback is True

    async def test_thumbnail_stored(self, zara, zara_session, object_storage) -> None:
        sid = await _with_narrative(zara, zara_session)
        reply = await zara.start_production(sid)
        assert reply.production.thumbnail_url == f"memory://adcraft-assets/{sid}/commercial.jpg"
        assert object_storage.read(f"{sid}/commercial.jpg").startswith(b"mock-jpg:")

    async def test_thumbnail_failure_ignored(
        self, zara, zara_session, object_storage, error_handler, monkeypatch
    ) -> None:
        """A lost poster frame is recorded and ignored; the video is kept."""
        upload = object_storage.upload

        async def no_jpegs(data, name, mime_type):
            if name.endswith(".jpg"):
                raise RuntimeError("forbidden")
            return await upload(data, name, mime_type)

        monkeypatch.setattr(object_storage, "upload", no_jpegs)
        sid = await _with_narrative(zara, zara_session)
        reply = await zara.start_production(sid)

        assert reply.degraded is False
        assert reply.production.video_url.endswith("/commercial.mp4")
        assert reply.production.thumbnail_url is None
        record = error_handler.get_error_stats().recent_errors[-1]
        assert record.context.operation == "thumbnail_upload"
        assert record.resolution.strategy == ResolutionStrategy.IGNORE
        assert record.resolved is True

    async def test_concurrency_limit_keeps_phase(
        self, zara, zara_session, session_manager, mock_provider
    ) -> None:
        """A production never admitted leaves the phase untouched."""
        sid = await _with_narrative(zara, zara_session)
        async with AsyncExitStack() as stack:
            for _ in range(3):
                await stack.enter_async_context(session_manager.generation_slot(sid))
            with pytest.raises(ConcurrencyLimitError):
                await zara.start_production(sid)
        assert mock_provider.calls_of("video") == []
        session = await session_manager.get_session(sid)
        assert session.phase == ProductionPhase.NARRATIVE_SELECTION.value
        assert session.status == SessionStatus.READY

    async def test_cancelled_production_restores_phase(
        self, zara, zara_session, session_manager
    ) -> None:
        sid = await _with_narrative(zara, zara_session)
        cancel = asyncio.Event()
        cancel.set()
        with pytest.raises(GenerationCancelledError):
            await zara.start_production(sid, cancel=cancel)
        session = await session_manager.get_session(sid)
        assert session.phase == ProductionPhase.NARRATIVE_SELECTION.value
        assert session.production.video_url is None
        assert session.costs.by_category.get("video_generation", 0.0) == 0.0


# =============================================================================
# Test: Completion
# =============================================================================
class TestCompletion:
    """Tests for accept_production() and the missing next stage."""

    async def test_accept_completes_pipeline(self, zara, zara_session, session_manager) -> None:
        sid = await _with_narrative(zara, zara_session)
        await zara.start_production(sid)
        session = await zara.accept_production(sid)

        assert session.status == SessionStatus.COMPLETED
        assert session.production.accepted is True
        assert session.completed_stages == [
            AgentType.PRODUCT_INTELLIGENCE,
            AgentType.CREATIVE_DIRECTOR,
            AgentType.VIDEO_PRODUCER,
        ]

    async def test_accept_without_video(self, zara, zara_session) -> None:
        with pytest.raises(SessionStateError):
            await zara.accept_production(zara_session)

    async def test_completed_session_rejects_requests(self, zara, zara_session) -> None:
        sid = await _with_narrative(zara, zara_session)
        await zara.start_production(sid)
        await zara.accept_production(sid)
        with pytest.raises(SessionStateError):
            await zara.select_music(sid, "jazz")

    async def test_zara_cannot_hand_off(self, zara, zara_session) -> None:
        with pytest.raises(InvalidRequestError):
            await zara.handoff(zara_session)

    async def test_status_details(self, zara, zara_session) -> None:
        status = await zara.status(zara_session)
        assert status.persona == "Zara"
        assert status.details["estimated_cost"] == pytest.approx(1.5)
        assert status.details["video_url"] is None
