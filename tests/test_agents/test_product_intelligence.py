"""
Tests for adcraft.agents.product_intelligence - Maya
======================================================

What's Being Tested:
    - analyze(): analysis stored, cost charged, phase advanced
    - Degraded analysis (vision service down) is free and incomplete
    - Budget gate before the provider call
    - Handoff to the creative stage, and the rejection paths
"""

import pytest

from adcraft.core.enums import AgentType, ProductPhase, SessionStatus
from adcraft.core.exceptions import (
    BudgetExceededError,
    HandoffValidationError,
    InvalidRequestError,
    SessionStateError,
)
from adcraft.orchestration.handoff import DEFAULT_VISUAL_PREFERENCES


# =============================================================================
# Test: Analysis
# =============================================================================
class TestAnalyze:
    """Tests for analyze()."""

    async def test_analysis_completes(self, maya, session_manager) -> None:
        session = await maya.initialize()
        sid = session.session_id
        reply = await maya.analyze(sid, "Ceramic pour-over coffee set")

        assert reply.degraded is False
        assert reply.cost == pytest.approx(0.20)
        assert reply.analysis.completed is True
        assert reply.analysis.product["name"] == "Ceramic pour-over coffee set"
        assert reply.analysis.target_audience
        assert reply.phase == ProductPhase.CONVERSATION.value
        assert reply.ready_for_handoff is True

        stored = await session_manager.get_session(sid)
        assert stored.status == SessionStatus.READY
        assert stored.costs.by_category == {"analysis": 0.2}

    async def test_visual_preferences_kept(self, maya) -> None:
        session = await maya.initialize()
        reply = await maya.analyze(
            session.session_id, "Desk lamp", visual_preferences={"style": "scandinavian"}
        )
        assert reply.analysis.visual_preferences == {"style": "scandinavian"}

    async def test_image_only(self, maya, mock_provider) -> None:
        session = await maya.initialize()
        await maya.analyze(session.session_id, "", image_url="https://example.com/p.png")
        assert mock_provider.calls_of("analysis")[0].parameters["image_url"] == (
            "https://example.com/p.png"
        )

    async def test_requires_description_or_image(self, maya) -> None:
        session = await maya.initialize()
        with pytest.raises(InvalidRequestError) as exc_info:
            await maya.analyze(session.session_id, "  ")
        assert exc_info.value.field == "description"

    async def test_degraded_analysis_is_free(self, maya, session_manager, mock_provider) -> None:
        """The vision service is down: no charge, analysis stays incomplete."""
        session = await maya.initialize()
        mock_provider.set_should_fail(True)
        reply = await maya.analyze(session.session_id, "Desk lamp")

        assert reply.degraded is True
        assert reply.cost == 0.0
        assert reply.analysis.completed is False
        assert reply.analysis.product["description"] == "Desk lamp"
        assert reply.ready_for_handoff is False
        stored = await session_manager.get_session(session.session_id)
        assert stored.costs.total == 0.0
        assert stored.phase == ProductPhase.ANALYSIS.value

    async def test_analysis_can_be_rerun_after_recovery(self, maya, mock_provider) -> None:
        session = await maya.initialize()
        mock_provider.set_should_fail(True)
        await maya.analyze(session.session_id, "Desk lamp")
        mock_provider.set_should_fail(False)
        reply = await maya.analyze(session.session_id, "Desk lamp")
        assert reply.analysis.completed is True

    async def test_over_budget_never_calls_provider(
        self, maya, session_manager, mock_provider
    ) -> None:
        session = await maya.initialize()
        await session_manager.record_cost(session.session_id, "chat", 299.9)
        with pytest.raises(BudgetExceededError):
            await maya.analyze(session.session_id, "Desk lamp")
        assert mock_provider.calls_of("analysis") == []


# =============================================================================
# Test: Conversation
# =============================================================================
class TestConversation:
    """Tests for Maya's chat hooks."""

    async def test_chat_moves_ready_session_to_handoff_phase(self, maya, maya_session) -> None:
        reply = await maya.chat(maya_session, "Who buys this?")
        assert reply.phase == ProductPhase.HANDOFF.value
        assert reply.ready_for_handoff is True

    async def test_status_details(self, maya, maya_session) -> None:
        status = await maya.status(maya_session)
        assert status.details["analysis_completed"] is True
        assert status.details["product_name"] == "Ceramic pour-over coffee set"
        assert status.costs.total == pytest.approx(0.2)


# =============================================================================
# Test: Handoff
# =============================================================================
class TestHandoff:
    """Tests for handing the session to David."""

    async def test_handoff(self, maya, session_manager, maya_session) -> None:
        result = await maya.handoff(maya_session)
        assert result.is_valid is True
        assert result.package.target_agent == AgentType.CREATIVE_DIRECTOR
        assert result.package.payload["visual_preferences"] == DEFAULT_VISUAL_PREFERENCES

        stored = await session_manager.get_session(maya_session)
        assert stored.current_agent == AgentType.CREATIVE_DIRECTOR
        assert stored.status == SessionStatus.CREATED
        assert stored.completed_stages == [AgentType.PRODUCT_INTELLIGENCE]

    async def test_validate_handoff_is_a_dry_run(self, maya, session_manager, maya_session) -> None:
        result = await maya.validate_handoff(maya_session)
        assert result.is_valid is True
        stored = await session_manager.get_session(maya_session)
        assert stored.current_agent == AgentType.PRODUCT_INTELLIGENCE

    async def test_handoff_before_analysis(self, maya) -> None:
        session = await maya.initialize()
        with pytest.raises(HandoffValidationError) as exc_info:
            await maya.handoff(session.session_id)
        assert "Product analysis is not complete" in exc_info.value.errors

    async def test_handoff_twice(self, maya, maya_session) -> None:
        await maya.handoff(maya_session)
        with pytest.raises(SessionStateError):
            await maya.handoff(maya_session)

    async def test_handoff_blocked_by_budget(self, maya, session_manager, maya_session) -> None:
        """The next stage must be able to afford its first image."""
        await session_manager.record_cost(maya_session, "chat", 299.79)
        with pytest.raises(BudgetExceededError):
            await maya.handoff(maya_session)
