"""
adcraft.agents.product_intelligence - Maya, Product Intelligence Stage
========================================================================

First stage of the pipeline. Maya analyzes the product (image and/or
description), then refines the strategy with the user in conversation until
the analysis is complete enough to hand to the creative stage.

Phases:
    analysis ──analyze()──> conversation ──ready──> handoff

Handoff Readiness:
    A completed analysis with target-audience data. Visual preferences and
    key features are advisory.

Cost:
    One analysis call (BudgetGuard.estimate_analysis) plus one chat price
    per turn. A degraded analysis is free and leaves the analysis incomplete,
    so the user can run it again once the vision service recovers.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel

from adcraft.agents.base import BaseStageAgent
from adcraft.core.enums import (
    AgentType,
    ErrorCategory,
    ProductPhase,
    SessionStatus,
)
from adcraft.core.exceptions import InvalidRequestError
from adcraft.core.models import HandoffPackage
from adcraft.core.state import ProductAnalysisState, SessionState
from adcraft.integrations.generation.base import GenerationRequest, GenerationResult


class AnalysisReply(BaseModel):
    """Outcome of Maya's product analysis."""

    analysis: ProductAnalysisState
    cost: float = 0.0
    degraded: bool = False
    ready_for_handoff: bool = False
    phase: str


class ProductIntelligenceAgent(BaseStageAgent):
    """Maya: product analysis and strategy conversation.

    Example:
        >>> session = await maya.initialize(locale=Locale.EN)
        >>> reply = await maya.analyze(session.session_id, "Ceramic pour-over coffee set")
        >>> reply.analysis.completed
        True
        >>> await maya.handoff(session.session_id)
    """

    agent_type = AgentType.PRODUCT_INTELLIGENCE
    creates_session = True

    async def analyze(
        self,
        session_id: str,
        description: str,
        image_url: Optional[str] = None,
        visual_preferences: Optional[dict[str, Any]] = None,
    ) -> AnalysisReply:
        """Analyze the product and store the result on the session.

        Raises:
            InvalidRequestError: Neither a description nor an image was given.
            BudgetExceededError: The analysis would break the budget.
            GenerationFailedError: Analysis failed with no usable fallback.
        """
        if not (description and description.strip()) and not image_url:
            raise InvalidRequestError(
                "A product description or image is required",
                field="description",
            )

        async with self.sessions.begin_request(
            session_id, self.agent_type, SessionStatus.ANALYZING
        ) as session:
            estimate = self.budget.estimate_analysis()
            self.budget.ensure_within_budget(
                session.costs.total, estimate, "product_analysis", session_id=session_id
            )
            request = GenerationRequest(
                kind="analysis",
                prompt=description or "",
                parameters={"image_url": image_url, "locale": session.locale.value},
            )
            outcome = await self.errors.execute(
                lambda: self.provider.generate(request),
                session_id=session_id,
                operation_name="product_analysis",
                category=ErrorCategory.VISION_API,
                metadata={"has_image": image_url is not None},
            )

            result = outcome.result if isinstance(outcome.result, GenerationResult) else None
            cost = 0.0
            if result is not None:
                cost = estimate
                await self.sessions.record_cost(session_id, "analysis", cost)

            def apply(s: SessionState) -> None:
                if result is not None:
                    s.product = self._analysis_from(result, description, visual_preferences)
                    s.phase = ProductPhase.CONVERSATION.value
                else:
                    s.product.product.setdefault("description", description)
                    if visual_preferences:
                        s.product.visual_preferences = visual_preferences
                s.ready_for_handoff = self._is_ready_for_handoff(s)

            updated = await self.sessions.mutate(session_id, apply)

        self._logger.info(
            "product_analyzed",
            session_id=session_id,
            degraded=outcome.degraded,
            confidence=updated.product.confidence,
            ready_for_handoff=updated.ready_for_handoff,
        )
        return AnalysisReply(
            analysis=updated.product,
            cost=cost,
            degraded=outcome.degraded,
            ready_for_handoff=updated.ready_for_handoff,
            phase=updated.phase,
        )

    # =========================================================================
    # Hooks
    # =========================================================================

    def _on_initialize(self, session: SessionState, package: Optional[HandoffPackage]) -> None:
        session.phase = ProductPhase.ANALYSIS.value

    def _is_ready_for_handoff(self, session: SessionState) -> bool:
        return session.product.completed and bool(session.product.target_audience)

    def _after_chat(self, session: SessionState, message: str, result: GenerationResult) -> None:
        product = session.product
        product.insights.extend(
            i for i in result.data.get("insights", []) if i not in product.insights
        )
        if result.data.get("visual_preferences"):
            product.visual_preferences = dict(result.data["visual_preferences"])
        if result.data.get("target_audience"):
            product.target_audience = dict(result.data["target_audience"])
        if session.phase == ProductPhase.ANALYSIS.value and product.completed:
            session.phase = ProductPhase.CONVERSATION.value
        if self._is_ready_for_handoff(session):
            session.phase = ProductPhase.HANDOFF.value

    def _status_details(self, session: SessionState) -> dict[str, Any]:
        product = session.product
        return {
            "analysis_completed": product.completed,
            "product_name": product.product.get("name"),
            "key_features": len(product.key_features),
            "has_visual_preferences": bool(product.visual_preferences),
            "confidence": product.confidence,
        }

    # =========================================================================
    # Internal
    # =========================================================================

    @staticmethod
    def _analysis_from(
        result: GenerationResult,
        description: str,
        visual_preferences: Optional[dict[str, Any]],
    ) -> ProductAnalysisState:
        data = result.data
        product = dict(data.get("product", {}))
        product.setdefault("description", description)
        confidence = data.get("confidence", 0.0)
        return ProductAnalysisState(
            completed=True,
            product=product,
            target_audience=dict(data.get("target_audience", {})),
            key_features=list(data.get("key_features", [])),
            visual_preferences=visual_preferences or data.get("visual_preferences"),
            positioning=data.get("positioning"),
            insights=list(data.get("insights", [])),
            confidence=max(0.0, min(1.0, float(confidence))),
        )
