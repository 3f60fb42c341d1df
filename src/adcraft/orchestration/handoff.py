"""
adcraft.orchestration.handoff - Handoff Validation and Packaging
==================================================================

When an agent stage finishes, its accumulated session state is validated and
packed into a frozen HandoffPackage for the next stage.

Stage Requirements:

    PRODUCT_INTELLIGENCE → CREATIVE_DIRECTOR
        required:  completed analysis, target-audience data
        advisory:  visual preferences (defaults substituted), key features

    CREATIVE_DIRECTOR → VIDEO_PRODUCER
        required:  ≥1 finalized visual decision, ≥1 generated asset
        advisory:  style direction, colour palette

    Any stage: confidence below the threshold (default 0.7) adds a warning.

Outcomes:
    - Any required field missing → is_valid=False, errors listed, no package.
    - Only advisory fields missing → is_valid=True, warnings listed, package
      built with defaults.
    - The downstream stage's first paid operation is priced and checked
      against the session budget; a breach raises BudgetExceededError.

Processing-time estimates grow with payload size (assets, decisions,
features). The absolute numbers are informational only.
"""

from __future__ import annotations

from typing import Any, Optional

import structlog

from adcraft.core.config import PipelineConfig
from adcraft.core.enums import AgentType
from adcraft.core.models import HandoffPackage, HandoffResult
from adcraft.core.state import SessionState
from adcraft.orchestration.budget import BudgetGuard

logger = structlog.get_logger()


DEFAULT_VISUAL_PREFERENCES: dict[str, Any] = {
    "style": "clean product photography",
    "mood": "modern",
    "lighting": "soft studio",
}

# (base seconds, seconds per payload item) for each receiving stage
_PROCESSING_TIME: dict[AgentType, tuple[int, int]] = {
    AgentType.CREATIVE_DIRECTOR: (30, 5),
    AgentType.VIDEO_PRODUCER: (120, 15),
}


class HandoffValidator:
    """Validates stage output and builds HandoffPackages.

    Attributes:
        budget: BudgetGuard used to price the receiving stage.
        config: Pipeline settings (confidence threshold).

    Example:
        >>> result = validator.prepare(session, AgentType.CREATIVE_DIRECTOR)
        >>> if not result.is_valid:
        ...     print(result.errors)
    """

    def __init__(
        self,
        budget: BudgetGuard,
        config: Optional[PipelineConfig] = None,
    ) -> None:
        self.budget = budget
        self.config = config or PipelineConfig()
        self._logger = logger.bind(component="handoff_validator")

    def prepare(self, session: SessionState, target_agent: AgentType) -> HandoffResult:
        """Validate ``session`` for a handoff to ``target_agent`` and package it.

        Args:
            session: Current session snapshot.
            target_agent: Stage that should receive the package.

        Returns:
            HandoffResult; ``package`` is set only when ``is_valid``.

        Raises:
            BudgetExceededError: The receiving stage's first paid operation
                would break the session budget.
        """
        source = session.current_agent
        expected = source.next_stage()
        if expected is None or target_agent != expected:
            return HandoffResult(
                is_valid=False,
                errors=[
                    f"Invalid handoff target {target_agent.value} "
                    f"from {source.value}"
                ],
            )

        if target_agent == AgentType.CREATIVE_DIRECTOR:
            errors, warnings, payload, confidence, items = self._check_product(session)
        else:
            errors, warnings, payload, confidence, items = self._check_creative(session)

        if confidence < self.config.confidence_threshold:
            warnings.append(
                f"Upstream confidence {confidence:.2f} is below "
                f"{self.config.confidence_threshold:.2f}; the next stage may rely on defaults"
            )

        if errors:
            self._logger.info(
                "handoff_rejected",
                session_id=session.session_id,
                source=source.value,
                target=target_agent.value,
                errors=errors,
            )
            return HandoffResult(is_valid=False, errors=errors, warnings=warnings)

        self.budget.ensure_within_budget(
            session.costs.total,
            self._downstream_cost(session, target_agent),
            f"handoff_to_{target_agent.value}",
            session_id=session.session_id,
        )

        package = HandoffPackage(
            session_id=session.session_id,
            source_agent=source,
            target_agent=target_agent,
            payload=payload,
            confidence=confidence,
            cost_so_far=session.costs.total,
            locale=session.locale,
            estimated_processing_time=self.estimate_processing_time(target_agent, items),
            warnings=warnings,
        )
        self._logger.info(
            "handoff_prepared",
            session_id=session.session_id,
            handoff_id=package.handoff_id,
            source=source.value,
            target=target_agent.value,
            warnings=len(warnings),
        )
        return HandoffResult(is_valid=True, warnings=warnings, package=package)

    @staticmethod
    def estimate_processing_time(target_agent: AgentType, item_count: int) -> int:
        """Seconds the receiving stage is expected to need. Monotonic in ``item_count``."""
        base, per_item = _PROCESSING_TIME.get(target_agent, (30, 5))
        return base + per_item * max(0, item_count)

    # =========================================================================
    # Stage Checks
    # =========================================================================

    def _check_product(
        self, session: SessionState
    ) -> tuple[list[str], list[str], dict[str, Any], float, int]:
        product = session.product
        errors: list[str] = []
        warnings: list[str] = []

        if not product.completed:
            errors.append("Product analysis is not complete")
        if not product.target_audience:
            errors.append("Target audience data is required")
        if not product.key_features:
            warnings.append("No key features identified")
        if not product.visual_preferences:
            warnings.append("No visual preferences provided; using creative defaults")

        payload = {
            "product": product.product,
            "target_audience": product.target_audience,
            "key_features": product.key_features,
            "visual_preferences": product.visual_preferences or DEFAULT_VISUAL_PREFERENCES,
            "positioning": product.positioning,
            "insights": product.insights,
        }
        items = len(product.key_features) + len(product.insights)
        return errors, warnings, payload, product.confidence, items

    def _check_creative(
        self, session: SessionState
    ) -> tuple[list[str], list[str], dict[str, Any], float, int]:
        creative = session.creative
        errors: list[str] = []
        warnings: list[str] = []

        decisions = creative.finalized_decisions
        assets = creative.ready_assets
        if not decisions:
            errors.append("At least one finalized visual decision is required")
        if not assets:
            errors.append("At least one generated asset is required")
        if not creative.style_direction:
            warnings.append("No style direction selected; using the product analysis defaults")
        if not creative.color_palette:
            warnings.append("No colour palette selected")
        if any(a.fallback for a in assets):
            warnings.append("Some assets are placeholders produced while generation was degraded")

        upstream = session.latest_handoff(AgentType.CREATIVE_DIRECTOR)
        payload = {
            "style_direction": creative.style_direction,
            "color_palette": creative.color_palette,
            "visual_decisions": [d.model_dump(mode="json") for d in decisions],
            "assets": [a.model_dump(mode="json") for a in assets],
            "product_analysis": upstream.payload if upstream else {},
        }
        items = len(assets) + len(decisions)
        return errors, warnings, payload, creative.confidence, items

    def _downstream_cost(self, session: SessionState, target_agent: AgentType) -> float:
        if target_agent == AgentType.VIDEO_PRODUCER:
            return self.budget.estimate_video(session.production.duration)
        return self.budget.estimate_image()
