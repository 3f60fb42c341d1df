"""
adcraft.orchestration.budget - Cost Estimation and Budget Gate
================================================================

Every paid external call (vision analysis, chat, image generation, video
generation) is priced BEFORE it is dispatched. The BudgetGuard rejects the
call with BudgetExceededError when:

    cost_so_far + estimated_cost > total_budget      (default $300)
    estimated_cost > per_operation_cap                (default $5)

Nothing is reserved or charged here: the guard only answers "may this call
go out?". The SessionManager records the actual cost after the call returns.

Price Table (USD):

    vision analysis ........................ 0.20
    chat turn .............................. 0.15
    storage upload ......................... 0.01
    image generation ........ model price × quality multiplier
        imagen-3 0.03 | imagen-4 0.04 | imagen-4-ultra 0.06
        draft 0.5 | standard 1.0 | high 1.5 | premium 2.5
    video generation ........ 1.50 per 15 seconds

Alert Levels (fraction of the total budget spent):

    < warning (75%)  → "none"
    ≥ warning        → "warning"
    ≥ critical (90%) → "critical"
    ≥ 100%           → "exceeded"
"""

from __future__ import annotations

from typing import Literal, Optional

import structlog
from pydantic import BaseModel

from adcraft.core.config import BudgetConfig
from adcraft.core.exceptions import BudgetExceededError, InvalidRequestError

logger = structlog.get_logger()


IMAGE_MODEL_COSTS: dict[str, float] = {
    "imagen-3": 0.03,
    "imagen-4": 0.04,
    "imagen-4-ultra": 0.06,
}

QUALITY_MULTIPLIERS: dict[str, float] = {
    "draft": 0.5,
    "standard": 1.0,
    "high": 1.5,
    "premium": 2.5,
}

VIDEO_COST_PER_15_SECONDS = 1.50
ANALYSIS_COST = 0.20
CHAT_COST = 0.15
STORAGE_COST = 0.01

AlertLevel = Literal["none", "warning", "critical", "exceeded"]


class BudgetStatus(BaseModel):
    """Budget position of one session.

    Attributes:
        total_budget: Configured ceiling.
        spent: Cumulative spend.
        remaining: Budget left (never negative).
        used_percent: Spend as a percentage of the budget.
        alert_level: "none", "warning", "critical" or "exceeded".
        can_proceed: False once the budget is used up.
    """

    total_budget: float
    spent: float
    remaining: float
    used_percent: float
    alert_level: AlertLevel
    can_proceed: bool


class BudgetGuard:
    """Prices paid operations and enforces the session budget.

    Example:
        >>> guard = BudgetGuard(BudgetConfig(total_budget=1.0))
        >>> guard.ensure_within_budget(0.98, guard.estimate_image("imagen-4"), "generate_asset")
        Traceback (most recent call last):
        ...
        BudgetExceededError: ...
    """

    def __init__(self, config: Optional[BudgetConfig] = None) -> None:
        self.config = config or BudgetConfig()
        self._logger = logger.bind(component="budget_guard")

    # =========================================================================
    # Estimation
    # =========================================================================

    @staticmethod
    def estimate_image(model: str = "imagen-4", quality: str = "standard") -> float:
        """Price one image generation."""
        if model not in IMAGE_MODEL_COSTS:
            raise InvalidRequestError(f"Unknown image model: {model}", field="model")
        if quality not in QUALITY_MULTIPLIERS:
            raise InvalidRequestError(f"Unknown quality tier: {quality}", field="quality")
        return round(IMAGE_MODEL_COSTS[model] * QUALITY_MULTIPLIERS[quality], 4)

    @staticmethod
    def estimate_video(duration_seconds: int) -> float:
        """Price one video generation."""
        if duration_seconds <= 0:
            raise InvalidRequestError("Video duration must be positive", field="duration")
        return round(VIDEO_COST_PER_15_SECONDS * duration_seconds / 15, 4)

    @staticmethod
    def estimate_analysis() -> float:
        """Price one product image analysis."""
        return ANALYSIS_COST

    @staticmethod
    def estimate_chat() -> float:
        """Price one chat turn."""
        return CHAT_COST

    # =========================================================================
    # Gate
    # =========================================================================

    def status(self, spent: float) -> BudgetStatus:
        """Describe the budget position for a session that spent ``spent``."""
        total = self.config.total_budget
        fraction = spent / total
        if fraction >= 1.0:
            level: AlertLevel = "exceeded"
        elif fraction >= self.config.critical_threshold:
            level = "critical"
        elif fraction >= self.config.warning_threshold:
            level = "warning"
        else:
            level = "none"
        return BudgetStatus(
            total_budget=total,
            spent=round(spent, 4),
            remaining=round(max(0.0, total - spent), 4),
            used_percent=round(fraction * 100, 2),
            alert_level=level,
            can_proceed=fraction < 1.0,
        )

    def ensure_within_budget(
        self,
        current_cost: float,
        estimated_cost: float,
        operation: str,
        session_id: Optional[str] = None,
    ) -> BudgetStatus:
        """Reject ``operation`` if it would break the budget or the per-operation cap.

        Returns:
            The budget status the operation would leave behind.

        Raises:
            BudgetExceededError: The operation must not be dispatched.
        """
        if estimated_cost > self.config.per_operation_cap:
            self._logger.warning(
                "budget_rejected",
                reason="per_operation_cap",
                operation=operation,
                session_id=session_id,
                estimated_cost=estimated_cost,
                cap=self.config.per_operation_cap,
            )
            raise BudgetExceededError(
                message=(
                    f"{operation} would cost ${estimated_cost:.2f}, above the "
                    f"${self.config.per_operation_cap:.2f} per-operation cap"
                ),
                current_cost=current_cost,
                estimated_cost=estimated_cost,
                limit=self.config.per_operation_cap,
                details={"operation": operation, "reason": "per_operation_cap"},
            )

        projected = current_cost + estimated_cost
        if projected > self.config.total_budget:
            self._logger.warning(
                "budget_rejected",
                reason="total_budget",
                operation=operation,
                session_id=session_id,
                current_cost=current_cost,
                estimated_cost=estimated_cost,
                total_budget=self.config.total_budget,
            )
            raise BudgetExceededError(
                message=(
                    f"{operation} would bring spend to ${projected:.2f}, above the "
                    f"${self.config.total_budget:.2f} budget"
                ),
                current_cost=current_cost,
                estimated_cost=estimated_cost,
                limit=self.config.total_budget,
                details={"operation": operation, "reason": "total_budget"},
            )

        status = self.status(projected)
        if status.alert_level in ("warning", "critical"):
            self._logger.info(
                "budget_alert",
                level=status.alert_level,
                session_id=session_id,
                used_percent=status.used_percent,
            )
        return status
