"""
adcraft.agents.base - Abstract Stage Agent
============================================

This module defines BaseStageAgent, the foundation of the three pipeline
stages (Maya, David, Zara). It implements the Template Method pattern: the
base class owns the request lifecycle every stage shares, subclasses fill in
the stage-specific hooks.

Template Method Pattern:

    ┌──────────────────────────────────────────────────────────────┐
    │  BaseStageAgent.chat(session_id, message)   ← Public API     │
    │  ┌────────────────────────────────────────────────────────┐  │
    │  │ 1. validate input                                      │  │
    │  │ 2. session → busy status     (SessionManager)          │  │
    │  │ 3. budget gate               (BudgetGuard)             │  │
    │  │ 4. guarded provider call     (ErrorHandler)            │  │
    │  │ 5. _after_chat(session, ...)  ← Override this          │  │
    │  │ 6. session → READY (always)                            │  │
    │  └────────────────────────────────────────────────────────┘  │
    └──────────────────────────────────────────────────────────────┘

Stage Lifecycle (per session):

    ┌─────────┐ initialize() ┌───────┐ chat()/actions ┌───────────────────┐
    │ CREATED │ ───────────→ │ READY │ ─────────────→ │ ANALYZING/CREATING│
    └─────────┘              └───┬───┘ ←───────────── │ /AWAITING_INPUT   │
                                 │                    └───────────────────┘
                                 │ handoff()
                                 ▼
                          ┌───────────┐   next stage starts in CREATED
                          │ COMPLETED │ ─────────────────────────────→
                          └───────────┘

Subclass Contract:
    - agent_type (class attribute): which stage this is
    - _on_initialize(session, package): seed the sub-state on initialize
    - _after_chat(session, message, result): fold a chat turn into state
    - _status_details(session): stage-specific status fields
    - _is_ready_for_handoff(session): readiness after each update

Every paid call is priced and checked against the session budget BEFORE it is
dispatched. A BudgetExceededError therefore always means the provider was
never called.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, ClassVar, Optional

import structlog
from pydantic import BaseModel, Field

from adcraft.core.config import AdCraftConfig
from adcraft.core.enums import (
    AgentType,
    ErrorCategory,
    Locale,
    SessionStatus,
)
from adcraft.core.exceptions import (
    AdCraftError,
    GenerationCancelledError,
    GenerationFailedError,
    HandoffValidationError,
    InvalidRequestError,
    ServiceError,
    SessionNotFoundError,
    SessionStateError,
)
from adcraft.core.models import HandoffPackage, HandoffResult
from adcraft.core.state import ConversationMessage, CostBreakdown, SessionState
from adcraft.infrastructure.object_storage import ObjectStorage, StoredObject
from adcraft.integrations.generation.base import (
    BaseGenerationProvider,
    GenerationRequest,
    GenerationResult,
)
from adcraft.orchestration.budget import BudgetGuard, BudgetStatus
from adcraft.orchestration.error_handler import ErrorHandler
from adcraft.orchestration.handoff import HandoffValidator
from adcraft.orchestration.session_manager import GenerationSlot, SessionManager

logger = structlog.get_logger()

DEGRADED_CHAT_REPLY = (
    "I can't reach the assistant service right now. Your message is saved "
    "and we can pick up from here in a moment."
)


# =============================================================================
# Response Models
# =============================================================================
class StageStatus(BaseModel):
    """Snapshot returned by the ``status`` action of every stage.

    Attributes:
        session_id: Session identifier.
        agent: Stage currently owning the session.
        persona: Persona name of that stage.
        status: State machine status.
        phase: Stage sub-phase.
        locale: Session locale.
        ready_for_handoff: Whether the stage may hand off now.
        costs: Spend breakdown.
        budget: Budget position and alert level.
        active_generations: Generations currently in flight.
        message_count: Conversation turns of this stage.
        completed_stages: Stages already handed off.
        details: Stage-specific fields.
    """

    session_id: str
    agent: AgentType
    persona: str
    status: SessionStatus
    phase: str
    locale: Locale
    ready_for_handoff: bool
    costs: CostBreakdown
    budget: BudgetStatus
    active_generations: int = 0
    message_count: int = 0
    completed_stages: list[AgentType] = Field(default_factory=list)
    details: dict[str, Any] = Field(default_factory=dict)


class ChatReply(BaseModel):
    """Outcome of one chat turn."""

    message: ConversationMessage
    quick_actions: list[str] = Field(default_factory=list)
    cost: float = 0.0
    degraded: bool = False
    ready_for_handoff: bool = False
    phase: str


# =============================================================================
# BaseStageAgent
# =============================================================================
class BaseStageAgent(ABC):
    """Abstract base class for the three pipeline stages.

    What BaseStageAgent Handles:
        - Stage initialization (CREATED → READY), seeded from the
          incoming HandoffPackage
        - Status snapshots with budget position
        - Chat turns: busy status, budget gate, guarded provider call
        - Handoff: validation, packaging and acceptance
        - Guarded calls and uploads shared by the stage actions
        - Cancellation of in-flight generations

    Attributes:
        sessions: SessionManager owning all session reads and writes.
        errors: Shared ErrorHandler.
        budget: BudgetGuard pricing every paid call.
        validator: HandoffValidator used by handoff().
        provider: Generation provider.
        storage: Object storage for generated media.
        config: Full AdCraft configuration.
    """

    agent_type: ClassVar[AgentType]
    creates_session: ClassVar[bool] = False

    def __init__(
        self,
        sessions: SessionManager,
        errors: ErrorHandler,
        budget: BudgetGuard,
        validator: HandoffValidator,
        provider: BaseGenerationProvider,
        storage: ObjectStorage,
        config: AdCraftConfig,
    ) -> None:
        self.sessions = sessions
        self.errors = errors
        self.budget = budget
        self.validator = validator
        self.provider = provider
        self.storage = storage
        self.config = config
        self._logger = logger.bind(
            component="stage_agent",
            agent=self.agent_type.value,
            persona=self.persona,
        )

    @property
    def persona(self) -> str:
        return self.agent_type.persona

    # =========================================================================
    # Public Actions
    # =========================================================================

    async def initialize(
        self,
        session_id: Optional[str] = None,
        locale: Optional[Locale] = None,
    ) -> SessionState:
        """Start this stage for a session.

        The first stage creates the session when ``session_id`` is None or
        unknown. Later stages require a session that was handed to them.

        Raises:
            SessionNotFoundError: Later stage, unknown session.
            SessionStateError: The session belongs to another stage.
            InvalidRequestError: No handoff package was received.
        """
        session = await self._load_or_create(session_id, locale)
        if session.current_agent != self.agent_type:
            raise SessionStateError(
                session_id=session.session_id,
                current=session.current_agent.value,
                requested=self.agent_type.value,
                message=(
                    f"Session {session.session_id} is with "
                    f"{session.current_agent.persona}, not {self.persona}"
                ),
            )

        if session.status == SessionStatus.CREATED:
            package = session.latest_handoff(self.agent_type)
            if package is None and not self.creates_session:
                raise InvalidRequestError(
                    f"{self.persona} has not received a handoff for session "
                    f"{session.session_id}",
                    field="session_id",
                )
            await self.sessions.mutate(
                session.session_id,
                lambda s: self._on_initialize(s, package),
            )

        session = await self.sessions.initialize_stage(session.session_id, self.agent_type)
        self._logger.info(
            "stage_ready",
            session_id=session.session_id,
            phase=session.phase,
            locale=session.locale.value,
        )
        return session

    async def get_session(self, session_id: str) -> SessionState:
        return await self.sessions.get_session(session_id)

    async def status(self, session_id: str) -> StageStatus:
        """Report where the session stands."""
        session = await self.sessions.get_session(session_id)
        return StageStatus(
            session_id=session.session_id,
            agent=session.current_agent,
            persona=session.current_agent.persona,
            status=session.status,
            phase=session.phase,
            locale=session.locale,
            ready_for_handoff=session.ready_for_handoff,
            costs=session.costs,
            budget=self.budget.status(session.costs.total),
            active_generations=session.active_generations,
            message_count=len(session.messages_for(self.agent_type)),
            completed_stages=session.completed_stages,
            details=self._status_details(session),
        )

    async def chat(self, session_id: str, message: str) -> ChatReply:
        """Handle one conversational turn.

        Raises:
            InvalidRequestError: Empty message.
            BudgetExceededError: The turn would break the budget.
            GenerationFailedError: The provider failed and nothing could
                substitute a reply.
        """
        if not message or not message.strip():
            raise InvalidRequestError("Message cannot be empty", field="message")

        async with self.sessions.begin_request(
            session_id, self.agent_type, SessionStatus.ANALYZING
        ) as session:
            estimate = self.budget.estimate_chat()
            self.budget.ensure_within_budget(
                session.costs.total, estimate, "chat", session_id=session_id
            )
            await self.sessions.append_message(session_id, self.agent_type, "user", message)

            request = GenerationRequest(
                kind="chat",
                prompt=message,
                parameters={
                    "agent": self.agent_type.value,
                    "phase": session.phase,
                    "locale": session.locale.value,
                    "history": [
                        {"role": m.role, "content": m.content}
                        for m in session.messages_for(self.agent_type)[-10:]
                    ],
                },
            )
            outcome = await self.errors.execute(
                lambda: self.provider.generate(request),
                session_id=session_id,
                operation_name="chat",
                category=ErrorCategory.VISION_API,
            )

            result = outcome.result if isinstance(outcome.result, GenerationResult) else None
            cost = 0.0
            if result is not None:
                cost = estimate
                await self.sessions.record_cost(session_id, "chat", cost)

            content = result.content if result is not None else DEGRADED_CHAT_REPLY
            quick_actions = list(result.data.get("quick_actions", [])) if result else []
            reply = await self.sessions.append_message(
                session_id,
                self.agent_type,
                "agent",
                content,
                metadata={"degraded": outcome.degraded, "quick_actions": quick_actions},
            )

            def fold(s: SessionState) -> None:
                if result is not None:
                    self._after_chat(s, message, result)
                s.ready_for_handoff = self._is_ready_for_handoff(s)

            updated = await self.sessions.mutate(session_id, fold)

        return ChatReply(
            message=reply,
            quick_actions=quick_actions,
            cost=cost,
            degraded=outcome.degraded,
            ready_for_handoff=updated.ready_for_handoff,
            phase=updated.phase,
        )

    async def validate_handoff(self, session_id: str) -> HandoffResult:
        """Dry-run the handoff checks without moving the session."""
        session = await self.sessions.get_session(session_id)
        return self.validator.prepare(session, self._handoff_target())

    async def handoff(self, session_id: str) -> HandoffResult:
        """Validate, package and hand the session to the next stage.

        Raises:
            InvalidRequestError: This is the last stage.
            SessionStateError: The session is busy or owned by another stage.
            HandoffValidationError: Required data is missing.
            BudgetExceededError: The next stage cannot start within budget.
        """
        target = self._handoff_target()
        session = await self.sessions.get_session(session_id)
        if session.current_agent != self.agent_type or session.status != SessionStatus.READY:
            raise SessionStateError(
                session_id=session_id,
                current=f"{session.current_agent.value}:{session.status.value}",
                requested=f"handoff:{target.value}",
            )

        result = self.validator.prepare(session, target)
        if not result.is_valid or result.package is None:
            raise HandoffValidationError(session_id, result.errors, result.warnings)

        await self.sessions.accept_handoff(session_id, result.package)
        self._logger.info(
            "stage_handed_off",
            session_id=session_id,
            target=target.value,
            handoff_id=result.package.handoff_id,
            warnings=len(result.warnings),
        )
        return result

    def cancel(self, session_id: str) -> int:
        """Cancel this session's in-flight generations."""
        return self.sessions.cancel_generations(session_id)

    # =========================================================================
    # Hooks (Subclasses override)
    # =========================================================================

    @abstractmethod
    def _on_initialize(self, session: SessionState, package: Optional[HandoffPackage]) -> None:
        """Seed the stage sub-state when the stage starts."""
        ...

    @abstractmethod
    def _is_ready_for_handoff(self, session: SessionState) -> bool:
        ...

    def _after_chat(self, session: SessionState, message: str, result: GenerationResult) -> None:
        """Fold a successful chat turn into the session. No-op by default."""

    def _status_details(self, session: SessionState) -> dict[str, Any]:
        return {}

    # =========================================================================
    # Shared Helpers
    # =========================================================================

    def _handoff_target(self) -> AgentType:
        target = self.agent_type.next_stage()
        if target is None:
            raise InvalidRequestError(
                f"{self.persona} is the final stage and cannot hand off",
                field="agent",
            )
        return target

    async def _load_or_create(
        self,
        session_id: Optional[str],
        locale: Optional[Locale],
    ) -> SessionState:
        if session_id is not None:
            try:
                return await self.sessions.get_session(session_id)
            except SessionNotFoundError:
                if not self.creates_session:
                    raise
        elif not self.creates_session:
            raise InvalidRequestError("session_id is required", field="session_id")
        return await self.sessions.create_session(
            locale=locale,
            session_id=session_id,
            agent=self.agent_type,
        )

    async def _guarded_call(
        self,
        service: str,
        call: Callable[[], Awaitable[Any]],
    ) -> tuple[Any, Optional[Exception]]:
        """Run ``call`` behind the breaker of ``service``.

        Returns:
            (result, None) on success, (None, error) on failure or when the
            breaker is open. Non-dependency AdCraft errors propagate.
        """
        breakers = self.errors.breakers
        if not await breakers.check(service):
            return None, ServiceError(f"Circuit open for {service}", service=service)
        try:
            result = await call()
        except AdCraftError as exc:
            if not isinstance(exc, ServiceError):
                raise
            await breakers.record_failure(service)
            return None, exc
        except Exception as exc:
            await breakers.record_failure(service)
            return None, exc
        await breakers.record_success(service)
        return result, None

    async def _upload(
        self,
        session_id: str,
        data: bytes,
        name: str,
        mime_type: str,
    ) -> StoredObject:
        """Upload generated media, continuing without storage if it fails."""

        async def upload() -> StoredObject:
            return await self.storage.upload(data, name, mime_type)

        stored, error = await self._guarded_call("storage", upload)
        if error is None:
            return stored

        handled = await self.errors.handle_storage_error(
            error, session_id, name, operation=upload
        )
        if not handled.success:
            raise GenerationFailedError(
                message=f"Upload of {name} failed: {handled.error_record.message}",
                operation="file_upload",
                error_record_id=handled.error_record.id,
            )
        if isinstance(handled.result, StoredObject):
            return handled.result
        payload = handled.result if isinstance(handled.result, dict) else {}
        return StoredObject(
            file_name=payload.get("file_name", name),
            url=payload.get("url", ""),
            size=int(payload.get("size", 0)),
            mime_type=mime_type,
            stored=bool(payload.get("stored", False)),
        )

    @staticmethod
    def _is_cancelled(slot: GenerationSlot, cancel: Optional[asyncio.Event]) -> bool:
        return slot.is_cancelled or (cancel is not None and cancel.is_set())

    def _discard_if_cancelled(
        self,
        slot: GenerationSlot,
        cancel: Optional[asyncio.Event],
        operation: str,
    ) -> None:
        if self._is_cancelled(slot, cancel):
            self._logger.info(
                "generation_result_discarded",
                session_id=slot.session_id,
                slot_id=slot.slot_id,
                operation=operation,
            )
            raise GenerationCancelledError(slot.session_id, operation)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(agent={self.agent_type.value!r}, persona={self.persona!r})"
