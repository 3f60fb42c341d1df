"""
adcraft.orchestration.session_manager - Session State Machine
===============================================================

This module owns every read and write of SessionState. Agent stages never
touch the document store directly; they go through the SessionManager, which
enforces the status state machine, the per-session generation cap and the
stage switch performed by an accepted handoff.

State Machine (per stage):

    CREATED ──initialize──> READY ──request──> ANALYZING | CREATING | AWAITING_INPUT
                              ^                          │
                              └──── request finished ────┘   (always)

    READY ──handoff accepted──> COMPLETED ──stage switch──> CREATED (next stage)
    READY ──production accepted (last stage)──> COMPLETED

    Busy statuses may move between each other, so concurrent requests on the
    same session do not reject each other. ERROR can only go back to READY.

Persistence Model:
    Read-modify-write against the DocumentStore, last write wins. There is no
    distributed lock: two concurrent requests can race on the same session.
    ``mutate()`` keeps the race window to one read and one write.

Generation Cap:
    ``generation_slot()`` admits a generation only while the session's
    persisted ``active_generations`` is below the cap (default 3). The check
    uses the latest snapshot, so it is best-effort under races. Requests over
    the cap are rejected with ConcurrencyLimitError, never queued.

Cancellation:
    Each admitted generation gets a GenerationSlot carrying an asyncio.Event.
    ``cancel_generations()`` sets every event of a session; the stage checks
    the slot after its external call returns and discards late results.

Document Store Outages:
    Failed reads and writes go through ErrorHandler.handle_document_store_error.
    Reads can be served from the session cache (flagged stale); writes that
    cannot be persisted still land in the cache so the session keeps moving.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, Optional
from uuid import uuid4

import structlog

from adcraft.core.config import PipelineConfig
from adcraft.core.enums import (
    AgentType,
    CreativePhase,
    Locale,
    ProductionPhase,
    ProductPhase,
    SessionStatus,
)
from adcraft.core.exceptions import (
    AdCraftError,
    ConcurrencyLimitError,
    ServiceError,
    SessionNotFoundError,
    SessionStateError,
    StateError,
)
from adcraft.core.models import HandoffPackage
from adcraft.core.state import ConversationMessage, CostCategory, SessionState
from adcraft.infrastructure.document_store import DocumentStore
from adcraft.orchestration.error_handler import ErrorHandler
from adcraft.orchestration.fallbacks import SessionCache

logger = structlog.get_logger()

SESSIONS_COLLECTION = "sessions"

BUSY_STATUSES = frozenset({
    SessionStatus.ANALYZING,
    SessionStatus.CREATING,
    SessionStatus.AWAITING_INPUT,
})

ALLOWED_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.CREATED: frozenset({SessionStatus.READY, SessionStatus.ERROR}),
    SessionStatus.READY: BUSY_STATUSES | {SessionStatus.COMPLETED, SessionStatus.ERROR},
    SessionStatus.ANALYZING: BUSY_STATUSES | {SessionStatus.READY, SessionStatus.ERROR},
    SessionStatus.CREATING: BUSY_STATUSES | {SessionStatus.READY, SessionStatus.ERROR},
    SessionStatus.AWAITING_INPUT: BUSY_STATUSES | {SessionStatus.READY, SessionStatus.ERROR},
    SessionStatus.ERROR: frozenset({SessionStatus.READY}),
    SessionStatus.COMPLETED: frozenset(),
}

INITIAL_PHASE: dict[AgentType, str] = {
    AgentType.PRODUCT_INTELLIGENCE: ProductPhase.ANALYSIS.value,
    AgentType.CREATIVE_DIRECTOR: CreativePhase.ANALYSIS.value,
    AgentType.VIDEO_PRODUCER: ProductionPhase.PLANNING.value,
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def apply_transition(session: SessionState, target: SessionStatus) -> None:
    """Move ``session`` to ``target`` in memory, enforcing the transition table.

    Raises:
        SessionStateError: The transition is not allowed.
    """
    if target not in ALLOWED_TRANSITIONS[session.status]:
        raise SessionStateError(
            session_id=session.session_id,
            current=session.status.value,
            requested=target.value,
        )
    session.status = target
    session.updated_at = _now()


# =============================================================================
# Generation Slot
# =============================================================================
class GenerationSlot:
    """An admitted generation operation.

    Attributes:
        session_id: Owning session.
        slot_id: Unique slot identifier.
        cancelled: Set when the caller cancels the session's generations.
    """

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        self.slot_id = f"gen_{uuid4().hex[:10]}"
        self.cancelled = asyncio.Event()

    @property
    def is_cancelled(self) -> bool:
        return self.cancelled.is_set()

    def __repr__(self) -> str:
        return f"GenerationSlot(session_id={self.session_id!r}, slot_id={self.slot_id!r})"


# =============================================================================
# SessionManager
# =============================================================================
class SessionManager:
    """Reads, writes and transitions pipeline sessions.

    Attributes:
        store: The document store holding session documents.
        errors: ErrorHandler used for document store failures.
        cache: Session cache shared with the fallback catalog.
        config: Pipeline settings (generation cap, default locale).

    Example:
        >>> session = await manager.create_session(locale=Locale.JA)
        >>> session = await manager.initialize_stage(session.session_id, AgentType.PRODUCT_INTELLIGENCE)
        >>> async with manager.begin_request(session.session_id, AgentType.PRODUCT_INTELLIGENCE,
        ...                                  SessionStatus.ANALYZING):
        ...     ...  # session is ANALYZING here, READY afterwards
    """

    def __init__(
        self,
        store: DocumentStore,
        errors: ErrorHandler,
        cache: Optional[SessionCache] = None,
        config: Optional[PipelineConfig] = None,
    ) -> None:
        self.store = store
        self.errors = errors
        self.cache = cache if cache is not None else errors.catalog.session_cache
        self.config = config or PipelineConfig()
        self._slots: dict[str, set[GenerationSlot]] = {}
        # Sessions whose latest state only exists in the cache.
        self._unsynced: set[str] = set()
        self._logger = logger.bind(component="session_manager")

    # =========================================================================
    # Create / Read / Write
    # =========================================================================

    async def create_session(
        self,
        locale: Optional[Locale] = None,
        session_id: Optional[str] = None,
        agent: AgentType = AgentType.PRODUCT_INTELLIGENCE,
    ) -> SessionState:
        """Create and persist a new session in CREATED status."""
        session = SessionState(
            current_agent=agent,
            locale=locale or Locale(self.config.default_locale),
            phase=INITIAL_PHASE[agent],
        )
        if session_id is not None:
            session.session_id = session_id
        await self._write(session.session_id, self._dump(session), create=True)
        self._logger.info(
            "session_created",
            session_id=session.session_id,
            agent=agent.value,
            locale=session.locale.value,
        )
        return session

    async def get_session(self, session_id: str) -> SessionState:
        """Load a session.

        Raises:
            SessionNotFoundError: No such session.
            StateError: The store is down and no cached copy exists.
        """
        try:
            data = await self.store.get(SESSIONS_COLLECTION, session_id)
        except Exception as exc:
            if isinstance(exc, AdCraftError) and not isinstance(exc, ServiceError):
                raise
            data = await self._recover_read(exc, session_id)
        else:
            if session_id in self._unsynced:
                data = await self._resync(session_id, data)

        if data is None:
            raise SessionNotFoundError(session_id)
        self.cache.put(session_id, data)
        return SessionState.model_validate(data)

    async def save(self, session: SessionState) -> SessionState:
        """Persist the full session (except the generation counter)."""
        session.updated_at = _now()
        await self._write(session.session_id, self._dump(session))
        return session

    async def mutate(
        self,
        session_id: str,
        change: Callable[[SessionState], Any],
    ) -> SessionState:
        """Read the latest session, apply ``change`` in memory, write it back."""
        session = await self.get_session(session_id)
        change(session)
        return await self.save(session)

    # =========================================================================
    # State Machine
    # =========================================================================

    async def initialize_stage(self, session_id: str, agent: AgentType) -> SessionState:
        """Move a stage from CREATED to READY.

        Re-initializing a stage that is already READY is a no-op.
        """
        session = await self.get_session(session_id)
        self._ensure_agent(session, agent)
        if session.status == SessionStatus.READY:
            return session
        apply_transition(session, SessionStatus.READY)
        self._logger.info("stage_initialized", session_id=session_id, agent=agent.value)
        return await self.save(session)

    @asynccontextmanager
    async def begin_request(
        self,
        session_id: str,
        agent: AgentType,
        busy: SessionStatus,
    ) -> AsyncIterator[SessionState]:
        """Hold the session in a busy status for the duration of one request.

        The session always returns to READY when the block exits, whether it
        finished or raised, unless the block moved the stage on (COMPLETED or
        a new stage).

        Raises:
            SessionStateError: The stage is not owned by ``agent`` or the
                session cannot enter ``busy``.
        """
        if busy not in BUSY_STATUSES:
            raise ValueError(f"{busy.value} is not a busy status")

        session = await self.get_session(session_id)
        self._ensure_agent(session, agent)
        apply_transition(session, busy)
        session = await self.save(session)

        try:
            yield session
        finally:
            await self._release(session_id, agent)

    async def _release(self, session_id: str, agent: AgentType) -> None:
        def back_to_ready(session: SessionState) -> None:
            if session.current_agent == agent and session.status in BUSY_STATUSES:
                apply_transition(session, SessionStatus.READY)

        await self.mutate(session_id, back_to_ready)

    # =========================================================================
    # Generation Admission
    # =========================================================================

    @asynccontextmanager
    async def generation_slot(self, session_id: str) -> AsyncIterator[GenerationSlot]:
        """Admit one generation operation, or reject it at the cap.

        Raises:
            ConcurrencyLimitError: The session already runs the maximum
                number of generations.
        """
        session = await self.get_session(session_id)
        limit = self.config.max_concurrent_generations
        if session.active_generations >= limit:
            self._logger.warning(
                "generation_rejected",
                session_id=session_id,
                active=session.active_generations,
                limit=limit,
            )
            raise ConcurrencyLimitError(session_id, session.active_generations, limit)

        await self._patch(session_id, {"active_generations": session.active_generations + 1})
        slot = GenerationSlot(session_id)
        self._slots.setdefault(session_id, set()).add(slot)
        self._logger.debug("generation_admitted", session_id=session_id, slot_id=slot.slot_id)

        try:
            yield slot
        finally:
            slots = self._slots.get(session_id)
            if slots is not None:
                slots.discard(slot)
                if not slots:
                    del self._slots[session_id]
            latest = await self.get_session(session_id)
            await self._patch(
                session_id,
                {"active_generations": max(0, latest.active_generations - 1)},
            )

    def cancel_generations(self, session_id: str) -> int:
        """Cancel every in-flight generation of a session. Returns how many."""
        slots = self._slots.get(session_id, set())
        for slot in slots:
            slot.cancelled.set()
        if slots:
            self._logger.info("generations_cancelled", session_id=session_id, count=len(slots))
        return len(slots)

    # =========================================================================
    # Session Content
    # =========================================================================

    async def record_cost(
        self,
        session_id: str,
        category: CostCategory,
        amount: float,
    ) -> SessionState:
        """Add an actual cost to the session breakdown."""
        session = await self.mutate(session_id, lambda s: s.costs.add(category, amount))
        self._logger.info(
            "cost_recorded",
            session_id=session_id,
            category=category,
            amount=amount,
            total=session.costs.total,
        )
        return session

    async def append_message(
        self,
        session_id: str,
        agent: AgentType,
        role: str,
        content: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> ConversationMessage:
        """Append one conversation turn."""
        message = ConversationMessage(
            role=role,
            agent=agent,
            content=content,
            metadata=metadata or {},
        )
        await self.mutate(session_id, lambda s: s.conversation.append(message))
        return message

    async def accept_handoff(self, session_id: str, package: HandoffPackage) -> SessionState:
        """Complete the upstream stage and hand the session to the next one.

        READY → COMPLETED for the source stage, then the session switches to
        ``package.target_agent`` in CREATED status until that stage initializes.

        Raises:
            SessionStateError: The session is not owned by the package's
                source stage, or is not READY.
        """

        def switch(session: SessionState) -> None:
            self._ensure_agent(session, package.source_agent)
            apply_transition(session, SessionStatus.COMPLETED)
            session.handoffs.append(package)
            session.completed_stages.append(package.source_agent)
            session.current_agent = package.target_agent
            session.status = SessionStatus.CREATED
            session.phase = INITIAL_PHASE[package.target_agent]
            session.ready_for_handoff = False

        session = await self.mutate(session_id, switch)
        self._logger.info(
            "handoff_accepted",
            session_id=session_id,
            handoff_id=package.handoff_id,
            source=package.source_agent.value,
            target=package.target_agent.value,
        )
        return session

    async def complete_final_stage(self, session_id: str) -> SessionState:
        """Mark the last stage (and the pipeline run) completed."""

        def finish(session: SessionState) -> None:
            self._ensure_agent(session, AgentType.VIDEO_PRODUCER)
            apply_transition(session, SessionStatus.COMPLETED)
            session.completed_stages.append(AgentType.VIDEO_PRODUCER)

        session = await self.mutate(session_id, finish)
        self._logger.info("pipeline_completed", session_id=session_id, total_cost=session.costs.total)
        return session

    # =========================================================================
    # Internal
    # =========================================================================

    @staticmethod
    def _dump(session: SessionState) -> dict[str, Any]:
        return session.model_dump(mode="json", exclude={"active_generations"})

    @staticmethod
    def _ensure_agent(session: SessionState, agent: AgentType) -> None:
        if session.current_agent != agent:
            raise SessionStateError(
                session_id=session.session_id,
                current=session.current_agent.value,
                requested=agent.value,
                message=(
                    f"Session {session.session_id} is owned by "
                    f"{session.current_agent.value}, not {agent.value}"
                ),
            )

    async def _patch(self, session_id: str, patch: dict[str, Any]) -> None:
        await self._write(session_id, patch)

    async def _write(self, session_id: str, data: dict[str, Any], create: bool = False) -> None:
        async def write() -> None:
            if create:
                await self.store.create(SESSIONS_COLLECTION, session_id, data)
            else:
                await self.store.update(SESSIONS_COLLECTION, session_id, data)

        try:
            await write()
        except StateError as exc:
            if exc.error_code == "DOCUMENT_NOT_FOUND":
                raise SessionNotFoundError(session_id) from exc
            raise
        except Exception as exc:
            if isinstance(exc, AdCraftError) and not isinstance(exc, ServiceError):
                raise
            handled = await self.errors.handle_document_store_error(
                exc,
                session_id,
                "create_session" if create else "save_session",
                data=data,
                operation=write,
            )
            if not handled.success:
                raise StateError(
                    message=f"Could not persist session {session_id}",
                    collection=SESSIONS_COLLECTION,
                    document_id=session_id,
                ) from exc
            if handled.fallback_used is not None:
                self._unsynced.add(session_id)
                self._logger.warning(
                    "session_persist_degraded",
                    session_id=session_id,
                    fallback_type=handled.fallback_used.type.value,
                )

        # Patches only refresh an existing entry; they are never a full document.
        cached = self.cache.get(session_id)
        if create:
            self.cache.put(session_id, dict(data))
        elif cached is not None:
            cached.update(data)

    async def _resync(
        self,
        session_id: str,
        stored: Optional[dict[str, Any]],
    ) -> Optional[dict[str, Any]]:
        """Write back a session whose last write only reached the cache.

        The cached copy is newer than whatever the store returned (possibly
        nothing, after a degraded create). If the write-back fails again the
        cached copy is still served and the session stays unsynced.
        """
        cached = self.cache.get(session_id)
        if cached is None:
            self._unsynced.discard(session_id)
            return stored

        data = dict(cached)
        try:
            if stored is None:
                await self.store.create(SESSIONS_COLLECTION, session_id, data)
            else:
                await self.store.update(SESSIONS_COLLECTION, session_id, data)
        except Exception as exc:
            if isinstance(exc, AdCraftError) and not isinstance(exc, ServiceError):
                raise
            self._logger.warning(
                "session_resync_failed",
                session_id=session_id,
                error=str(exc),
            )
            return data

        self._unsynced.discard(session_id)
        self._logger.info("session_resynced", session_id=session_id, created=stored is None)
        return data

    async def _recover_read(self, exc: Exception, session_id: str) -> Optional[dict[str, Any]]:
        handled = await self.errors.handle_document_store_error(
            exc,
            session_id,
            "get_session",
            operation=lambda: self.store.get(SESSIONS_COLLECTION, session_id),
        )
        if handled.success and handled.fallback_used is None:
            return handled.result

        result = handled.result if handled.success else None
        if isinstance(result, dict) and isinstance(result.get("cached"), dict):
            self._logger.warning(
                "session_served_from_cache",
                session_id=session_id,
                warning=result.get("warning"),
            )
            return dict(result["cached"])

        raise StateError(
            message=f"Session store unavailable for {session_id}",
            collection=SESSIONS_COLLECTION,
            document_id=session_id,
            error_code="SESSION_STORE_UNAVAILABLE",
        ) from exc
