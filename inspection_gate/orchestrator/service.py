"""Workflow orchestrator — the authoritative gate in front of every tool call."""

import asyncio
import logging
from collections import Counter
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from inspection_gate.config import Settings
from inspection_gate.graph.results import GATE_NAMES, GateResult, to_summary
from inspection_gate.graph.workflow import run_all_gates
from inspection_gate.orchestrator.errors import (
    MissingContextError,
    SessionNotFoundError,
    ToolNotAllowedError,
    UnsupportedStateVersionError,
)
from inspection_gate.orchestrator.state import (
    WorkflowState,
    default_workflow_state,
    migrate_workflow_state,
)
from inspection_gate.orchestrator.tools import (
    ToolResult,
    assert_tool_allowed,
    assert_tool_context,
    on_tool_result,
    tool_failure,
)
from inspection_gate.orchestrator.transitions import advance, get_allowed_tools
from inspection_gate.services.events import (
    EventBus,
    GatesEvaluated,
    PhaseAdvanced,
    SessionInitialized,
    ToolFailed,
    ToolRejected,
)
from inspection_gate.services.storage import InspectionRepository

logger = logging.getLogger(__name__)

STATE_FIELD = "workflowState"


class WorkflowOrchestrator:
    """Owns workflow state for inspection sessions.

    Every read-merge-write of a session's state runs under that session's
    ``asyncio.Lock``, so concurrent tool calls cannot lose each other's
    updates. Gate evaluation is read-only and runs outside the lock.

    Args:
        repository: Storage collaborator holding sessions and their data.
        settings: Service settings (gate deadline).
        event_bus: Bus receiving the orchestrator's domain events.
    """

    def __init__(
        self,
        repository: InspectionRepository,
        settings: Settings,
        event_bus: EventBus,
    ) -> None:
        self.repository = repository
        self.settings = settings
        self.event_bus = event_bus
        self._locks: dict[int, asyncio.Lock] = {}
        self._lock_users: Counter[int] = Counter()

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _session_lock(self, session_id: int) -> AsyncIterator[None]:
        """Hold the session's lock; it is discarded once nobody holds or awaits it."""
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        self._lock_users[session_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[session_id] -= 1
            if not self._lock_users[session_id]:
                del self._lock_users[session_id]
                del self._locks[session_id]

    async def get_state(self, session_id: int) -> WorkflowState | None:
        """Load and migrate the stored state; ``None`` if the session has none.

        Raises:
            UnsupportedStateVersionError: The stored record is from a newer schema.
        """
        session = await self.repository.get_inspection_session(session_id)
        if session is None:
            return None
        try:
            return migrate_workflow_state(session.get(STATE_FIELD))
        except ValueError as exc:
            logger.error("Workflow state unreadable — session_id=%s error=%s", session_id, exc)
            raise UnsupportedStateVersionError(session_id, str(exc)) from exc

    async def _write(self, session_id: int, state: WorkflowState) -> WorkflowState:
        updated = await self.repository.update_session(session_id, {STATE_FIELD: state})
        if updated is None:
            raise SessionNotFoundError(session_id)
        return state

    async def _merge(self, session_id: int, patch: Mapping[str, Any]) -> WorkflowState:
        existing = await self.get_state(session_id) or default_workflow_state(
            "", session_id, "General"
        )
        merged: dict[str, Any] = {**existing, **patch}
        merged["context"] = {**existing["context"], **(patch.get("context") or {})}
        return await self._write(session_id, merged)  # type: ignore[arg-type]

    async def set_state(self, session_id: int, patch: Mapping[str, Any]) -> WorkflowState:
        """Shallow-merge ``patch`` into the stored state; ``context`` merges one level deeper.

        Raises:
            SessionNotFoundError: The session does not exist.
        """
        async with self._session_lock(session_id):
            return await self._merge(session_id, patch)

    async def set_context(self, session_id: int, context: Mapping[str, Any]) -> WorkflowState:
        return await self.set_state(session_id, {"context": dict(context)})

    async def init_session(self, claim_id: int, session_id: int, peril: str) -> WorkflowState:
        """Start (or restart) the workflow for a session at the first phase."""
        async with self._session_lock(session_id):
            state = await self._write(session_id, default_workflow_state(claim_id, session_id, peril))

        logger.info(
            "Workflow initialised — session_id=%s claim_id=%s peril=%s phase=%s",
            session_id,
            claim_id,
            peril,
            state["phase"],
        )
        self.event_bus.publish(
            SessionInitialized(session_id, claim_id=claim_id, peril=peril, phase=state["phase"])
        )
        return state

    async def get_allowed_tools(self, session_id: int) -> list[str]:
        state = await self.get_state(session_id)
        if state is None:
            raise SessionNotFoundError(session_id, "No workflow state for session")
        return get_allowed_tools(state)

    # ------------------------------------------------------------------
    # Tool gating
    # ------------------------------------------------------------------

    async def validate_tool_for_workflow(
        self,
        session_id: int,
        tool_name: str,
        args: Mapping[str, Any] | None = None,
    ) -> ToolResult | None:
        """Decide whether a tool may run right now.

        Args:
            session_id: Inspection session the tool acts on.
            tool_name: Tool about to be executed.
            args: Tool call arguments.

        Returns:
            ``None`` to proceed, including when the session has no workflow
            state yet. Otherwise a ``CONTEXT_ERROR`` failure result coded
            ``TOOL_NOT_ALLOWED``, ``MISSING_CONTEXT`` or
            ``STATE_VERSION_UNSUPPORTED``.
        """
        try:
            state = await self.get_state(session_id)
        except UnsupportedStateVersionError as exc:
            return tool_failure(
                tool_name,
                {
                    "type": "CONTEXT_ERROR",
                    "code": exc.code,
                    "message": str(exc),
                    "hint": "Re-initialize the workflow for this session.",
                },
            )
        if state is None:
            return None

        workflow_meta = {"workflow": {"phase": state["phase"], "stepId": state["stepId"]}}

        try:
            assert_tool_allowed(state, tool_name)
            assert_tool_context(state, tool_name, args)
        except ToolNotAllowedError as exc:
            allowed = get_allowed_tools(state)
            logger.warning(
                "Tool rejected — session_id=%s tool=%s phase=%s",
                session_id,
                tool_name,
                state["phase"],
            )
            self.event_bus.publish(
                ToolRejected(session_id, tool=tool_name, code=exc.code, phase=state["phase"])
            )
            return tool_failure(
                tool_name,
                {
                    "type": "CONTEXT_ERROR",
                    "code": "TOOL_NOT_ALLOWED",
                    "message": str(exc),
                    "details": {"allowedTools": allowed},
                    "hint": f"Allowed tools: {', '.join(allowed)}. Call set_phase to advance.",
                },
                workflow_meta,  # type: ignore[arg-type]
            )
        except MissingContextError as exc:
            logger.warning(
                "Tool missing context — session_id=%s tool=%s", session_id, tool_name
            )
            self.event_bus.publish(
                ToolRejected(session_id, tool=tool_name, code=exc.code, phase=state["phase"])
            )
            return tool_failure(
                tool_name,
                {
                    "type": "CONTEXT_ERROR",
                    "code": "MISSING_CONTEXT",
                    "message": str(exc),
                    "hint": "Set the room/elevation context first with set_context.",
                },
                workflow_meta,  # type: ignore[arg-type]
            )

        return None

    async def record_tool_result(
        self, session_id: int, tool_name: str, result: ToolResult
    ) -> WorkflowState | None:
        """Store a failed tool call as ``lastToolError``; returns the current state."""
        async with self._session_lock(session_id):
            state = await self.get_state(session_id)
            if state is None:
                return None
            updated = on_tool_result(state, tool_name, result)
            if updated is state:
                return state
            state = await self._write(session_id, updated)

        error = state["lastToolError"]
        logger.info(
            "Tool failure recorded — session_id=%s tool=%s code=%s",
            session_id,
            tool_name,
            error["code"],
        )
        self.event_bus.publish(
            ToolFailed(session_id, tool=tool_name, code=error["code"], message=error["message"])
        )
        return state

    # ------------------------------------------------------------------
    # Gates and transitions
    # ------------------------------------------------------------------

    async def run_gates(self, session_id: int) -> tuple[WorkflowState, dict[str, GateResult]]:
        """Run all four gates and persist their summaries on the state.

        Raises:
            SessionNotFoundError: The session has no workflow state.
            GateTimeoutError: The gate run exceeded the configured deadline.
        """
        state = await self.get_state(session_id)
        if state is None:
            raise SessionNotFoundError(session_id, "No workflow state for session")

        results = await run_all_gates(
            self.repository,
            session_id,
            state["peril"],
            timeout=self.settings.gate_timeout_seconds,
        )

        summary: dict[str, Any] = {
            name: to_summary(results[name]) for name in GATE_NAMES if name in results
        }
        summary["at"] = datetime.now(timezone.utc).isoformat()
        state = await self.set_state(session_id, {"lastValidatorSummary": summary})

        blocked = tuple(name for name in GATE_NAMES if name in results and not results[name]["ok"])
        self.event_bus.publish(
            GatesEvaluated(
                session_id,
                blocked_gates=blocked,
                blockers=sum(r["summary"]["blockers"] for r in results.values()),
                warnings=sum(r["summary"]["warnings"] for r in results.values()),
            )
        )
        return state, results

    async def advance_session(self, session_id: int) -> tuple[bool, WorkflowState]:
        """Move to the next phase when permitted.

        Returns:
            ``(advanced, state)`` where ``state`` is the stored state after the call.

        Raises:
            SessionNotFoundError: The session has no workflow state.
        """
        async with self._session_lock(session_id):
            state = await self.get_state(session_id)
            if state is None:
                raise SessionNotFoundError(session_id, "No workflow state for session")
            moved = advance(state)
            if moved is state:
                logger.info(
                    "Advance blocked — session_id=%s phase=%s", session_id, state["phase"]
                )
                return False, state
            moved = await self._write(session_id, moved)

        logger.info(
            "Phase advanced — session_id=%s %s -> %s",
            session_id,
            state["phase"],
            moved["phase"],
        )
        self.event_bus.publish(
            PhaseAdvanced(session_id, from_phase=state["phase"], to_phase=moved["phase"])
        )
        return True, moved
