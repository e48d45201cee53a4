"""Unit tests for the workflow orchestrator and phase rules."""

import asyncio
from typing import Any

import pytest

from inspection_gate.config import Settings
from inspection_gate.orchestrator.errors import (
    MissingContextError,
    ToolNotAllowedError,
    UnsupportedStateVersionError,
)
from inspection_gate.orchestrator.phases import (
    GLOBAL_TOOLS,
    PHASE_ALLOWED_TOOLS,
    WORKFLOW_PHASES,
    first_step_for_phase,
)
from inspection_gate.orchestrator.service import WorkflowOrchestrator
from inspection_gate.orchestrator.state import (
    WORKFLOW_STATE_VERSION,
    default_workflow_state,
    migrate_workflow_state,
)
from inspection_gate.orchestrator.tools import (
    assert_tool_allowed,
    assert_tool_context,
    on_tool_result,
    resolve_tool_name,
    tool_failure,
    tool_success,
)
from inspection_gate.orchestrator.transitions import advance, can_advance, get_allowed_tools
from inspection_gate.services.events import (
    EventBus,
    PhaseAdvanced,
    SessionInitialized,
    ToolFailed,
    ToolRejected,
)
from inspection_gate.services.storage import InMemoryInspectionRepository


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_state(phase: str = "briefing", **overrides: Any) -> dict[str, Any]:
    """Build a workflow state positioned at ``phase``."""
    state = default_workflow_state(1, 1, "water")
    state["phase"] = phase
    state["stepId"] = first_step_for_phase(phase)
    state["context"] = {}
    state.update(overrides)
    return state


def _make_orchestrator(
    workflow_state: dict[str, Any] | None = None,
) -> tuple[WorkflowOrchestrator, InMemoryInspectionRepository, list[Any]]:
    """Orchestrator over a repository holding session 1; events are captured."""
    repository = InMemoryInspectionRepository()
    session: dict[str, Any] = {"id": 1, "claimId": 1}
    if workflow_state is not None:
        session["workflowState"] = workflow_state
    repository.add_session(session)  # type: ignore[arg-type]

    bus = EventBus()
    events: list[Any] = []
    bus.subscribe_all(events.append)
    return WorkflowOrchestrator(repository, Settings(), bus), repository, events


def _summary(ok: bool) -> dict[str, Any]:
    return {"ok": ok, "blockers": 0 if ok else 1, "warnings": 0, "infos": 0}


# ---------------------------------------------------------------------------
# Phase tables
# ---------------------------------------------------------------------------

class TestPhaseTables:
    """Phase order, steps and allowlists."""

    def test_every_phase_has_steps_and_tools(self) -> None:
        for phase in WORKFLOW_PHASES:
            assert first_step_for_phase(phase)
            assert set(GLOBAL_TOOLS) <= set(PHASE_ALLOWED_TOOLS[phase])

    def test_export_tool_only_in_terminal_phase(self) -> None:
        phases = [p for p in WORKFLOW_PHASES if "export_esx" in PHASE_ALLOWED_TOOLS[p]]
        assert phases == ["export"]

    def test_unknown_phase_step_falls_back(self) -> None:
        assert first_step_for_phase("mystery") == "mystery.default"


# ---------------------------------------------------------------------------
# Policy checks
# ---------------------------------------------------------------------------

class TestAssertToolAllowed:
    """Tool outside the phase allowlist → rejected."""

    def test_briefing_rejects_add_damage(self) -> None:
        with pytest.raises(ToolNotAllowedError) as excinfo:
            assert_tool_allowed(_make_state("briefing"), "add_damage")
        assert excinfo.value.code == "TOOL_NOT_ALLOWED"
        assert excinfo.value.phase == "briefing"

    def test_global_tool_allowed_everywhere(self) -> None:
        for phase in WORKFLOW_PHASES:
            assert_tool_allowed(_make_state(phase), "set_phase")

    def test_unknown_phase_allows_nothing(self) -> None:
        assert get_allowed_tools(_make_state("mystery")) == []


class TestAssertToolContext:
    """Room-scoped tools need a room or elevation."""

    def test_opening_tool_without_room_raises(self) -> None:
        with pytest.raises(MissingContextError):
            assert_tool_context(_make_state("openings"), "add_opening", {})

    def test_room_name_argument_is_enough(self) -> None:
        resolved = assert_tool_context(_make_state("openings"), "add_opening", {"roomName": "Kitchen"})
        assert resolved.room_id is None

    def test_arguments_override_context(self) -> None:
        state = _make_state(
            "openings",
            context={"roomId": "3", "elevationId": "8", "currentView": "interior"},
        )
        resolved = assert_tool_context(
            state, "update_opening", {"roomId": 5, "viewType": "elevation"}
        )
        assert resolved.room_id == "5"
        assert resolved.elevation_id == "8"
        assert resolved.current_view == "elevation"

    def test_non_opening_tool_needs_no_room(self) -> None:
        resolved = assert_tool_context(_make_state("interior_rooms"), "create_room", None)
        assert resolved.room_id is None


class TestOnToolResult:
    """Failed tool results are recorded; successes leave state alone."""

    def test_failure_recorded(self) -> None:
        state = _make_state("openings")
        failure = tool_failure(
            "add_opening",
            {"type": "API_ERROR", "code": "BAD_WALL", "message": "wall missing", "details": {"w": 9}},
        )
        updated = on_tool_result(state, "add_opening", failure)
        error = updated["lastToolError"]
        assert error["tool"] == "add_opening"
        assert error["code"] == "BAD_WALL"
        assert error["details"] == {"w": 9}
        assert error["at"]

    def test_success_leaves_state_untouched(self) -> None:
        state = _make_state("openings")
        assert on_tool_result(state, "add_opening", tool_success("add_opening", {"id": 1})) is state


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------

class TestCanAdvance:
    """Terminal, unknown and sketch-blocked phases cannot advance."""

    def test_terminal_phase_never_advances(self) -> None:
        assert can_advance(_make_state("export")) is False

    def test_review_blocked_by_failing_sketch(self) -> None:
        state = _make_state("review", lastValidatorSummary={"sketch": _summary(False), "at": "t"})
        assert can_advance(state) is False

    def test_review_without_sketch_summary_advances(self) -> None:
        assert can_advance(_make_state("review")) is True

    def test_failing_sketch_does_not_hold_capture_phases(self) -> None:
        state = _make_state("openings", lastValidatorSummary={"sketch": _summary(False), "at": "t"})
        assert can_advance(state) is True


class TestAdvance:
    """Advancing moves to the next phase and its first step."""

    def test_moves_to_next_phase_and_first_step(self) -> None:
        moved = advance(_make_state("inspection_setup"))
        assert moved["phase"] == "interior_rooms"
        assert moved["stepId"] == "interior.capture_rooms"

    def test_blocked_advance_returns_same_state(self) -> None:
        state = _make_state("export")
        assert advance(state) is state

    def test_walks_every_phase_in_order(self) -> None:
        state = _make_state(WORKFLOW_PHASES[0])
        visited = [state["phase"]]
        while can_advance(state):
            state = advance(state)
            visited.append(state["phase"])
        assert visited == list(WORKFLOW_PHASES)


# ---------------------------------------------------------------------------
# State record migration
# ---------------------------------------------------------------------------

class TestMigrateWorkflowState:
    """Stored records are upgraded to the current version."""

    def test_none_stays_none(self) -> None:
        assert migrate_workflow_state(None) is None

    def test_unversioned_record_upgraded(self) -> None:
        migrated = migrate_workflow_state(
            {"claimId": "1", "sessionId": "1", "peril": "water", "phase": "openings"}
        )
        assert migrated is not None
        assert migrated["version"] == WORKFLOW_STATE_VERSION
        assert migrated["stepId"] == "openings.capture"
        assert migrated["context"] == {"currentView": "interior"}

    def test_future_version_rejected(self) -> None:
        with pytest.raises(ValueError):
            migrate_workflow_state({"version": WORKFLOW_STATE_VERSION + 1, "phase": "briefing"})


# ---------------------------------------------------------------------------
# Route → tool mapping
# ---------------------------------------------------------------------------

class TestResolveToolName:
    """REST method and path → tool name."""

    @pytest.mark.parametrize(
        ("method", "path", "tool"),
        [
            ("POST", "/structures", "create_structure"),
            ("POST", "/rooms", "create_room"),
            ("PATCH", "/rooms/12", "update_room"),
            ("POST", "/rooms/12/sub-areas", "create_sub_area"),
            ("POST", "/openings", "add_opening"),
            ("DELETE", "/openings/4", "delete_opening"),
            ("POST", "/damages/7/confirm", "confirm_damage"),
            ("POST", "/line-items", "add_line_item"),
            ("POST", "/export/esx", "export_esx"),
            ("post", "/api/inspection/3/damages", "add_damage"),
        ],
    )
    def test_mapped_routes(self, method: str, path: str, tool: str) -> None:
        assert resolve_tool_name(method, path) == tool

    def test_unmapped_routes(self) -> None:
        assert resolve_tool_name("GET", "/rooms") is None
        assert resolve_tool_name("POST", "/somethingelse") is None


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class TestValidateToolForWorkflow:
    """Orchestrator tool checks → typed failure results."""

    def test_no_state_allows_everything(self) -> None:
        orchestrator, _, _ = _make_orchestrator()
        assert asyncio.run(orchestrator.validate_tool_for_workflow(1, "create_room")) is None

    def test_unknown_session_allows_everything(self) -> None:
        orchestrator, _, _ = _make_orchestrator()
        assert asyncio.run(orchestrator.validate_tool_for_workflow(404, "export_esx")) is None

    def test_allowed_tool_passes(self) -> None:
        orchestrator, _, _ = _make_orchestrator(_make_state("interior_rooms"))
        assert asyncio.run(orchestrator.validate_tool_for_workflow(1, "create_room")) is None

    def test_disallowed_tool_rejected_with_hint(self) -> None:
        orchestrator, _, events = _make_orchestrator(_make_state("briefing"))
        result = asyncio.run(orchestrator.validate_tool_for_workflow(1, "add_damage"))

        assert result is not None
        assert result["success"] is False
        assert result["error"]["type"] == "CONTEXT_ERROR"
        assert result["error"]["code"] == "TOOL_NOT_ALLOWED"
        assert "set_phase" in result["error"]["hint"]
        assert "get_workflow_state" in result["error"]["hint"]
        assert result["meta"]["tool"] == "add_damage"
        assert result["meta"]["workflow"] == {"phase": "briefing", "stepId": "briefing.review"}
        assert isinstance(events[-1], ToolRejected)

    def test_missing_room_context(self) -> None:
        orchestrator, _, _ = _make_orchestrator(_make_state("openings"))
        result = asyncio.run(orchestrator.validate_tool_for_workflow(1, "add_opening", {}))

        assert result is not None
        assert result["error"]["code"] == "MISSING_CONTEXT"
        assert "set_context" in result["error"]["hint"]

    def test_stored_room_context_satisfies_opening_tool(self) -> None:
        orchestrator, _, _ = _make_orchestrator(_make_state("openings", context={"roomId": "2"}))
        assert asyncio.run(orchestrator.validate_tool_for_workflow(1, "add_opening", {})) is None

    def test_newer_state_version_is_a_typed_failure(self) -> None:
        orchestrator, _, _ = _make_orchestrator(
            _make_state("openings", version=WORKFLOW_STATE_VERSION + 1)
        )
        result = asyncio.run(orchestrator.validate_tool_for_workflow(1, "add_opening", {}))

        assert result is not None
        assert result["success"] is False
        assert result["error"]["type"] == "CONTEXT_ERROR"
        assert result["error"]["code"] == "STATE_VERSION_UNSUPPORTED"
        assert result["meta"]["tool"] == "add_opening"

    def test_newer_state_version_raises_typed_error_on_read(self) -> None:
        orchestrator, _, _ = _make_orchestrator(_make_state(version=WORKFLOW_STATE_VERSION + 1))
        with pytest.raises(UnsupportedStateVersionError):
            asyncio.run(orchestrator.get_state(1))


class TestOrchestratorState:
    """Orchestrator reads, merges and serializes state writes."""

    def test_init_session_starts_at_first_phase(self) -> None:
        orchestrator, _, events = _make_orchestrator()
        state = asyncio.run(orchestrator.init_session(7, 1, "hail"))

        assert state["phase"] == "briefing"
        assert state["stepId"] == "briefing.review"
        assert state["context"] == {"currentView": "interior"}
        assert state["claimId"] == "7"
        assert asyncio.run(orchestrator.get_state(1)) == state
        assert isinstance(events[-1], SessionInitialized)

    def test_set_state_merges_context(self) -> None:
        orchestrator, _, _ = _make_orchestrator()

        async def scenario() -> dict[str, Any]:
            await orchestrator.init_session(7, 1, "water")
            await orchestrator.set_context(1, {"roomId": "4"})
            return await orchestrator.set_state(1, {"stepId": "custom", "context": {"elevationId": "9"}})

        state = asyncio.run(scenario())
        assert state["stepId"] == "custom"
        assert state["context"] == {"currentView": "interior", "roomId": "4", "elevationId": "9"}

    def test_concurrent_context_updates_are_not_lost(self) -> None:
        orchestrator, _, _ = _make_orchestrator()

        async def scenario() -> dict[str, Any]:
            await orchestrator.init_session(7, 1, "water")
            await asyncio.gather(
                orchestrator.set_context(1, {"roomId": "4"}),
                orchestrator.set_context(1, {"elevationId": "9"}),
                orchestrator.set_context(1, {"structureId": "2"}),
            )
            return await orchestrator.get_state(1)

        state = asyncio.run(scenario())
        assert state["context"] == {
            "currentView": "interior",
            "roomId": "4",
            "elevationId": "9",
            "structureId": "2",
        }

    def test_session_locks_are_released_when_idle(self) -> None:
        orchestrator, _, _ = _make_orchestrator()

        async def scenario() -> None:
            await orchestrator.init_session(7, 1, "water")
            await asyncio.gather(*(orchestrator.set_context(1, {"roomId": str(n)}) for n in range(5)))

        asyncio.run(scenario())
        assert orchestrator._locks == {}
        assert not orchestrator._lock_users

    def test_record_tool_failure(self) -> None:
        orchestrator, _, events = _make_orchestrator(_make_state("openings"))
        failure = tool_failure("add_opening", {"type": "API_ERROR", "code": "E1", "message": "boom"})
        state = asyncio.run(orchestrator.record_tool_result(1, "add_opening", failure))

        assert state["lastToolError"]["code"] == "E1"
        assert isinstance(events[-1], ToolFailed)

    def test_record_tool_success_is_noop(self) -> None:
        orchestrator, _, events = _make_orchestrator(_make_state("openings"))
        state = asyncio.run(
            orchestrator.record_tool_result(1, "add_opening", tool_success("add_opening", {}))
        )
        assert "lastToolError" not in state
        assert events == []

    def test_advance_session(self) -> None:
        orchestrator, _, events = _make_orchestrator(_make_state("briefing"))
        advanced, state = asyncio.run(orchestrator.advance_session(1))

        assert advanced is True
        assert state["phase"] == "inspection_setup"
        assert state["stepId"] == "session.bootstrap"
        assert isinstance(events[-1], PhaseAdvanced)
        assert events[-1].from_phase == "briefing"

    def test_advance_session_blocked_in_export(self) -> None:
        orchestrator, _, events = _make_orchestrator(_make_state("export"))
        advanced, state = asyncio.run(orchestrator.advance_session(1))

        assert advanced is False
        assert state["phase"] == "export"
        assert events == []
