"""Versioned workflow state record stored on the inspection session."""

import copy
import logging
from typing import Any, Literal, NotRequired, TypedDict

from inspection_gate.graph.results import GateResultSummary
from inspection_gate.orchestrator.phases import WORKFLOW_PHASES, first_step_for_phase

logger = logging.getLogger(__name__)

WORKFLOW_STATE_VERSION = 1


class WorkflowContext(TypedDict, total=False):
    structureId: str
    roomId: str
    elevationId: str
    currentView: Literal["interior", "elevation", "roof"]


class LastToolError(TypedDict):
    tool: str
    code: str
    message: str
    details: NotRequired[Any]
    at: str


class LastValidatorSummary(TypedDict):
    sketch: NotRequired[GateResultSummary]
    photoDamage: NotRequired[GateResultSummary]
    scope: NotRequired[GateResultSummary]
    export: NotRequired[GateResultSummary]
    at: str


class WorkflowState(TypedDict):
    version: int
    claimId: str
    sessionId: str
    peril: str
    phase: str
    stepId: str
    context: WorkflowContext
    lastToolError: NotRequired[LastToolError]
    lastValidatorSummary: NotRequired[LastValidatorSummary]


def default_workflow_state(claim_id: Any, session_id: Any, peril: str) -> WorkflowState:
    """Fresh state positioned at the first phase with an interior view."""
    phase = WORKFLOW_PHASES[0]
    return {
        "version": WORKFLOW_STATE_VERSION,
        "claimId": str(claim_id),
        "sessionId": str(session_id),
        "peril": peril,
        "phase": phase,
        "stepId": first_step_for_phase(phase),
        "context": {"currentView": "interior"},
    }


def migrate_workflow_state(raw: dict[str, Any] | None) -> WorkflowState | None:
    """Upgrade a stored record to the current version.

    Unversioned records predate ``version`` and may lack ``context`` or
    ``stepId``; both are filled in. An unknown phase is left untouched so
    the allowlist rejects every tool rather than guessing a position.

    Args:
        raw: Record as stored on the session, or ``None``.

    Returns:
        The migrated state, or ``None`` when nothing is stored.

    Raises:
        ValueError: If the record was written by a newer schema version.
    """
    if not raw:
        return None

    state: dict[str, Any] = copy.deepcopy(raw)
    version = state.get("version", 0)
    if version > WORKFLOW_STATE_VERSION:
        raise ValueError(
            f"Workflow state version {version} is newer than supported {WORKFLOW_STATE_VERSION}"
        )

    if version < 1:
        phase = state.get("phase") or WORKFLOW_PHASES[0]
        state["phase"] = phase
        state.setdefault("claimId", "")
        state.setdefault("sessionId", "")
        state.setdefault("peril", "General")
        if not state.get("stepId"):
            state["stepId"] = first_step_for_phase(phase)
        if not isinstance(state.get("context"), dict):
            state["context"] = {"currentView": "interior"}
        state["version"] = 1
        logger.info("Migrated workflow state to v1 — session_id=%s", state["sessionId"])

    return state  # type: ignore[return-value]
