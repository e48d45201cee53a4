"""Pure phase-transition rules over a ``WorkflowState``."""

import logging

from inspection_gate.orchestrator.phases import (
    PHASE_ALLOWED_TOOLS,
    TERMINAL_PHASE,
    WORKFLOW_PHASES,
    first_step_for_phase,
    next_phase,
)
from inspection_gate.orchestrator.state import WorkflowState

logger = logging.getLogger(__name__)

# Phases that may not be left while the last sketch run had blockers.
SKETCH_GATED_PHASES = ("review", "export")


def get_allowed_tools(state: WorkflowState) -> list[str]:
    """Return the tools permitted in the state's phase; empty for unknown phases.

    Args:
        state: Current workflow state.

    Returns:
        Tool names in allowlist order.
    """
    return list(PHASE_ALLOWED_TOOLS.get(state["phase"], ()))


def can_advance(state: WorkflowState) -> bool:
    """Whether ``advance`` would move the state forward.

    The terminal phase, and any phase outside the known order, never
    advances. Review and export are also held back while the most recent
    sketch gate summary is not ok; without a recorded sketch summary nothing
    holds them back.
    """
    if state["phase"] == TERMINAL_PHASE or state["phase"] not in WORKFLOW_PHASES:
        return False
    sketch = (state.get("lastValidatorSummary") or {}).get("sketch")
    if sketch and not sketch["ok"] and state["phase"] in SKETCH_GATED_PHASES:
        return False
    return True


def advance(state: WorkflowState) -> WorkflowState:
    """Return the state moved one phase forward, or ``state`` itself if blocked."""
    if not can_advance(state):
        logger.debug("Advance refused — session_id=%s phase=%s", state["sessionId"], state["phase"])
        return state
    phase = next_phase(state["phase"])
    return {**state, "phase": phase, "stepId": first_step_for_phase(phase)}
