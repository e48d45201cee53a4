"""LangGraph workflow definition for a full gate run."""

import asyncio
import logging

from langgraph.graph import END, START, StateGraph

from inspection_gate.graph.nodes.aggregator import aggregator_node
from inspection_gate.graph.nodes.export_gate import export_gate_node
from inspection_gate.graph.nodes.photo_damage_gate import photo_damage_gate_node
from inspection_gate.graph.nodes.scope_gate import scope_gate_node
from inspection_gate.graph.nodes.sketch_gate import sketch_gate_node
from inspection_gate.graph.results import GateResult
from inspection_gate.graph.state import GateRunState
from inspection_gate.orchestrator.errors import GateTimeoutError
from inspection_gate.services.storage import InspectionRepository

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Graph construction
# ---------------------------------------------------------------------------

graph_builder = StateGraph(GateRunState)

# Nodes (names must not collide with state keys)
graph_builder.add_node("sketch_gate", sketch_gate_node)
graph_builder.add_node("scope_gate", scope_gate_node)
graph_builder.add_node("photo_damage_gate", photo_damage_gate_node)
graph_builder.add_node("export_gate", export_gate_node)
graph_builder.add_node("aggregator", aggregator_node)

# Edges: fan out from START, fan in at the aggregator
for _gate_node in ("sketch_gate", "scope_gate", "photo_damage_gate", "export_gate"):
    graph_builder.add_edge(START, _gate_node)
graph_builder.add_edge(
    ["sketch_gate", "scope_gate", "photo_damage_gate", "export_gate"], "aggregator"
)
graph_builder.add_edge("aggregator", END)

# Compile once at module level
workflow = graph_builder.compile()

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def run_all_gates(
    repository: InspectionRepository,
    session_id: int,
    peril: str | None = None,
    timeout: float | None = None,
) -> dict[str, GateResult]:
    """Execute all four gates concurrently against one session.

    Args:
        repository: Storage collaborator handed to every gate node.
        session_id: Inspection session to check.
        peril: Claim peril for the scope gate.
        timeout: Deadline in seconds for the whole run; ``None`` waits forever.

    Returns:
        ``{gate name: GateResult}`` for sketch, scope, photoDamage and export.

    Raises:
        GateTimeoutError: If the run does not finish within ``timeout``.
    """
    initial_state: GateRunState = {"session_id": session_id, "peril": peril}
    config = {"configurable": {"repository": repository}}

    logger.info("Gate run started — session_id=%s peril=%s", session_id, peril)
    try:
        final_state = await asyncio.wait_for(workflow.ainvoke(initial_state, config), timeout)
    except asyncio.TimeoutError as exc:
        logger.error("Gate run timed out — session_id=%s after %ss", session_id, timeout)
        raise GateTimeoutError(session_id, timeout) from exc
    logger.info("Gate run completed — session_id=%s", session_id)

    return final_state["results"]
