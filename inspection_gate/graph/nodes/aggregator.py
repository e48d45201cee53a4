"""Aggregator node — collects the four gate results into one mapping."""

import logging
from typing import Any

from inspection_gate.graph.results import GATE_NAMES, GateResult
from inspection_gate.graph.state import GateRunState

logger = logging.getLogger(__name__)


def aggregator_node(state: GateRunState) -> dict[str, Any]:
    """Gather every gate's result keyed by gate name.

    Args:
        state: Graph state after all gate nodes have completed.

    Returns:
        A dict with the ``results`` key to merge into state.
    """
    results: dict[str, GateResult] = {name: state[name] for name in GATE_NAMES if name in state}

    logger.info(
        "Aggregator — session_id=%s blocked=%s",
        state["session_id"],
        sorted(name for name, result in results.items() if not result["ok"]),
    )
    return {"results": results}
