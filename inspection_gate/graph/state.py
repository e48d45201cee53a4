"""Shared state definition for the gate-run LangGraph workflow."""

from typing import Any, TypedDict

from langchain_core.runnables import RunnableConfig

from inspection_gate.graph.results import GateResult
from inspection_gate.services.storage import InspectionRepository


class GateRunState(TypedDict, total=False):
    """Typed state passed through every node in the gate graph.

    Attributes:
        session_id: Inspection session being checked.
        peril: Peril type of the claim, consulted by the scope gate.
        sketch: Result of the sketch gate.
        scope: Result of the scope gate.
        photoDamage: Result of the photo/damage gate.
        export: Result of the export gate.
        results: Aggregated ``{gate name: GateResult}`` mapping.
    """

    session_id: int
    peril: str | None
    sketch: GateResult
    scope: GateResult
    photoDamage: GateResult
    export: GateResult
    results: dict[str, GateResult]


def repository_from_config(config: RunnableConfig | None) -> InspectionRepository:
    """Pull the storage collaborator out of the run config.

    Raises:
        KeyError: If the graph was invoked without a repository.
    """
    configurable: dict[str, Any] = (config or {}).get("configurable") or {}
    repository = configurable.get("repository")
    if repository is None:
        raise KeyError("Gate graph requires configurable['repository']")
    return repository
