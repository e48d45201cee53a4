"""Scope gate — damage coverage, duplicate lines and provenance.

A damage is covered when a line item or a scope item in the same room carries
its ``damageId``. Linkage is by identifier only; descriptions are never
compared.
"""

import asyncio
import logging
from typing import Any

from langchain_core.runnables import RunnableConfig

from inspection_gate.graph.results import GateIssue, GateResult, entity, make_issue, summarize
from inspection_gate.graph.state import GateRunState, repository_from_config
from inspection_gate.services.records import Damage, LineItem, Room, ScopeItem
from inspection_gate.services.storage import InspectionRepository

logger = logging.getLogger(__name__)

UNCOVERED_CODE = "SCOPE_DAMAGE_UNCOVERED"


def _is_confirmed(damage: Damage) -> bool:
    return str(damage.get("severity") or "").lower() != "none"


def _is_covered(damage: Damage, items: list[LineItem | ScopeItem]) -> bool:
    return any(
        item.get("roomId") == damage.get("roomId") and item.get("damageId") == damage["id"]
        for item in items
    )


def evaluate_scope(
    rooms: list[Room],
    damages: list[Damage],
    line_items: list[LineItem],
    scope_items: list[ScopeItem],
    peril: str | None = None,
) -> GateResult:
    """Pure scope checks over already-fetched session data."""
    issues: list[GateIssue] = []
    suggestions: list[str] = []
    coverage: list[LineItem | ScopeItem] = [*line_items, *scope_items]

    for damage in damages:
        if not _is_confirmed(damage) or _is_covered(damage, coverage):
            continue
        damage_type = damage.get("damageType") or "damage"
        suggestion = f"Add scope line for {damage_type} in room {damage.get('roomId')}"
        suggestions.append(suggestion)
        issues.append(
            make_issue(
                "WARNING",
                UNCOVERED_CODE,
                f"Damage {damage['id']} has no scope coverage",
                entity("room", damage.get("roomId")),
                details={"damageId": damage["id"]},
                suggestion=suggestion,
            )
        )

    seen: set[tuple[Any, Any, Any]] = set()
    for item in line_items:
        key = (item.get("category"), item.get("roomId"), item.get("damageId"))
        if key in seen:
            issues.append(
                make_issue(
                    "WARNING",
                    "SCOPE_DUPLICATE_LINE",
                    "Duplicate scope line detected",
                    entity("lineItem", item["id"]),
                )
            )
        seen.add(key)

        if not item.get("provenance"):
            issues.append(
                make_issue(
                    "INFO",
                    "SCOPE_PROVENANCE_MISSING",
                    f"Line item {item['id']} missing provenance",
                    entity("lineItem", item["id"]),
                )
            )

    if (peril or "").lower() == "hail":
        if not any(room.get("viewType") == "roof_plan" for room in rooms):
            issues.append(
                make_issue(
                    "WARNING",
                    "SCOPE_HAIL_ROOF_EXPECTED",
                    "Hail peril but no roof plan captured",
                )
            )

    return summarize("scope", issues, suggested_missing_scope_items=suggestions)


async def run_scope_gate(
    repository: InspectionRepository,
    session_id: int,
    peril: str | None = None,
) -> GateResult:
    """Fetch the session's rooms, damages and scope lines and check coverage.

    Args:
        repository: Storage collaborator.
        session_id: Inspection session to check.
        peril: Claim peril; ``"hail"`` additionally expects a roof plan.

    Returns:
        The scope ``GateResult`` with ``suggestedMissingScopeItems`` filled.
    """
    rooms, damages, line_items, scope_items = await asyncio.gather(
        repository.get_rooms(session_id),
        repository.get_damages_for_session(session_id),
        repository.get_line_items(session_id),
        repository.get_scope_items(session_id),
    )
    result = evaluate_scope(rooms, damages, line_items, scope_items, peril)
    logger.info(
        "Scope gate — session_id=%s ok=%s summary=%s",
        session_id,
        result["ok"],
        result["summary"],
    )
    return result


async def scope_gate_node(state: GateRunState, config: RunnableConfig) -> dict[str, Any]:
    """Graph node wrapper around ``run_scope_gate``."""
    repository = repository_from_config(config)
    return {"scope": await run_scope_gate(repository, state["session_id"], state.get("peril"))}
