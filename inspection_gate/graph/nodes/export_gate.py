"""Export gate — composes the other gates into a readiness verdict for export."""

import asyncio
import logging
from typing import Any

from langchain_core.runnables import RunnableConfig

from inspection_gate.graph.nodes.photo_damage_gate import run_photo_damage_gate
from inspection_gate.graph.nodes.scope_gate import UNCOVERED_CODE, run_scope_gate
from inspection_gate.graph.nodes.sketch_gate import run_sketch_gate
from inspection_gate.graph.results import GateIssue, GateResult, make_issue, summarize
from inspection_gate.graph.state import GateRunState, repository_from_config
from inspection_gate.services.storage import InspectionRepository

logger = logging.getLogger(__name__)


async def run_export_gate(repository: InspectionRepository, session_id: int) -> GateResult:
    """Check that the session can be packaged for the estimating system.

    A missing session short-circuits with a single blocker. Otherwise the
    sketch, scope and photo gates run concurrently and their findings are
    folded in: sketch blockers block export, uncovered damage warns, and
    every photo issue is re-emitted as a warning whatever its own severity.

    Args:
        repository: Storage collaborator.
        session_id: Inspection session to check.

    Returns:
        The export ``GateResult``.
    """
    issues: list[GateIssue] = []

    session = await repository.get_inspection_session(session_id)
    if session is None:
        logger.warning("Export gate — session_id=%s not found", session_id)
        issues.append(make_issue("BLOCKER", "EXPORT_SESSION_MISSING", "Session not found"))
        return summarize("export", issues)

    claim = await repository.get_claim(session["claimId"]) or {}
    if not claim.get("claimNumber") or not claim.get("propertyAddress"):
        issues.append(
            make_issue(
                "BLOCKER",
                "EXPORT_REQUIRED_CLAIM_DATA",
                "Claim number and property address are required for export",
            )
        )

    sketch, scope, photo = await asyncio.gather(
        run_sketch_gate(repository, session_id),
        run_scope_gate(repository, session_id, claim.get("perilType")),
        run_photo_damage_gate(repository, session_id),
    )

    if not sketch["ok"]:
        issues.append(
            make_issue(
                "BLOCKER",
                "EXPORT_SKETCH_BLOCKER",
                "Sketch has blockers; resolve before export",
                details=sketch["summary"],
            )
        )

    if any(issue["code"] == UNCOVERED_CODE for issue in scope["issues"]):
        issues.append(
            make_issue(
                "WARNING",
                "EXPORT_SCOPE_COVERAGE_WARN",
                "Some damages lack scope coverage",
            )
        )

    for inner in photo["issues"]:
        issues.append(
            make_issue(
                "WARNING",
                f"EXPORT_PHOTO_{inner['code']}",
                inner["message"],
                inner.get("entity"),
                details=inner.get("details"),
            )
        )

    result = summarize("export", issues)
    logger.info(
        "Export gate — session_id=%s ok=%s summary=%s",
        session_id,
        result["ok"],
        result["summary"],
    )
    return result


async def export_gate_node(state: GateRunState, config: RunnableConfig) -> dict[str, Any]:
    repository = repository_from_config(config)
    return {"export": await run_export_gate(repository, state["session_id"])}
