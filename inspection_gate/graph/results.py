"""Gate issue/result shapes and the uniform summarisation rule."""

from datetime import datetime, timezone
from typing import Any, Literal, NotRequired, TypedDict

GateName = Literal["sketch", "photoDamage", "scope", "export"]
Severity = Literal["BLOCKER", "WARNING", "INFO"]
EntityType = Literal["room", "opening", "lineItem", "photo", "elevation"]

GATE_NAMES: tuple[GateName, ...] = ("sketch", "photoDamage", "scope", "export")


class IssueEntity(TypedDict, total=False):
    type: EntityType
    id: str
    name: str


class GateIssue(TypedDict):
    severity: Severity
    code: str
    message: str
    entity: NotRequired[IssueEntity]
    details: NotRequired[Any]
    suggestion: NotRequired[str]


class SeverityCounts(TypedDict):
    blockers: int
    warnings: int
    infos: int


class GateResult(TypedDict):
    gate: GateName
    ok: bool
    issues: list[GateIssue]
    summary: SeverityCounts
    computedAt: str
    suggestedMissingScopeItems: NotRequired[list[str]]


class GateResultSummary(TypedDict):
    ok: bool
    blockers: int
    warnings: int
    infos: int


def make_issue(
    severity: Severity,
    code: str,
    message: str,
    entity: IssueEntity | None = None,
    details: Any = None,
    suggestion: str | None = None,
) -> GateIssue:
    """Build a ``GateIssue``, leaving absent optional fields out of the dict."""
    issue: GateIssue = {"severity": severity, "code": code, "message": message}
    if entity is not None:
        issue["entity"] = entity
    if details is not None:
        issue["details"] = details
    if suggestion is not None:
        issue["suggestion"] = suggestion
    return issue


def entity(kind: EntityType, entity_id: Any = None, name: str | None = None) -> IssueEntity:
    """Build the entity reference attached to an issue.

    Args:
        kind: Entity type, e.g. ``"room"`` or ``"photo"``.
        entity_id: Record id; stringified when present.
        name: Display name, when the record has one.

    Returns:
        An ``IssueEntity`` carrying only the fields that were given.
    """
    ref: IssueEntity = {"type": kind}
    if entity_id is not None:
        ref["id"] = str(entity_id)
    if name is not None:
        ref["name"] = name
    return ref


def summarize(
    gate: GateName,
    issues: list[GateIssue],
    suggested_missing_scope_items: list[str] | None = None,
) -> GateResult:
    """Count severities; a gate is ok exactly when it has no blockers."""
    counts: SeverityCounts = {
        "blockers": sum(1 for i in issues if i["severity"] == "BLOCKER"),
        "warnings": sum(1 for i in issues if i["severity"] == "WARNING"),
        "infos": sum(1 for i in issues if i["severity"] == "INFO"),
    }
    result: GateResult = {
        "gate": gate,
        "ok": counts["blockers"] == 0,
        "issues": issues,
        "summary": counts,
        "computedAt": datetime.now(timezone.utc).isoformat(),
    }
    if suggested_missing_scope_items is not None:
        result["suggestedMissingScopeItems"] = suggested_missing_scope_items
    return result


def to_summary(result: GateResult) -> GateResultSummary:
    """Condense a gate result to the counts stored on the workflow state."""
    return {
        "ok": result["ok"],
        "blockers": result["summary"]["blockers"],
        "warnings": result["summary"]["warnings"],
        "infos": result["summary"]["infos"],
    }
