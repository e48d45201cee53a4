"""Tool result envelopes and per-tool policy checks."""

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal, NotRequired, TypedDict

from inspection_gate.orchestrator.errors import MissingContextError, ToolNotAllowedError
from inspection_gate.orchestrator.state import WorkflowState
from inspection_gate.orchestrator.transitions import get_allowed_tools

logger = logging.getLogger(__name__)

ToolErrorType = Literal["VALIDATION_ERROR", "CONTEXT_ERROR", "API_ERROR", "RUNTIME_ERROR"]

# Tools that act on a wall and therefore need a room reference.
ROOM_SCOPED_TOOLS = frozenset({"add_opening", "update_opening", "delete_opening"})


class ToolErrorEnvelope(TypedDict):
    type: ToolErrorType
    code: str
    message: str
    details: NotRequired[Any]
    hint: NotRequired[str]
    retriable: NotRequired[bool]


class ToolWorkflowMeta(TypedDict):
    phase: str
    stepId: str


class ToolMeta(TypedDict, total=False):
    tool: str
    callId: str
    normalizedArgs: Any
    workflow: ToolWorkflowMeta


class ToolResult(TypedDict):
    success: bool
    data: NotRequired[Any]
    error: NotRequired[ToolErrorEnvelope]
    meta: NotRequired[ToolMeta]


def tool_success(tool: str, data: Any, meta: ToolMeta | None = None) -> ToolResult:
    return {"success": True, "data": data, "meta": {**(meta or {}), "tool": tool}}


def tool_failure(tool: str, error: ToolErrorEnvelope, meta: ToolMeta | None = None) -> ToolResult:
    return {"success": False, "error": error, "meta": {**(meta or {}), "tool": tool}}


# ---------------------------------------------------------------------------
# REST mutation → tool name
# ---------------------------------------------------------------------------

_ROUTE_TOOLS: tuple[tuple[str, re.Pattern[str], str], ...] = (
    ("POST", re.compile(r"/structures$"), "create_structure"),
    ("POST", re.compile(r"/rooms$"), "create_room"),
    ("PATCH", re.compile(r"/rooms/[^/]+$"), "update_room"),
    ("POST", re.compile(r"/rooms/[^/]+/sub-areas$"), "create_sub_area"),
    ("POST", re.compile(r"/openings$"), "add_opening"),
    ("PATCH", re.compile(r"/openings/[^/]+$"), "update_opening"),
    ("DELETE", re.compile(r"/openings/[^/]+$"), "delete_opening"),
    ("POST", re.compile(r"/annotations$"), "add_sketch_annotation"),
    ("POST", re.compile(r"/test-squares$"), "log_test_square"),
    ("POST", re.compile(r"/damages$"), "add_damage"),
    ("POST", re.compile(r"/damages/[^/]+/confirm$"), "confirm_damage"),
    ("POST", re.compile(r"/line-items$"), "add_line_item"),
    ("PATCH", re.compile(r"/line-items/[^/]+$"), "update_line_item"),
    ("POST", re.compile(r"/export/esx$"), "export_esx"),
)


def resolve_tool_name(method: str, path: str) -> str | None:
    """Map a REST mutation to the workflow tool it stands for.

    Only the tail of ``path`` is matched, so both ``/rooms`` and
    ``/api/inspection/7/rooms`` resolve. Unmapped routes return ``None``.
    """
    method = method.upper()
    path = path.split("?", 1)[0].rstrip("/")
    for route_method, pattern, tool in _ROUTE_TOOLS:
        if route_method == method and pattern.search(path):
            return tool
    return None


# ---------------------------------------------------------------------------
# Policy checks
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ResolvedToolContext:
    room_id: str | None
    elevation_id: str | None
    current_view: str | None


def assert_tool_allowed(state: WorkflowState, tool_name: str) -> None:
    """Raise ``ToolNotAllowedError`` if the current phase does not permit the tool."""
    if tool_name not in get_allowed_tools(state):
        raise ToolNotAllowedError(tool_name, state["phase"])


def assert_tool_context(
    state: WorkflowState,
    tool_name: str,
    args: Mapping[str, Any] | None = None,
) -> ResolvedToolContext:
    """Resolve the room/elevation a tool acts on.

    Call arguments override the stored context. Opening tools need a room
    from one of the two sources.

    Raises:
        MissingContextError: An opening tool has no room reference at all.
    """
    args = args or {}
    context = state.get("context") or {}

    if (
        tool_name in ROOM_SCOPED_TOOLS
        and not context.get("roomId")
        and not args.get("roomId")
        and not args.get("roomName")
    ):
        raise MissingContextError(tool_name)

    return ResolvedToolContext(
        room_id=str(args["roomId"]) if args.get("roomId") else context.get("roomId"),
        elevation_id=str(args["elevationId"]) if args.get("elevationId") else context.get("elevationId"),
        current_view=args.get("viewType") or context.get("currentView"),
    )


def on_tool_result(state: WorkflowState, tool_name: str, result: ToolResult) -> WorkflowState:
    """Record a failed tool call as ``lastToolError``; successes change nothing."""
    error = result.get("error")
    if result.get("success") or not error:
        return state

    last_error: dict[str, Any] = {
        "tool": tool_name,
        "code": error.get("code", ""),
        "message": error.get("message", ""),
        "at": datetime.now(timezone.utc).isoformat(),
    }
    if error.get("details") is not None:
        last_error["details"] = error["details"]
    return {**state, "lastToolError": last_error}  # type: ignore[typeddict-item]
