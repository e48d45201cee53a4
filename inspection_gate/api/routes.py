"""API route definitions for the inspection workflow gate."""

import asyncio
import logging
from typing import Any, Literal

from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from inspection_gate.api.dependencies import get_orchestrator, get_repository, get_settings
from inspection_gate.config import Settings
from inspection_gate.orchestrator.errors import (
    GateTimeoutError,
    SessionNotFoundError,
    UnsupportedStateVersionError,
)
from inspection_gate.orchestrator.service import WorkflowOrchestrator
from inspection_gate.orchestrator.tools import resolve_tool_name
from inspection_gate.services.export_package import prepare_export
from inspection_gate.services.storage import InspectionRepository

logger = logging.getLogger(__name__)

router = APIRouter()

# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


class InitWorkflowRequest(BaseModel):
    claimId: int
    peril: str = "General"


class ContextPatch(BaseModel):
    structureId: str | None = None
    roomId: str | None = None
    elevationId: str | None = None
    currentView: Literal["interior", "elevation", "roof"] | None = None


class ToolErrorBody(BaseModel):
    type: Literal["VALIDATION_ERROR", "CONTEXT_ERROR", "API_ERROR", "RUNTIME_ERROR"]
    code: str
    message: str
    details: Any = None
    hint: str | None = None
    retriable: bool | None = None


class ToolResultBody(BaseModel):
    success: bool
    data: Any = None
    error: ToolErrorBody | None = None
    meta: dict[str, Any] | None = None


class AuthorizeRequest(BaseModel):
    method: str
    path: str
    args: dict[str, Any] = Field(default_factory=dict)


class ExportRequest(BaseModel):
    briefing: dict[str, Any] | None = None
    isSupplemental: bool = False
    supplementalReason: str | None = None
    adjusterData: dict[str, Any] | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _not_found(exc: SessionNotFoundError) -> HTTPException:
    logger.warning("Session lookup failed — %s", exc)
    return HTTPException(status_code=404, detail=str(exc))


def _conflict(exc: UnsupportedStateVersionError) -> HTTPException:
    logger.error("Workflow state rejected — %s", exc)
    return HTTPException(status_code=409, detail={"code": exc.code, "message": str(exc)})


async def _validate_or_reject(
    orchestrator: WorkflowOrchestrator,
    session_id: int,
    tool_name: str,
    args: dict[str, Any],
) -> dict[str, Any] | JSONResponse:
    failure = await orchestrator.validate_tool_for_workflow(session_id, tool_name, args)
    if failure is not None:
        return JSONResponse(status_code=409, content=failure)
    return {"allowed": True, "tool": tool_name}


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.get("/health", status_code=200)
async def health_check() -> dict[str, str]:
    """Liveness / readiness health check endpoint."""
    return {"status": "ok"}


@router.post("/api/sessions/{session_id}/workflow", status_code=201)
async def init_workflow(
    session_id: int,
    body: InitWorkflowRequest,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Start the workflow for a session at the first phase."""
    try:
        return await orchestrator.init_session(body.claimId, session_id, body.peril)
    except SessionNotFoundError as exc:
        raise _not_found(exc) from exc


@router.get("/api/sessions/{session_id}/workflow")
async def get_workflow(
    session_id: int,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    try:
        state = await orchestrator.get_state(session_id)
    except UnsupportedStateVersionError as exc:
        raise _conflict(exc) from exc
    if state is None:
        raise HTTPException(status_code=404, detail=f"No workflow state for session {session_id}")
    return state


@router.patch("/api/sessions/{session_id}/workflow/context")
async def patch_context(
    session_id: int,
    body: ContextPatch,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    try:
        return await orchestrator.set_context(session_id, body.model_dump(exclude_none=True))
    except SessionNotFoundError as exc:
        raise _not_found(exc) from exc
    except UnsupportedStateVersionError as exc:
        raise _conflict(exc) from exc


@router.get("/api/sessions/{session_id}/tools")
async def list_allowed_tools(
    session_id: int,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    try:
        return {"allowedTools": await orchestrator.get_allowed_tools(session_id)}
    except SessionNotFoundError as exc:
        raise _not_found(exc) from exc
    except UnsupportedStateVersionError as exc:
        raise _conflict(exc) from exc


@router.post("/api/sessions/{session_id}/tools/{tool_name}/validate", response_model=None)
async def validate_tool(
    session_id: int,
    tool_name: str,
    args: dict[str, Any] | None = Body(default=None),
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any] | JSONResponse:
    """Check a tool call against the workflow before it runs.

    Returns:
        ``{"allowed": true}``, or a 409 carrying the failure ``ToolResult``.
    """
    return await _validate_or_reject(orchestrator, session_id, tool_name, args or {})


@router.post("/api/sessions/{session_id}/tools/{tool_name}/result")
async def record_tool_result(
    session_id: int,
    tool_name: str,
    body: ToolResultBody,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    result = body.model_dump(exclude_none=True)
    try:
        state = await orchestrator.record_tool_result(session_id, tool_name, result)  # type: ignore[arg-type]
    except UnsupportedStateVersionError as exc:
        raise _conflict(exc) from exc
    if state is None:
        raise HTTPException(status_code=404, detail=f"No workflow state for session {session_id}")
    return state


@router.post("/api/sessions/{session_id}/authorize", response_model=None)
async def authorize_mutation(
    session_id: int,
    body: AuthorizeRequest,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any] | JSONResponse:
    """Gate a REST mutation by the tool it corresponds to; unmapped routes pass."""
    tool_name = resolve_tool_name(body.method, body.path)
    if tool_name is None:
        return {"allowed": True, "tool": None}
    return await _validate_or_reject(orchestrator, session_id, tool_name, body.args)


@router.post("/api/sessions/{session_id}/gates")
async def run_gates(
    session_id: int,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Run all four gates and persist their summaries on the workflow state."""
    try:
        state, gates = await orchestrator.run_gates(session_id)
    except SessionNotFoundError as exc:
        raise _not_found(exc) from exc
    except UnsupportedStateVersionError as exc:
        raise _conflict(exc) from exc
    except GateTimeoutError as exc:
        raise HTTPException(status_code=504, detail=str(exc)) from exc
    return {"state": state, "gates": gates}


@router.post("/api/sessions/{session_id}/advance")
async def advance_phase(
    session_id: int,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    try:
        advanced, state = await orchestrator.advance_session(session_id)
    except SessionNotFoundError as exc:
        raise _not_found(exc) from exc
    except UnsupportedStateVersionError as exc:
        raise _conflict(exc) from exc
    return {"advanced": advanced, "state": state}


@router.post("/api/sessions/{session_id}/export/prepare")
async def prepare_export_package(
    session_id: int,
    body: ExportRequest | None = None,
    repository: InspectionRepository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """Price, assemble and validate the export package for a session."""
    body = body or ExportRequest()
    try:
        return await asyncio.wait_for(
            prepare_export(
                repository,
                session_id,
                settings,
                briefing=body.briefing,
                is_supplemental=body.isSupplemental,
                supplemental_reason=body.supplementalReason,
                adjuster_data=body.adjusterData,
            ),
            settings.gate_timeout_seconds,
        )
    except SessionNotFoundError as exc:
        raise _not_found(exc) from exc
    except asyncio.TimeoutError as exc:
        logger.error("Export preparation timed out — session_id=%s", session_id)
        raise HTTPException(status_code=504, detail="Export preparation timed out") from exc
