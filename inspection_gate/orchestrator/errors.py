"""Exceptions raised inside the workflow orchestrator."""


class WorkflowError(Exception):
    """Base class for workflow policy violations; ``code`` is machine-readable."""

    code = "WORKFLOW_ERROR"


class ToolNotAllowedError(WorkflowError):
    code = "TOOL_NOT_ALLOWED"

    def __init__(self, tool: str, phase: str) -> None:
        self.tool = tool
        self.phase = phase
        super().__init__(f'Tool "{tool}" is not allowed in phase "{phase}".')


class MissingContextError(WorkflowError):
    code = "MISSING_ROOM_CONTEXT"

    def __init__(self, tool: str) -> None:
        self.tool = tool
        super().__init__(f'Tool "{tool}" requires a room or elevation context.')


class SessionNotFoundError(WorkflowError):
    code = "SESSION_NOT_FOUND"

    def __init__(self, session_id: int, detail: str = "Inspection session not found") -> None:
        self.session_id = session_id
        super().__init__(f"{detail}: {session_id}")


class UnsupportedStateVersionError(WorkflowError):
    """Stored workflow state was written by a newer schema than this service reads."""

    code = "STATE_VERSION_UNSUPPORTED"

    def __init__(self, session_id: int, detail: str) -> None:
        self.session_id = session_id
        super().__init__(f"Session {session_id}: {detail}")


class GateTimeoutError(Exception):
    """A full gate run exceeded its deadline."""

    def __init__(self, session_id: int, timeout: float | None) -> None:
        self.session_id = session_id
        self.timeout = timeout
        super().__init__(f"Gate run for session {session_id} exceeded {timeout}s")
