"""Typed in-process domain events and the publish/subscribe bus.

One ``EventBus`` is created per application and handed to whatever emits
events. Subscribers are registered explicitly at startup.
"""

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar, TypeVar

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("inspection_gate.audit")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class DomainEvent:
    type: ClassVar[str] = "event"

    session_id: int
    at: str = field(default_factory=_now, kw_only=True)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, **asdict(self)}


@dataclass(frozen=True)
class SessionInitialized(DomainEvent):
    type: ClassVar[str] = "workflow.sessionInitialized"

    claim_id: int
    peril: str
    phase: str


@dataclass(frozen=True)
class ToolRejected(DomainEvent):
    type: ClassVar[str] = "workflow.toolRejected"

    tool: str
    code: str
    phase: str


@dataclass(frozen=True)
class ToolFailed(DomainEvent):
    type: ClassVar[str] = "workflow.toolFailed"

    tool: str
    code: str
    message: str


@dataclass(frozen=True)
class GatesEvaluated(DomainEvent):
    type: ClassVar[str] = "workflow.gatesEvaluated"

    blocked_gates: tuple[str, ...]
    blockers: int
    warnings: int


@dataclass(frozen=True)
class PhaseAdvanced(DomainEvent):
    type: ClassVar[str] = "workflow.phaseAdvanced"

    from_phase: str
    to_phase: str


E = TypeVar("E", bound=DomainEvent)
Handler = Callable[[Any], None]


class EventBus:
    """Synchronous publish/subscribe keyed by event class.

    A handler that raises is logged with its traceback and the remaining
    handlers still run; the publisher never sees subscriber failures.
    """

    def __init__(self) -> None:
        self._handlers: dict[type[DomainEvent], list[Handler]] = defaultdict(list)
        self._wildcard: list[Handler] = []

    def subscribe(self, event_type: type[E], handler: Callable[[E], None]) -> None:
        self._handlers[event_type].append(handler)

    def subscribe_all(self, handler: Callable[[DomainEvent], None]) -> None:
        self._wildcard.append(handler)

    def unsubscribe(self, event_type: type[E], handler: Callable[[E], None]) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event: DomainEvent) -> None:
        for handler in [*self._handlers.get(type(event), []), *self._wildcard]:
            try:
                handler(event)
            except Exception:
                logger.exception("Event subscriber failed — event=%s handler=%r", event.type, handler)


def register_audit_log_subscriber(bus: EventBus) -> None:
    """Write every domain event to the ``inspection_gate.audit`` logger."""

    def _audit(event: DomainEvent) -> None:
        payload = event.to_dict()
        audit_logger.info(
            "audit_event %s session_id=%s %s",
            payload.pop("type"),
            payload.pop("session_id"),
            payload,
        )

    bus.subscribe_all(_audit)
