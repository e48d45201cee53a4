"""Process-wide collaborators handed to routes through FastAPI ``Depends``.

Tests and alternative deployments swap these out with
``app.dependency_overrides``.
"""

from functools import lru_cache

from inspection_gate.config import Settings, load_settings
from inspection_gate.orchestrator.service import WorkflowOrchestrator
from inspection_gate.services.events import EventBus
from inspection_gate.services.storage import InMemoryInspectionRepository, InspectionRepository


@lru_cache
def get_settings() -> Settings:
    return load_settings()


@lru_cache
def get_event_bus() -> EventBus:
    return EventBus()


@lru_cache
def get_repository() -> InspectionRepository:
    return InMemoryInspectionRepository()


@lru_cache
def get_orchestrator() -> WorkflowOrchestrator:
    return WorkflowOrchestrator(get_repository(), get_settings(), get_event_bus())
