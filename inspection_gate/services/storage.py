"""Storage collaborator interface consumed by the gates and the orchestrator."""

import copy
import logging
from typing import Any, Protocol

from inspection_gate.services.records import (
    Claim,
    Damage,
    InspectionSession,
    LineItem,
    Opening,
    Photo,
    Room,
    ScopeItem,
)

logger = logging.getLogger(__name__)


class InspectionRepository(Protocol):
    """Read/update surface the workflow gating subsystem depends on.

    Every call is async and returns plain records. Gates treat this as the
    sole source of truth and never cache results between runs.
    """

    async def get_inspection_session(self, session_id: int) -> InspectionSession | None: ...

    async def get_claim(self, claim_id: int) -> Claim | None: ...

    async def get_rooms(self, session_id: int) -> list[Room]: ...

    async def get_openings_for_session(self, session_id: int) -> list[Opening]: ...

    async def get_damages_for_session(self, session_id: int) -> list[Damage]: ...

    async def get_line_items(self, session_id: int) -> list[LineItem]: ...

    async def get_scope_items(self, session_id: int) -> list[ScopeItem]: ...

    async def get_photos(self, session_id: int) -> list[Photo]: ...

    async def update_session(
        self, session_id: int, patch: dict[str, Any]
    ) -> InspectionSession | None: ...


class InMemoryInspectionRepository:
    """Dict-backed repository used by the HTTP app out of the box and by tests.

    Records are deep-copied on the way in and out so callers cannot mutate
    stored state through a returned reference.
    """

    def __init__(self) -> None:
        self._sessions: dict[int, InspectionSession] = {}
        self._claims: dict[int, Claim] = {}
        self._rooms: dict[int, list[Room]] = {}
        self._openings: dict[int, list[Opening]] = {}
        self._damages: dict[int, list[Damage]] = {}
        self._line_items: dict[int, list[LineItem]] = {}
        self._scope_items: dict[int, list[ScopeItem]] = {}
        self._photos: dict[int, list[Photo]] = {}

    # ------------------------------------------------------------------
    # Seeding
    # ------------------------------------------------------------------

    def add_claim(self, claim: Claim) -> None:
        self._claims[claim["id"]] = copy.deepcopy(claim)

    def add_session(self, session: InspectionSession) -> None:
        self._sessions[session["id"]] = copy.deepcopy(session)

    def add_room(self, session_id: int, room: Room) -> None:
        self._rooms.setdefault(session_id, []).append(copy.deepcopy(room))

    def add_opening(self, session_id: int, opening: Opening) -> None:
        self._openings.setdefault(session_id, []).append(copy.deepcopy(opening))

    def add_damage(self, session_id: int, damage: Damage) -> None:
        self._damages.setdefault(session_id, []).append(copy.deepcopy(damage))

    def add_line_item(self, session_id: int, item: LineItem) -> None:
        self._line_items.setdefault(session_id, []).append(copy.deepcopy(item))

    def add_scope_item(self, session_id: int, item: ScopeItem) -> None:
        self._scope_items.setdefault(session_id, []).append(copy.deepcopy(item))

    def add_photo(self, session_id: int, photo: Photo) -> None:
        self._photos.setdefault(session_id, []).append(copy.deepcopy(photo))

    # ------------------------------------------------------------------
    # InspectionRepository
    # ------------------------------------------------------------------

    async def get_inspection_session(self, session_id: int) -> InspectionSession | None:
        session = self._sessions.get(session_id)
        return copy.deepcopy(session) if session is not None else None

    async def get_claim(self, claim_id: int) -> Claim | None:
        claim = self._claims.get(claim_id)
        return copy.deepcopy(claim) if claim is not None else None

    async def get_rooms(self, session_id: int) -> list[Room]:
        return copy.deepcopy(self._rooms.get(session_id, []))

    async def get_openings_for_session(self, session_id: int) -> list[Opening]:
        return copy.deepcopy(self._openings.get(session_id, []))

    async def get_damages_for_session(self, session_id: int) -> list[Damage]:
        return copy.deepcopy(self._damages.get(session_id, []))

    async def get_line_items(self, session_id: int) -> list[LineItem]:
        return copy.deepcopy(self._line_items.get(session_id, []))

    async def get_scope_items(self, session_id: int) -> list[ScopeItem]:
        return copy.deepcopy(self._scope_items.get(session_id, []))

    async def get_photos(self, session_id: int) -> list[Photo]:
        return copy.deepcopy(self._photos.get(session_id, []))

    async def update_session(
        self, session_id: int, patch: dict[str, Any]
    ) -> InspectionSession | None:
        session = self._sessions.get(session_id)
        if session is None:
            logger.warning("update_session — unknown session_id=%s", session_id)
            return None
        session.update(copy.deepcopy(patch))  # type: ignore[typeddict-item]
        return copy.deepcopy(session)
