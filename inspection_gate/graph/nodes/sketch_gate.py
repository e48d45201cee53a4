"""Sketch gate — geometric sanity of room polygons and their openings."""

import asyncio
import logging
import math
from typing import Any

from langchain_core.runnables import RunnableConfig

from inspection_gate.graph.results import GateIssue, GateResult, entity, make_issue, summarize
from inspection_gate.graph.state import GateRunState, repository_from_config
from inspection_gate.services.records import Opening, Point, Room
from inspection_gate.services.storage import InspectionRepository

logger = logging.getLogger(__name__)


def _coord(value: Any) -> float:
    """Coerce a stored coordinate to float.

    Args:
        value: Raw coordinate from the polygon JSON.

    Returns:
        The numeric value, or NaN when missing or not numeric.
    """
    if value is None:
        return math.nan
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def _vertex(point: Any) -> tuple[float, float] | None:
    """Return ``(x, y)`` for a vertex, or ``None`` if it is not a numeric point."""
    if not isinstance(point, dict):
        return None
    x, y = _coord(point.get("x")), _coord(point.get("y"))
    if math.isnan(x) or math.isnan(y):
        return None
    return x, y


def _has_nan(polygon: list[Point]) -> bool:
    """True when any vertex is malformed or has a non-numeric coordinate."""
    return any(_vertex(point) is None for point in polygon)


def _edge_length(polygon: list[Point], wall_index: int) -> float | None:
    """Length of the edge starting at ``wall_index``; ``None`` if unresolvable."""
    edges = len(polygon)
    if edges < 2 or not 0 <= wall_index < edges:
        return None
    a = _vertex(polygon[wall_index])
    b = _vertex(polygon[(wall_index + 1) % edges])
    if a is None or b is None:
        return None
    return math.hypot(b[0] - a[0], b[1] - a[1])


def _check_opening(room: Room, polygon: list[Point], opening: Opening) -> list[GateIssue]:
    """Range, dimension and fit checks for one opening placed in ``room``.

    Args:
        room: Room record the opening belongs to.
        polygon: The room's polygon, already normalized to a list.
        opening: Opening record to check.

    Returns:
        Issues found for this opening, possibly empty.
    """
    issues: list[GateIssue] = []
    name = room.get("name", "")
    edges = len(polygon)
    wall_index = opening.get("wallIndex")
    index = _coord(wall_index)
    width = _coord(opening.get("widthFt") or 0)
    height = _coord(opening.get("heightFt") or 0)
    ref = entity("opening", opening["id"])

    # NaN fails every comparison, so non-numeric values land in the blocker branches.
    if wall_index is not None and not 0 <= index < edges:
        issues.append(
            make_issue(
                "BLOCKER",
                "OPENING_WALL_INDEX_RANGE",
                f"Opening wallIndex out of range for {name}",
                ref,
                details={"wallIndex": wall_index, "edgeCount": edges},
            )
        )

    if not (width > 0 and height > 0):
        issues.append(
            make_issue(
                "BLOCKER",
                "OPENING_INVALID_DIMS",
                f"Opening {opening['id']} width/height must be > 0",
                ref,
            )
        )

    if wall_index is not None and index.is_integer() and width > 0:
        wall_length = _edge_length(polygon, int(index))
        if wall_length is not None and width > wall_length:
            issues.append(
                make_issue(
                    "WARNING",
                    "OPENING_WIDER_THAN_WALL",
                    f"Opening {opening['id']} wider than wall segment",
                    ref,
                    details={"widthFt": width, "wallLengthFt": round(wall_length, 2)},
                )
            )

    return issues


def evaluate_sketch(rooms: list[Room], openings: list[Opening]) -> GateResult:
    """Pure sketch checks over already-fetched rooms and openings."""
    issues: list[GateIssue] = []

    for room in rooms:
        polygon = room.get("polygon") or []
        if not isinstance(polygon, list):
            polygon = []
        name = room.get("name", "")
        ref = entity("room", room["id"], name)

        if 0 < len(polygon) < 3:
            issues.append(
                make_issue(
                    "BLOCKER",
                    "SKETCH_TOO_FEW_VERTICES",
                    f"Room {name} polygon has < 3 vertices",
                    ref,
                )
            )
        if _has_nan(polygon):
            issues.append(
                make_issue("BLOCKER", "SKETCH_NAN_COORD", f"Room {name} has invalid coordinates", ref)
            )

        for opening in openings:
            if opening.get("roomId") == room["id"]:
                issues.extend(_check_opening(room, polygon, opening))

        if room.get("viewType") == "elevation" and not (room.get("dimensions") or {}).get("height"):
            issues.append(
                make_issue(
                    "WARNING",
                    "ELEVATION_MISSING_HEIGHT",
                    f"Elevation {name} has no wall height",
                    entity("elevation", room["id"], name),
                )
            )

    return summarize("sketch", issues)


async def run_sketch_gate(repository: InspectionRepository, session_id: int) -> GateResult:
    """Fetch rooms and openings for the session and run the sketch checks."""
    rooms, openings = await asyncio.gather(
        repository.get_rooms(session_id),
        repository.get_openings_for_session(session_id),
    )
    result = evaluate_sketch(rooms, openings)
    logger.info(
        "Sketch gate — session_id=%s ok=%s summary=%s",
        session_id,
        result["ok"],
        result["summary"],
    )
    return result


async def sketch_gate_node(state: GateRunState, config: RunnableConfig) -> dict[str, Any]:
    """Graph node wrapper around ``run_sketch_gate``."""
    repository = repository_from_config(config)
    return {"sketch": await run_sketch_gate(repository, state["session_id"])}
