"""Unit tests for the sketch, scope, photo/damage and export gates."""

import asyncio
import math
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest

from inspection_gate.graph.nodes.export_gate import run_export_gate
from inspection_gate.graph.nodes.photo_damage_gate import evaluate_photo_damage, run_photo_damage_gate
from inspection_gate.graph.nodes.scope_gate import evaluate_scope, run_scope_gate
from inspection_gate.graph.nodes.sketch_gate import evaluate_sketch, run_sketch_gate
from inspection_gate.graph.results import make_issue, summarize, to_summary
from inspection_gate.graph.workflow import run_all_gates
from inspection_gate.orchestrator.errors import GateTimeoutError
from inspection_gate.services.storage import InMemoryInspectionRepository


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SQUARE = [{"x": 0, "y": 0}, {"x": 12, "y": 0}, {"x": 12, "y": 10}, {"x": 0, "y": 10}]


def _make_room(room_id: int = 1, **overrides: Any) -> dict[str, Any]:
    room = {"id": room_id, "name": f"Room {room_id}", "viewType": "interior", "polygon": SQUARE}
    room.update(overrides)
    return room


def _make_repository(
    claim: dict[str, Any] | None = None,
    rooms: list[dict[str, Any]] | None = None,
    damages: list[dict[str, Any]] | None = None,
    line_items: list[dict[str, Any]] | None = None,
    photos: list[dict[str, Any]] | None = None,
) -> InMemoryInspectionRepository:
    """Session 1 on claim 100 with a complete claim and a single square room."""
    repository = InMemoryInspectionRepository()
    repository.add_claim(
        claim
        if claim is not None
        else {"id": 100, "claimNumber": "CLM-1", "propertyAddress": "1 Main St", "perilType": "water"}
    )
    repository.add_session({"id": 1, "claimId": 100})
    for room in rooms if rooms is not None else [_make_room()]:
        repository.add_room(1, room)
    for damage in damages or []:
        repository.add_damage(1, damage)
    for item in line_items or []:
        repository.add_line_item(1, item)
    for photo in photos or []:
        repository.add_photo(1, photo)
    return repository


def _codes(result: dict[str, Any]) -> list[str]:
    return [issue["code"] for issue in result["issues"]]


# ---------------------------------------------------------------------------
# Summarisation
# ---------------------------------------------------------------------------

class TestSummarize:
    """Issue list → counts and ok flag."""

    def test_ok_iff_no_blockers(self) -> None:
        warn_only = summarize("scope", [make_issue("WARNING", "W", "w"), make_issue("INFO", "I", "i")])
        assert warn_only["ok"] is True
        assert warn_only["summary"] == {"blockers": 0, "warnings": 1, "infos": 1}

        blocked = summarize("sketch", [make_issue("BLOCKER", "B", "b")])
        assert blocked["ok"] is False
        assert to_summary(blocked) == {"ok": False, "blockers": 1, "warnings": 0, "infos": 0}

    def test_optional_fields_omitted(self) -> None:
        issue = make_issue("INFO", "X", "x")
        assert set(issue) == {"severity", "code", "message"}


# ---------------------------------------------------------------------------
# Sketch gate
# ---------------------------------------------------------------------------

class TestSketchGate:
    """Polygon and opening geometry; malformed data yields issues, not errors."""

    def test_clean_room_passes(self) -> None:
        result = evaluate_sketch([_make_room()], [])
        assert result["ok"] is True
        assert result["issues"] == []

    def test_too_few_vertices(self) -> None:
        result = evaluate_sketch([_make_room(polygon=SQUARE[:2])], [])
        assert _codes(result) == ["SKETCH_TOO_FEW_VERTICES"]
        assert result["ok"] is False

    def test_empty_polygon_is_not_flagged(self) -> None:
        assert evaluate_sketch([_make_room(polygon=[])], [])["issues"] == []

    def test_nan_coordinate(self) -> None:
        polygon = [*SQUARE[:3], {"x": math.nan, "y": 10}]
        assert "SKETCH_NAN_COORD" in _codes(evaluate_sketch([_make_room(polygon=polygon)], []))

    def test_wall_index_out_of_range(self) -> None:
        opening = {"id": 5, "roomId": 1, "wallIndex": 4, "widthFt": 3, "heightFt": 7}
        result = evaluate_sketch([_make_room()], [opening])
        assert _codes(result) == ["OPENING_WALL_INDEX_RANGE"]

    def test_invalid_dimensions(self) -> None:
        opening = {"id": 5, "roomId": 1, "wallIndex": 0, "widthFt": 0, "heightFt": 7}
        assert _codes(evaluate_sketch([_make_room()], [opening])) == ["OPENING_INVALID_DIMS"]

    def test_opening_wider_than_wall_warns(self) -> None:
        # Wall 1 runs (12,0) -> (12,10): 10 ft long.
        opening = {"id": 5, "roomId": 1, "wallIndex": 1, "widthFt": 11, "heightFt": 7}
        result = evaluate_sketch([_make_room()], [opening])
        assert _codes(result) == ["OPENING_WIDER_THAN_WALL"]
        assert result["ok"] is True

    def test_opening_in_other_room_ignored(self) -> None:
        opening = {"id": 5, "roomId": 2, "wallIndex": 9, "widthFt": 0, "heightFt": 0}
        assert evaluate_sketch([_make_room()], [opening])["issues"] == []

    def test_elevation_missing_height(self) -> None:
        room = _make_room(viewType="elevation", dimensions={"length": 30})
        result = evaluate_sketch([room], [])
        assert _codes(result) == ["ELEVATION_MISSING_HEIGHT"]
        assert result["issues"][0]["entity"]["type"] == "elevation"

    def test_numeric_string_coordinates_are_measured(self) -> None:
        polygon = [{"x": str(p["x"]), "y": str(p["y"])} for p in SQUARE]
        opening = {"id": 5, "roomId": 1, "wallIndex": 0, "widthFt": 13, "heightFt": 7}
        result = evaluate_sketch([_make_room(polygon=polygon)], [opening])
        assert _codes(result) == ["OPENING_WIDER_THAN_WALL"]
        assert result["issues"][0]["details"]["wallLengthFt"] == 12

    def test_garbage_coordinates_become_blocker(self) -> None:
        polygon = [*SQUARE[:3], {"x": "left", "y": 10}]
        opening = {"id": 5, "roomId": 1, "wallIndex": 2, "widthFt": 3, "heightFt": 7}
        result = evaluate_sketch([_make_room(polygon=polygon)], [opening])
        assert _codes(result) == ["SKETCH_NAN_COORD"]

    def test_list_shaped_vertices_become_blocker(self) -> None:
        polygon = [[0, 0], [12, 0], [12, 10]]
        opening = {"id": 5, "roomId": 1, "wallIndex": 0, "widthFt": 3, "heightFt": 7}
        result = evaluate_sketch([_make_room(polygon=polygon)], [opening])
        assert _codes(result) == ["SKETCH_NAN_COORD"]
        assert result["ok"] is False

    def test_non_numeric_opening_fields(self) -> None:
        opening = {"id": 5, "roomId": 1, "wallIndex": "north", "widthFt": "wide", "heightFt": 7}
        result = evaluate_sketch([_make_room()], [opening])
        assert _codes(result) == ["OPENING_WALL_INDEX_RANGE", "OPENING_INVALID_DIMS"]

    def test_reads_from_repository(self) -> None:
        repository = _make_repository(rooms=[_make_room(polygon=SQUARE[:1])])
        result = asyncio.run(run_sketch_gate(repository, 1))
        assert result["gate"] == "sketch"
        assert _codes(result) == ["SKETCH_TOO_FEW_VERTICES"]


# ---------------------------------------------------------------------------
# Scope gate
# ---------------------------------------------------------------------------

class TestScopeGate:
    """Damage coverage, duplicate lines and peril hints."""

    def test_matching_damage_id_covers_damage(self) -> None:
        repository = _make_repository(
            damages=[{"id": 10, "roomId": 1, "damageType": "water_stain", "severity": "moderate"}],
            line_items=[{"id": 1, "roomId": 1, "damageId": 10, "category": "DRY", "provenance": "voice"}],
        )
        result = asyncio.run(run_scope_gate(repository, 1, "water"))
        assert "SCOPE_DAMAGE_UNCOVERED" not in _codes(result)
        assert result["suggestedMissingScopeItems"] == []

    def test_mismatched_damage_id_leaves_damage_uncovered(self) -> None:
        repository = _make_repository(
            damages=[{"id": 10, "roomId": 1, "damageType": "water_stain", "severity": "moderate"}],
            line_items=[{"id": 1, "roomId": 1, "damageId": 99, "category": "DRY", "provenance": "voice"}],
        )
        result = asyncio.run(run_scope_gate(repository, 1, "water"))
        uncovered = [i for i in result["issues"] if i["code"] == "SCOPE_DAMAGE_UNCOVERED"]
        assert len(uncovered) == 1
        assert uncovered[0]["details"] == {"damageId": 10}
        assert result["suggestedMissingScopeItems"] == ["Add scope line for water_stain in room 1"]

    def test_scope_item_covers_damage(self) -> None:
        result = evaluate_scope(
            [_make_room()],
            [{"id": 10, "roomId": 1, "severity": "severe"}],
            [],
            [{"id": 3, "roomId": 1, "damageId": 10}],
        )
        assert "SCOPE_DAMAGE_UNCOVERED" not in _codes(result)

    def test_same_damage_id_in_other_room_does_not_cover(self) -> None:
        result = evaluate_scope(
            [_make_room()],
            [{"id": 10, "roomId": 1, "severity": "severe"}],
            [{"id": 1, "roomId": 2, "damageId": 10, "provenance": "manual"}],
            [],
        )
        assert "SCOPE_DAMAGE_UNCOVERED" in _codes(result)

    def test_severity_none_is_not_confirmed(self) -> None:
        result = evaluate_scope([_make_room()], [{"id": 10, "roomId": 1, "severity": "None"}], [], [])
        assert result["issues"] == []

    def test_distinct_damage_ids_are_not_duplicates(self) -> None:
        items = [
            {"id": 1, "roomId": 1, "damageId": 10, "category": "DRY", "provenance": "voice"},
            {"id": 2, "roomId": 1, "damageId": 11, "category": "DRY", "provenance": "voice"},
        ]
        assert "SCOPE_DUPLICATE_LINE" not in _codes(evaluate_scope([_make_room()], [], items, []))

    def test_same_key_is_duplicate(self) -> None:
        items = [
            {"id": 1, "roomId": 1, "damageId": 10, "category": "DRY", "provenance": "voice"},
            {"id": 2, "roomId": 1, "damageId": 10, "category": "DRY", "provenance": "voice"},
        ]
        result = evaluate_scope([_make_room()], [], items, [])
        assert _codes(result) == ["SCOPE_DUPLICATE_LINE"]
        assert result["issues"][0]["entity"]["id"] == "2"

    def test_missing_provenance_is_info(self) -> None:
        result = evaluate_scope([_make_room()], [], [{"id": 1, "roomId": 1, "category": "PNT"}], [])
        assert _codes(result) == ["SCOPE_PROVENANCE_MISSING"]
        assert result["issues"][0]["severity"] == "INFO"

    def test_hail_without_roof_plan(self) -> None:
        assert _codes(evaluate_scope([_make_room()], [], [], [], "hail")) == ["SCOPE_HAIL_ROOF_EXPECTED"]

    def test_hail_with_roof_plan(self) -> None:
        rooms = [_make_room(), _make_room(2, viewType="roof_plan")]
        assert evaluate_scope(rooms, [], [], [], "Hail")["issues"] == []


# ---------------------------------------------------------------------------
# PhotoDamage gate
# ---------------------------------------------------------------------------

class TestPhotoDamageGate:
    """Photo analysis coverage, room links and confidence."""

    def test_no_photos_no_issues(self) -> None:
        assert evaluate_photo_damage([], [])["issues"] == []

    def test_unanalyzed_photos(self) -> None:
        result = evaluate_photo_damage([{"id": 1, "roomId": 1}], [])
        assert _codes(result) == ["PHOTO_ANALYSIS_MISSING"]

    def test_unassociated_photo(self) -> None:
        result = evaluate_photo_damage([{"id": 4, "analysis": {"matchConfidence": 0.2}}], [])
        assert _codes(result) == ["PHOTO_ROOM_UNASSOCIATED"]
        assert "Photo 4" in result["issues"][0]["message"]

    def test_high_confidence_still_requires_confirmation(self) -> None:
        photo = {"id": 4, "roomId": 1, "matchesRequest": False, "analysis": {"matchConfidence": 0.95}}
        result = evaluate_photo_damage([photo], [])
        assert _codes(result) == ["PHOTO_CONFIDENCE_GATE"]
        assert "Photo 4" in result["issues"][0]["message"]

    def test_string_confidence_is_coerced(self) -> None:
        photo = {"id": 4, "roomId": 1, "analysis": {"matchConfidence": "0.9"}}
        result = evaluate_photo_damage([photo], [])
        assert _codes(result) == ["PHOTO_CONFIDENCE_GATE"]
        assert result["issues"][0]["details"]["matchConfidence"] == 0.9

    def test_unparseable_confidence_counts_as_zero(self) -> None:
        photo = {"id": 4, "roomId": 1, "analysis": {"matchConfidence": "high"}}
        assert evaluate_photo_damage([photo], [])["issues"] == []

    def test_confirmed_photo_passes(self) -> None:
        photo = {"id": 4, "roomId": 1, "matchesRequest": True, "analysis": {"matchConfidence": 0.95}}
        assert evaluate_photo_damage([photo], [])["issues"] == []

    def test_damage_hints_without_damage_records(self) -> None:
        photo = {"id": 4, "roomId": 1, "analysis": {"damageVisible": [{"type": "hail"}]}}
        assert _codes(evaluate_photo_damage([photo], [])) == ["PHOTO_DAMAGE_MAPPING_LOW"]
        assert evaluate_photo_damage([photo], [{"id": 1, "roomId": 1}])["issues"] == []

    def test_reads_from_repository(self) -> None:
        repository = _make_repository(photos=[{"id": 1, "roomId": 1}])
        result = asyncio.run(run_photo_damage_gate(repository, 1))
        assert result["gate"] == "photoDamage"
        assert _codes(result) == ["PHOTO_ANALYSIS_MISSING"]


# ---------------------------------------------------------------------------
# Export gate
# ---------------------------------------------------------------------------

class TestExportGate:
    """Export readiness composed from claim data and the other gates."""

    def test_missing_session_short_circuits(self) -> None:
        repository = _make_repository()
        result = asyncio.run(run_export_gate(repository, 404))
        assert _codes(result) == ["EXPORT_SESSION_MISSING"]
        assert result["ok"] is False

    def test_clean_session_is_ok(self) -> None:
        result = asyncio.run(run_export_gate(_make_repository(), 1))
        assert result["ok"] is True
        assert result["issues"] == []

    def test_missing_claim_number_blocks(self) -> None:
        repository = _make_repository(claim={"id": 100, "propertyAddress": "1 Main St"})
        result = asyncio.run(run_export_gate(repository, 1))
        assert result["ok"] is False
        assert "EXPORT_REQUIRED_CLAIM_DATA" in _codes(result)

    def test_sketch_blocker_propagates(self) -> None:
        repository = _make_repository(rooms=[_make_room(polygon=SQUARE[:2])])
        result = asyncio.run(run_export_gate(repository, 1))
        blocker = next(i for i in result["issues"] if i["code"] == "EXPORT_SKETCH_BLOCKER")
        assert blocker["severity"] == "BLOCKER"
        assert blocker["details"]["blockers"] == 1

    def test_uncovered_damage_warns(self) -> None:
        repository = _make_repository(damages=[{"id": 10, "roomId": 1, "severity": "moderate"}])
        result = asyncio.run(run_export_gate(repository, 1))
        assert _codes(result) == ["EXPORT_SCOPE_COVERAGE_WARN"]
        assert result["ok"] is True

    def test_photo_issues_downgraded_and_prefixed(self) -> None:
        repository = _make_repository(photos=[{"id": 1, "roomId": 1}])
        result = asyncio.run(run_export_gate(repository, 1))
        assert _codes(result) == ["EXPORT_PHOTO_PHOTO_ANALYSIS_MISSING"]
        assert result["issues"][0]["severity"] == "WARNING"

    def test_inner_photo_blocker_becomes_warning(self) -> None:
        inner = summarize("photoDamage", [make_issue("BLOCKER", "PHOTO_X", "x")])
        with patch(
            "inspection_gate.graph.nodes.export_gate.run_photo_damage_gate",
            new=AsyncMock(return_value=inner),
        ):
            result = asyncio.run(run_export_gate(_make_repository(), 1))
        assert _codes(result) == ["EXPORT_PHOTO_PHOTO_X"]
        assert result["ok"] is True


# ---------------------------------------------------------------------------
# Full gate run
# ---------------------------------------------------------------------------

class TestRunAllGates:
    """Graph run of all four gates under a deadline."""

    def test_returns_all_four_gates(self) -> None:
        repository = _make_repository(rooms=[_make_room(polygon=SQUARE[:2])])
        results = asyncio.run(run_all_gates(repository, 1, "water"))

        assert set(results) == {"sketch", "scope", "photoDamage", "export"}
        assert results["sketch"]["ok"] is False
        assert results["export"]["ok"] is False
        assert results["scope"]["ok"] is True

    def test_timeout_raises(self) -> None:
        repository = _make_repository()

        async def slow_rooms(session_id: int) -> list[dict[str, Any]]:
            await asyncio.sleep(1)
            return []

        repository.get_rooms = slow_rooms  # type: ignore[method-assign]
        with pytest.raises(GateTimeoutError):
            asyncio.run(run_all_gates(repository, 1, timeout=0.01))
