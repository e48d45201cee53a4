"""Fixed inspection phase order, per-phase steps and tool allowlists."""

from typing import Literal

WorkflowPhase = Literal[
    "briefing",
    "inspection_setup",
    "interior_rooms",
    "openings",
    "elevations",
    "roof",
    "photos_damage",
    "scope_build",
    "review",
    "export",
]

WORKFLOW_PHASES: tuple[WorkflowPhase, ...] = (
    "briefing",
    "inspection_setup",
    "interior_rooms",
    "openings",
    "elevations",
    "roof",
    "photos_damage",
    "scope_build",
    "review",
    "export",
)

TERMINAL_PHASE: WorkflowPhase = "export"

WORKFLOW_STEPS: dict[str, tuple[str, ...]] = {
    "briefing": ("briefing.review",),
    "inspection_setup": ("session.bootstrap", "structure.select"),
    "interior_rooms": ("interior.capture_rooms",),
    "openings": ("openings.capture",),
    "elevations": ("elevations.capture",),
    "roof": ("roof.capture",),
    "photos_damage": ("photos.map_damage",),
    "scope_build": ("scope.assemble",),
    "review": ("review.resolve_warnings",),
    "export": ("export.validate", "export.generate"),
}

# Callable in every phase.
GLOBAL_TOOLS: tuple[str, ...] = (
    "get_workflow_state",
    "set_phase",
    "set_context",
    "trigger_photo_capture",
    "analyze_photo",
    "get_inspection_state",
)

PHASE_ALLOWED_TOOLS: dict[str, tuple[str, ...]] = {
    "briefing": GLOBAL_TOOLS,
    "inspection_setup": GLOBAL_TOOLS + ("create_structure",),
    "interior_rooms": GLOBAL_TOOLS + ("create_room", "create_sub_area", "update_room"),
    "openings": GLOBAL_TOOLS + ("add_opening", "update_opening", "delete_opening"),
    "elevations": GLOBAL_TOOLS + ("create_room", "add_opening", "add_sketch_annotation"),
    "roof": GLOBAL_TOOLS + ("create_room", "add_damage", "add_sketch_annotation", "log_test_square"),
    "photos_damage": GLOBAL_TOOLS + ("add_damage", "confirm_damage"),
    "scope_build": GLOBAL_TOOLS + ("add_line_item", "update_line_item", "validate_scope"),
    "review": GLOBAL_TOOLS + ("validate_scope", "run_workflow_gates"),
    "export": GLOBAL_TOOLS + ("run_workflow_gates", "export_esx"),
}


def first_step_for_phase(phase: str) -> str:
    steps = WORKFLOW_STEPS.get(phase)
    return steps[0] if steps else f"{phase}.default"


def next_phase(phase: str) -> str:
    """Phase after ``phase``; the terminal phase maps to itself."""
    index = WORKFLOW_PHASES.index(phase)  # type: ignore[arg-type]
    return WORKFLOW_PHASES[min(index + 1, len(WORKFLOW_PHASES) - 1)]
