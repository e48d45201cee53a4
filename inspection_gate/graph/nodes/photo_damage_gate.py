"""PhotoDamage gate — photo analysis coverage and room association."""

import asyncio
import logging
from typing import Any

from langchain_core.runnables import RunnableConfig

from inspection_gate.graph.results import GateIssue, GateResult, entity, make_issue, summarize
from inspection_gate.graph.state import GateRunState, repository_from_config
from inspection_gate.services.records import Damage, Photo
from inspection_gate.services.storage import InspectionRepository

logger = logging.getLogger(__name__)

# Above this, an analysis result is confident enough to ask for human confirmation.
CONFIDENCE_THRESHOLD = 0.8


def _analysis(photo: Photo) -> dict[str, Any]:
    analysis = photo.get("analysis")
    return analysis if isinstance(analysis, dict) else {}


def _confidence(photo: Photo) -> float:
    """Numeric match confidence of a photo's analysis; 0 when absent or unparseable."""
    value = _analysis(photo).get("matchConfidence")
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def evaluate_photo_damage(photos: list[Photo], damages: list[Damage]) -> GateResult:
    """Pure photo checks. High confidence never confirms a photo by itself."""
    issues: list[GateIssue] = []

    if photos and not any(photo.get("analysis") for photo in photos):
        issues.append(
            make_issue("WARNING", "PHOTO_ANALYSIS_MISSING", "Photos captured but none analyzed")
        )

    for photo in photos:
        ref = entity("photo", photo["id"])
        if photo.get("roomId") is None:
            issues.append(
                make_issue(
                    "WARNING",
                    "PHOTO_ROOM_UNASSOCIATED",
                    f"Photo {photo['id']} not linked to room",
                    ref,
                )
            )

        confidence = _confidence(photo)
        if confidence > CONFIDENCE_THRESHOLD and not photo.get("matchesRequest"):
            issues.append(
                make_issue(
                    "WARNING",
                    "PHOTO_CONFIDENCE_GATE",
                    f"Photo {photo['id']} high confidence but not confirmed; require confirm",
                    ref,
                    details={"matchConfidence": confidence},
                )
            )

    damage_hinted = any(_analysis(photo).get("damageVisible") for photo in photos)
    if damage_hinted and not damages:
        issues.append(
            make_issue(
                "WARNING",
                "PHOTO_DAMAGE_MAPPING_LOW",
                "Photos show damage but no damage records exist",
            )
        )

    return summarize("photoDamage", issues)


async def run_photo_damage_gate(repository: InspectionRepository, session_id: int) -> GateResult:
    """Fetch photos and damages for the session and run the photo checks.

    Args:
        repository: Session data access.
        session_id: Inspection session to check.

    Returns:
        The PhotoDamage ``GateResult``.
    """
    photos, damages = await asyncio.gather(
        repository.get_photos(session_id),
        repository.get_damages_for_session(session_id),
    )
    result = evaluate_photo_damage(photos, damages)
    logger.info(
        "PhotoDamage gate — session_id=%s photos=%d summary=%s",
        session_id,
        len(photos),
        result["summary"],
    )
    return result


async def photo_damage_gate_node(state: GateRunState, config: RunnableConfig) -> dict[str, Any]:
    """Graph node wrapper around ``run_photo_damage_gate``."""
    repository = repository_from_config(config)
    return {"photoDamage": await run_photo_damage_gate(repository, state["session_id"])}
