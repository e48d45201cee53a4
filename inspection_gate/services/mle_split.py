"""Material/Labor/Equipment split resolution per line item."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Literal

from inspection_gate.config import GENERIC_PRICE_LIST_ID
from inspection_gate.services.rounding import round2

logger = logging.getLogger(__name__)

MLESource = Literal["regional", "category", "fallback"]

RegionalPriceLookup = Callable[[str, str, str], Awaitable[dict[str, Any] | None]]

# Typical price-list distributions; every row sums to 100.
CATEGORY_MLE_DEFAULTS: dict[str, tuple[float, float, float]] = {
    "RFG": (55, 40, 5),
    "DRY": (40, 55, 5),
    "PNT": (35, 60, 5),
    "FLR": (50, 45, 5),
    "PLM": (45, 50, 5),
    "HVA": (40, 45, 15),
    "ELE": (35, 55, 10),
    "DEM": (15, 80, 5),
    "MIT": (15, 80, 5),
    "SDG": (60, 35, 5),
    "INS": (65, 30, 5),
    "FRM": (50, 45, 5),
    "CAB": (50, 45, 5),
    "CTR": (65, 30, 5),
    "WIN": (60, 35, 5),
    "EXT": (60, 35, 5),
    "APL": (80, 15, 5),
    "MEC": (40, 45, 15),
    "GEN": (50, 45, 5),
}


@dataclass(frozen=True)
class MLESplit:
    material: float
    labor: float
    equipment: float
    source: MLESource
    price_list_id: str | None = None


async def _regional_split(
    xact_code: str,
    price_list_id: str,
    activity_type: str,
    get_regional_price: RegionalPriceLookup,
) -> MLESplit | None:
    price = await get_regional_price(xact_code, price_list_id, activity_type)
    if not price or price.get("materialCost") is None or price.get("laborCost") is None:
        return None

    material = float(price.get("materialCost") or 0)
    labor = float(price.get("laborCost") or 0)
    equipment = float(price.get("equipmentCost") or 0)
    total = material + labor + equipment
    if total <= 0:
        return None

    return MLESplit(
        material=round2(material / total * 100),
        labor=round2(labor / total * 100),
        equipment=round2(equipment / total * 100),
        source="regional",
        price_list_id=price_list_id,
    )


async def resolve_mle(
    xact_code: str | None = None,
    category: str | None = None,
    price_list_id: str = GENERIC_PRICE_LIST_ID,
    activity_type: str = "install",
    get_regional_price: RegionalPriceLookup | None = None,
) -> MLESplit:
    """Resolve the M/L/E split for one item.

    Tier 1 asks the regional price lookup; tier 2 uses the category table keyed
    by the 3-letter trade prefix; tier 3 falls back to the general row. A
    failing regional lookup never aborts resolution.
    """
    if xact_code and get_regional_price is not None and price_list_id:
        try:
            split = await _regional_split(xact_code, price_list_id, activity_type, get_regional_price)
        except Exception as exc:
            logger.warning(
                "Regional M/L/E lookup failed for %s on %s — using category defaults: %s",
                xact_code,
                price_list_id,
                exc,
            )
            split = None
        if split is not None:
            return split

    prefix = (category or "GEN").upper().strip()[:3]
    if prefix in CATEGORY_MLE_DEFAULTS:
        material, labor, equipment = CATEGORY_MLE_DEFAULTS[prefix]
        return MLESplit(material, labor, equipment, source="category")

    material, labor, equipment = CATEGORY_MLE_DEFAULTS["GEN"]
    return MLESplit(material, labor, equipment, source="fallback")


def validate_mle_split(split: MLESplit) -> bool:
    """Percentages must sum to 100 within one point of rounding slack."""
    return abs(split.material + split.labor + split.equipment - 100) <= 1


def apply_mle_to_price(total_price: float, split: MLESplit) -> dict[str, float]:
    """Break a total price into M/L/E amounts, each rounded to cents on its own."""
    return {
        "material": round2(total_price * split.material / 100),
        "labor": round2(total_price * split.labor / 100),
        "equipment": round2(total_price * split.equipment / 100),
    }
