"""Age-based depreciation for estimate line items."""

import logging
from dataclasses import dataclass

from inspection_gate.services.life_expectancy import lookup_life_expectancy
from inspection_gate.services.records import WaterClassification
from inspection_gate.services.rounding import round2

logger = logging.getLogger(__name__)

PAID_WHEN_INCURRED = "Paid When Incurred"

# Trades whose removal/replacement after a qualifying water loss is paid at half.
_WATER_HALF_DEPRECIATION_TRADES: frozenset[str] = frozenset({"DEM", "RFG", "FLR", "EXT"})
_WATER_NO_DEPRECIATION_TRADES: frozenset[str] = frozenset({"MIT", "DRY"})


@dataclass(frozen=True)
class DepreciationResult:
    life_expectancy: float
    depreciation_percentage: float
    depreciation_amount: float

    def to_dict(self) -> dict[str, float]:
        return {
            "lifeExpectancy": self.life_expectancy,
            "depreciationPercentage": self.depreciation_percentage,
            "depreciationAmount": self.depreciation_amount,
        }


_ZERO = DepreciationResult(0, 0, 0)


def check_water_depreciation_override(
    trade_code: str | None,
    water_classification: WaterClassification | None,
) -> float | None:
    """Return a fixed depreciation percentage mandated by the water loss, if any.

    Category 3 (black water) and class 4 (structural) losses, and the
    mitigation/drying trades, are never depreciated. Category 2 losses of
    class 3 or worse take a flat 50% on tear-out trades. Anything else
    falls back to age-based depreciation (``None``).
    """
    if not water_classification:
        return None

    category = water_classification.get("category")
    water_class = water_classification.get("waterClass")
    trade = (trade_code or "").upper().strip()

    if category == 3:
        return 0
    if water_class == 4:
        return 0
    if trade in _WATER_NO_DEPRECIATION_TRADES:
        return 0
    if category == 2 and water_class is not None and water_class >= 3:
        if trade in _WATER_HALF_DEPRECIATION_TRADES:
            return 50
    return None


def calculate_depreciation(
    total_price: float,
    age: float | None = None,
    life_expectancy: float | None = None,
    category: str = "",
    description: str = "",
    depreciation_type: str | None = None,
    trade_code: str | None = None,
    water_classification: WaterClassification | None = None,
) -> DepreciationResult:
    """Compute depreciation percentage and amount for one line item.

    Args:
        total_price: Replacement cost of the item.
        age: Age of the damaged component in years; ``None`` means undated.
        life_expectancy: Explicit service life; overrides the table lookup.
        category: Category name or trade code used for the table lookup.
        description: Item description scanned for table keywords.
        depreciation_type: ``"Paid When Incurred"`` disables depreciation.
        trade_code: Trade code used by the water-loss override.
        water_classification: IICRC category/class of the session's water loss.

    Returns:
        A ``DepreciationResult`` with the percentage capped at 100 and both
        figures rounded to cents.
    """
    if depreciation_type == PAID_WHEN_INCURRED:
        return _ZERO

    resolved_life = (
        life_expectancy
        if life_expectancy is not None
        else lookup_life_expectancy(category, description)
    )

    override = check_water_depreciation_override(trade_code, water_classification)
    if override is not None:
        logger.debug(
            "Water override — trade=%s classification=%s pct=%s",
            trade_code,
            water_classification,
            override,
        )
        return DepreciationResult(
            life_expectancy=resolved_life,
            depreciation_percentage=override,
            depreciation_amount=round2(total_price * override / 100),
        )

    if not age:
        return DepreciationResult(resolved_life, 0, 0)

    if resolved_life == 0:
        return _ZERO

    percentage = round2(min(100.0, age / resolved_life * 100))
    amount = round2(total_price * percentage / 100)
    return DepreciationResult(resolved_life, percentage, amount)
