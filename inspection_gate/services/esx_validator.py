"""Pre-export compliance check of ESX line items and XACTDOC metadata.

This is the last check before an estimate package is handed to the external
estimating system. It runs after the workflow gates and may still block an
export they allowed: it audits the numbers that will actually be written.
"""

import logging
from collections.abc import Mapping, Sequence
from typing import Any, Literal, NotRequired, TypedDict

from inspection_gate.config import GENERIC_PRICE_LIST_ID

logger = logging.getLogger(__name__)

SUMMARY_TOLERANCE = 0.01
MLE_TOLERANCE_PCT = 1.0


class ValidationIssue(TypedDict):
    type: Literal["error", "warning"]
    field: str
    message: str
    itemId: NotRequired[Any]


class ValidationResult(TypedDict):
    isValid: bool
    errors: list[ValidationIssue]
    warnings: list[ValidationIssue]
    summary: str


def validate_mle_percentages(material: float, labor: float, equipment: float) -> bool:
    return abs(material + labor + equipment - 100) <= MLE_TOLERANCE_PCT


def validate_acv_vs_rcv(rcv: float, acv: float) -> bool:
    return acv <= rcv + SUMMARY_TOLERANCE


def validate_depreciation_percentage(percentage: float) -> bool:
    return 0 <= percentage <= 100


def _error(field: str, message: str, item_id: Any = None) -> ValidationIssue:
    issue: ValidationIssue = {"type": "error", "field": field, "message": message}
    if item_id is not None:
        issue["itemId"] = item_id
    return issue


def _warning(field: str, message: str, item_id: Any = None) -> ValidationIssue:
    issue: ValidationIssue = {"type": "warning", "field": field, "message": message}
    if item_id is not None:
        issue["itemId"] = item_id
    return issue


def _num(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _validate_header(
    metadata: Mapping[str, Any],
    claim: Mapping[str, Any],
    errors: list[ValidationIssue],
    warnings: list[ValidationIssue],
) -> None:
    if not metadata.get("transactionId"):
        errors.append(_error("XACTDOC.transactionId", "Transaction ID is required"))

    if not metadata.get("claimNumber"):
        errors.append(_error("XACTDOC.claimNumber", "Claim number is required"))

    if not (metadata.get("lossLocation") or {}).get("propertyAddress"):
        errors.append(
            _error("XACTDOC.lossLocation.propertyAddress", "Property address is required")
        )

    if not (metadata.get("peril") or {}).get("dateOfLoss"):
        errors.append(_error("XACTDOC.peril.dateOfLoss", "Date of loss is required"))

    price_list_id = metadata.get("priceListId")
    if not price_list_id or price_list_id == GENERIC_PRICE_LIST_ID:
        warnings.append(
            _warning(
                "XACTDOC.priceListId",
                f"Price list is {GENERIC_PRICE_LIST_ID} (national); regional list recommended",
            )
        )

    deductible = (metadata.get("coverage") or {}).get("deductibleAmount")
    if deductible is not None and _num(deductible) < 0:
        errors.append(_error("XACTDOC.coverage.deductibleAmount", "Deductible cannot be negative"))

    peril = str(claim.get("perilType") or "").lower()
    if peril in ("wind", "hail") and not metadata.get("roofInfo"):
        warnings.append(
            _warning("XACTDOC.roofInfo", "Roof information is missing for wind/hail claim")
        )


def _validate_item(
    item: Mapping[str, Any],
    errors: list[ValidationIssue],
    warnings: list[ValidationIssue],
) -> None:
    item_id = item.get("id")
    prefix = "GENERIC_ROUGHDRAFT.ITEM"

    if not str(item.get("description") or "").strip():
        errors.append(
            _error(f"{prefix}.description", f"Item {item_id}: Description is required", item_id)
        )

    quantity = _num(item.get("quantity"))
    rcv = _num(item.get("rcvTotal"))
    acv = _num(item.get("acvTotal"))

    if quantity < 0:
        errors.append(
            _error(f"{prefix}.quantity", f"Item {item_id}: Quantity cannot be negative", item_id)
        )
    if rcv < 0:
        errors.append(
            _error(f"{prefix}.rcvTotal", f"Item {item_id}: RCV total cannot be negative", item_id)
        )
    if acv < 0:
        errors.append(
            _error(f"{prefix}.acvTotal", f"Item {item_id}: ACV total cannot be negative", item_id)
        )
    # Strict per item; the cent tolerance applies only to summary totals.
    if acv > rcv:
        errors.append(
            _error(
                f"{prefix}.acvTotal",
                f"Item {item_id}: ACV ({acv}) exceeds RCV ({rcv})",
                item_id,
            )
        )

    if rcv > 0:
        material_pct = _num(item.get("material")) / rcv * 100
        labor_pct = _num(item.get("laborTotal")) / rcv * 100
        equipment_pct = _num(item.get("equipment")) / rcv * 100
        if not validate_mle_percentages(material_pct, labor_pct, equipment_pct):
            total = material_pct + labor_pct + equipment_pct
            warnings.append(
                _warning(
                    f"{prefix}.mle",
                    f"Item {item_id}: M/L/E percentages sum to {total:.2f}% (expected ~100%)",
                    item_id,
                )
            )

    percentage = item.get("depreciationPercentage")
    if percentage is not None and not validate_depreciation_percentage(_num(percentage)):
        errors.append(
            _error(
                f"{prefix}.depreciationPercentage",
                f"Item {item_id}: Depreciation percentage {percentage}% is invalid (must be 0-100)",
                item_id,
            )
        )

    if not item.get("tradeCode") and item.get("category") != "GEN":
        warnings.append(
            _warning(f"{prefix}.tradeCode", f"Item {item_id}: Trade code is missing", item_id)
        )


def _validate_totals(
    line_items: Sequence[Mapping[str, Any]],
    metadata: Mapping[str, Any],
    errors: list[ValidationIssue],
) -> None:
    summary = metadata.get("summary")
    if not summary:
        return

    calculated = {
        "totalRCV": sum(_num(i.get("rcvTotal")) for i in line_items),
        "totalACV": sum(_num(i.get("acvTotal")) for i in line_items),
        "totalDepreciation": sum(_num(i.get("depreciationAmount")) for i in line_items),
    }
    labels = {"totalRCV": "RCV", "totalACV": "ACV", "totalDepreciation": "depreciation"}

    for key, value in calculated.items():
        declared = _num(summary.get(key))
        if abs(value - declared) > SUMMARY_TOLERANCE:
            errors.append(
                _error(
                    f"XACTDOC.summary.{key}",
                    f"Summary total {labels[key]} {declared} does not match calculated {round(value, 2)}",
                )
            )


def validate_esx_data(
    line_items: Sequence[Mapping[str, Any]],
    metadata: Mapping[str, Any] | None,
    claim: Mapping[str, Any] | None,
) -> ValidationResult:
    """Validate an export package before it is written.

    Args:
        line_items: ESX line items (``rcvTotal``, ``acvTotal``, ``material``,
            ``laborTotal``, ``equipment``, ``depreciationAmount``, ...).
        metadata: XACTDOC metadata whose ``summary`` must reconcile with
            the line items.
        claim: Claim record, consulted for the peril type.

    Returns:
        ``isValid`` is true when there are no errors; warnings never block.
    """
    metadata = metadata or {}
    claim = claim or {}
    errors: list[ValidationIssue] = []
    warnings: list[ValidationIssue] = []

    _validate_header(metadata, claim, errors, warnings)
    for item in line_items:
        _validate_item(item, errors, warnings)
    _validate_totals(line_items, metadata, errors)

    if not (metadata.get("adjusterInfo") or {}).get("name"):
        warnings.append(_warning("XACTDOC.adjusterInfo.name", "Adjuster name is missing"))

    is_valid = not errors
    summary = (
        f"Validation {'passed' if is_valid else 'failed'}: "
        f"{len(errors)} errors, {len(warnings)} warnings"
    )
    logger.info("ESX validation — %s (items=%d)", summary, len(line_items))

    return {"isValid": is_valid, "errors": errors, "warnings": warnings, "summary": summary}
