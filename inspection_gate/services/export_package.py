"""Assemble and validate an export package for the estimating system.

Rendering the package to its file format is handled elsewhere; this module
produces the priced line items and header and decides whether they are ready.
"""

import logging
from collections.abc import Mapping
from typing import Any, TypedDict

from inspection_gate.config import Settings
from inspection_gate.graph.nodes.export_gate import run_export_gate
from inspection_gate.graph.results import GateResult
from inspection_gate.orchestrator.errors import SessionNotFoundError
from inspection_gate.services.depreciation import calculate_depreciation
from inspection_gate.services.esx_validator import ValidationResult, validate_esx_data
from inspection_gate.services.life_expectancy import lookup_life_expectancy
from inspection_gate.services.mle_split import RegionalPriceLookup, apply_mle_to_price, resolve_mle
from inspection_gate.services.records import LineItem, WaterClassification
from inspection_gate.services.rounding import round2
from inspection_gate.services.storage import InspectionRepository
from inspection_gate.services.xactdoc_metadata import (
    XactdocMetadata,
    build_xactdoc_metadata,
    resolve_price_list_id,
)

logger = logging.getLogger(__name__)


class ESXLineItem(TypedDict):
    id: int
    roomId: int | None
    description: str
    category: str
    tradeCode: str | None
    xactCode: str | None
    action: str
    quantity: float
    unit: str
    unitPrice: float
    rcvTotal: float
    acvTotal: float
    depreciationAmount: float
    depreciationPercentage: float
    lifeExpectancy: float
    age: float | None
    material: float
    laborTotal: float
    equipment: float
    mleSource: str


class ExportPackage(TypedDict):
    ready: bool
    gate: GateResult
    validation: ValidationResult
    metadata: XactdocMetadata
    lineItems: list[ESXLineItem]
    priceListId: str


def _resolve_life_expectancy(category: str, trade_code: str | None, description: str) -> int:
    """Service life from the category table, falling back to the trade code.

    Args:
        category: Stored category name of the line item.
        trade_code: Three-letter trade code, if any.
        description: Item description scanned for table keywords.

    Returns:
        Years of expected life, or 0 when neither key is in the table.
    """
    life = lookup_life_expectancy(category, description)
    if life == 0 and trade_code:
        life = lookup_life_expectancy(trade_code, description)
    return life


async def to_esx_line_item(
    item: LineItem,
    price_list_id: str,
    depreciation_type: str | None = None,
    water_classification: WaterClassification | None = None,
    get_regional_price: RegionalPriceLookup | None = None,
) -> ESXLineItem:
    """Price one stored line item: depreciation, ACV and the M/L/E breakdown."""
    quantity = float(item.get("quantity") or 0)
    unit_price = float(item.get("unitPrice") or 0)
    total = item.get("totalPrice")
    rcv = round2(float(total) if total is not None else quantity * unit_price)
    category = item.get("category") or "GEN"
    trade_code = item.get("tradeCode")
    description = item.get("description") or ""
    life = item.get("lifeExpectancy")
    if life is None:
        life = _resolve_life_expectancy(category, trade_code, description)

    depreciation = calculate_depreciation(
        total_price=rcv,
        age=item.get("age"),
        life_expectancy=life,
        category=category,
        description=description,
        depreciation_type=depreciation_type,
        trade_code=trade_code,
        water_classification=water_classification,
    )
    split = await resolve_mle(
        xact_code=item.get("xactCode"),
        category=trade_code or category,
        price_list_id=price_list_id,
        activity_type=(item.get("action") or "install").lower(),
        get_regional_price=get_regional_price,
    )
    amounts = apply_mle_to_price(rcv, split)

    return {
        "id": item["id"],
        "roomId": item.get("roomId"),
        "description": item.get("description") or "",
        "category": category,
        "tradeCode": trade_code,
        "xactCode": item.get("xactCode"),
        "action": item.get("action") or "Replace",
        "quantity": quantity,
        "unit": item.get("unit") or "EA",
        "unitPrice": unit_price,
        "rcvTotal": rcv,
        "acvTotal": round2(rcv - depreciation.depreciation_amount),
        "depreciationAmount": depreciation.depreciation_amount,
        "depreciationPercentage": depreciation.depreciation_percentage,
        "lifeExpectancy": depreciation.life_expectancy,
        "age": item.get("age"),
        "material": amounts["material"],
        "laborTotal": amounts["labor"],
        "equipment": amounts["equipment"],
        "mleSource": split.source,
    }


async def prepare_export(
    repository: InspectionRepository,
    session_id: int,
    settings: Settings,
    briefing: Mapping[str, Any] | None = None,
    is_supplemental: bool = False,
    supplemental_reason: str | None = None,
    adjuster_data: Mapping[str, Any] | None = None,
    get_regional_price: RegionalPriceLookup | None = None,
) -> ExportPackage:
    """Build the export package for a session and judge whether it can ship.

    Args:
        repository: Storage collaborator.
        session_id: Inspection session to export.
        settings: Service settings (carrier name, default price list).
        briefing: Optional policy briefing with coverage and price list data.
        is_supplemental: Export as a supplement to an earlier estimate.
        supplemental_reason: Reason recorded on a supplement.
        adjuster_data: Adjuster profile for the header.
        get_regional_price: Regional price lookup for the M/L/E split.

    Returns:
        The package; ``ready`` holds only when the export gate is ok and the
        compliance validation found no errors.

    Raises:
        SessionNotFoundError: The session does not exist.
    """
    session = await repository.get_inspection_session(session_id)
    if session is None:
        raise SessionNotFoundError(session_id)

    claim = await repository.get_claim(session["claimId"]) or {"id": session["claimId"]}
    gate = await run_export_gate(repository, session_id)

    price_list_id = resolve_price_list_id(claim, briefing, settings)
    stored_items = await repository.get_line_items(session_id)
    line_items = [
        await to_esx_line_item(
            item,
            price_list_id,
            depreciation_type=claim.get("depreciationType"),
            water_classification=session.get("waterClassification"),
            get_regional_price=get_regional_price,
        )
        for item in stored_items
    ]

    metadata = build_xactdoc_metadata(
        claim,
        session,
        line_items,
        settings,
        briefing=briefing,
        is_supplemental=is_supplemental,
        supplemental_reason=supplemental_reason,
        adjuster_data=adjuster_data,
    )
    validation = validate_esx_data(line_items, metadata, claim)
    ready = gate["ok"] and validation["isValid"]

    logger.info(
        "Export prepared — session_id=%s items=%d gate_ok=%s valid=%s ready=%s",
        session_id,
        len(line_items),
        gate["ok"],
        validation["isValid"],
        ready,
    )
    return {
        "ready": ready,
        "gate": gate,
        "validation": validation,
        "metadata": metadata,
        "lineItems": line_items,
        "priceListId": price_list_id,
    }
