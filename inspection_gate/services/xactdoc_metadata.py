"""XACTDOC header metadata for the external estimating package.

Field names and nesting follow the import format exactly; do not rename keys.
"""

import logging
import uuid
from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from typing import Any, Literal, NotRequired, TypedDict

from inspection_gate.config import Settings

logger = logging.getLogger(__name__)


class PerilInfo(TypedDict):
    type: str
    severity: str
    affectedAreas: list[str]
    dateOfLoss: str
    dateDiscovered: NotRequired[str | None]
    dateReported: NotRequired[str | None]


class LossLocation(TypedDict):
    propertyAddress: str
    city: str
    state: str
    zip: str
    county: NotRequired[str | None]
    latitude: NotRequired[float | None]
    longitude: NotRequired[float | None]
    propertyType: str
    yearBuilt: NotRequired[int | None]
    squareFootage: NotRequired[float | None]


class LossDetails(TypedDict):
    causeOfLoss: str
    catastrophicIndicator: bool
    estimatedOccupancyImpact: NotRequired[str | None]
    salvageOpportunity: bool


class Coverage(TypedDict):
    coverageALimit: float
    coverageBLimit: float
    coverageCLimit: float
    coverageDLimit: float
    coverageELimit: float
    coverageFLimit: float
    deductibleType: str
    deductibleAmount: float
    coinsurancePercentage: float


class RoofInfoBlock(TypedDict):
    roofType: str
    roofAge: float
    roofMaterial: str
    roofSlope: str
    squareFootage: float
    condition: str


class AdjusterInfo(TypedDict):
    name: str
    company: str
    licenseNumber: NotRequired[str | None]
    phoneNumber: NotRequired[str | None]
    email: NotRequired[str | None]
    licenseState: NotRequired[str | None]


class InspectorInfo(TypedDict):
    name: str
    company: str
    inspectionDate: str
    phoneNumber: NotRequired[str | None]
    email: NotRequired[str | None]


class InsuredInfo(TypedDict):
    name: str
    address: str
    city: str
    state: str
    zip: str
    homePhone: NotRequired[str | None]
    cellPhone: NotRequired[str | None]
    email: NotRequired[str | None]


class EstimateSummary(TypedDict):
    totalRCV: float
    totalACV: float
    totalDepreciation: float
    totalMaterial: float
    totalLabor: float
    totalEquipment: float
    lineItemCount: int


class SupplementalInfo(TypedDict):
    supplementalReason: str
    supplementalNumber: int
    originalEstimateDate: NotRequired[str | None]
    previousRCV: NotRequired[float | None]
    addedRCV: NotRequired[float | None]


class XactdocMetadata(TypedDict):
    transactionId: str
    claimNumber: str
    policyNumber: str
    carrierName: str
    estimateType: Literal["ESTIMATE", "SUPPLEMENT"]
    peril: PerilInfo
    lossLocation: LossLocation
    lossDetails: LossDetails
    coverage: Coverage
    roofInfo: NotRequired[RoofInfoBlock]
    adjusterInfo: AdjusterInfo
    inspectorInfo: InspectorInfo
    insuredInfo: InsuredInfo
    priceListId: str
    laborEfficiency: int
    depreciationType: str
    summary: EstimateSummary
    supplemental: NotRequired[SupplementalInfo]


def resolve_depreciation_type(claim: Mapping[str, Any] | None) -> str:
    """Water losses export as recoverable depreciation; otherwise the claim's choice."""
    claim = claim or {}
    if claim.get("perilType") == "water":
        return "Recoverable"
    return claim.get("depreciationType") or "Standard"


def resolve_price_list_id(
    claim: Mapping[str, Any] | None,
    briefing: Mapping[str, Any] | None,
    settings: Settings,
) -> str:
    """Regional list on the claim, then the briefing's, then the configured default."""
    return (
        (claim or {}).get("regionalPriceListId")
        or (briefing or {}).get("priceListId")
        or settings.default_price_list_id
    )


def summarize_line_items(line_items: Sequence[Mapping[str, Any]]) -> EstimateSummary:
    """Sum the ESX line item totals that the header must declare."""

    def total(key: str) -> float:
        return round(sum(float(i.get(key) or 0) for i in line_items), 2)

    return {
        "totalRCV": total("rcvTotal"),
        "totalACV": total("acvTotal"),
        "totalDepreciation": total("depreciationAmount"),
        "totalMaterial": total("material"),
        "totalLabor": total("laborTotal"),
        "totalEquipment": total("equipment"),
        "lineItemCount": len(line_items),
    }


def _transaction_id(claim_number: str | None) -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    return f"FIG-{claim_number or 'EST'}-{stamp}-{uuid.uuid4().hex[:9]}"


def build_xactdoc_metadata(
    claim: Mapping[str, Any] | None,
    session: Mapping[str, Any] | None,
    line_items: Sequence[Mapping[str, Any]],
    settings: Settings,
    briefing: Mapping[str, Any] | None = None,
    is_supplemental: bool = False,
    supplemental_reason: str | None = None,
    adjuster_data: Mapping[str, Any] | None = None,
) -> XactdocMetadata:
    """Assemble the XACTDOC header from claim, session and briefing data.

    Args:
        claim: Claim record.
        session: Inspection session record (inspector contact details).
        line_items: ESX line items; the ``summary`` block is computed from them.
        settings: Service settings (carrier name, default price list).
        briefing: Optional policy briefing carrying a ``coverageSnapshot``.
        is_supplemental: Emit a SUPPLEMENT estimate with a supplemental block.
        supplemental_reason: Reason recorded on a supplement.
        adjuster_data: Adjuster profile overriding the claim's adjuster fields.

    Returns:
        The complete metadata dict.
    """
    claim = claim or {}
    session = session or {}
    briefing = briefing or {}
    adjuster_data = adjuster_data or {}
    snapshot = briefing.get("coverageSnapshot") or {}
    today = datetime.now(timezone.utc).date().isoformat()
    peril_type = claim.get("perilType") or "water"
    summary = summarize_line_items(line_items)

    metadata: XactdocMetadata = {
        "transactionId": _transaction_id(claim.get("claimNumber")),
        "claimNumber": claim.get("claimNumber") or "",
        "policyNumber": snapshot.get("policyNumber") or claim.get("policyNumber") or "",
        "carrierName": claim.get("carrierName") or settings.carrier_name,
        "estimateType": "SUPPLEMENT" if is_supplemental else "ESTIMATE",
        "peril": {
            "type": peril_type,
            "severity": claim.get("perilSeverity") or "moderate",
            "affectedAreas": list(claim.get("affectedRooms") or []),
            "dateOfLoss": claim.get("dateOfLoss") or today,
            "dateDiscovered": claim.get("dateDiscovered"),
            "dateReported": claim.get("dateReported"),
        },
        "lossLocation": {
            "propertyAddress": claim.get("propertyAddress") or "",
            "city": claim.get("city") or "",
            "state": claim.get("state") or "",
            "zip": claim.get("zip") or "",
            "county": claim.get("county"),
            "latitude": claim.get("latitude"),
            "longitude": claim.get("longitude"),
            "propertyType": claim.get("propertyType") or "residential",
            "yearBuilt": claim.get("yearBuilt"),
            "squareFootage": claim.get("squareFootage"),
        },
        "lossDetails": {
            "causeOfLoss": claim.get("causeOfLoss") or f"{peril_type} damage to property",
            "catastrophicIndicator": bool(claim.get("isCatastrophic", False)),
            "estimatedOccupancyImpact": claim.get("occupancyImpact"),
            "salvageOpportunity": bool(claim.get("hasSalvage", False)),
        },
        "coverage": {
            "coverageALimit": float(snapshot.get("coverageALimit") or 0),
            "coverageBLimit": float(snapshot.get("coverageBLimit") or 0),
            "coverageCLimit": float(snapshot.get("coverageCLimit") or 0),
            "coverageDLimit": float(snapshot.get("coverageDLimit") or 0),
            "coverageELimit": float(snapshot.get("coverageELimit") or 0),
            "coverageFLimit": float(snapshot.get("coverageFLimit") or 0),
            "deductibleType": snapshot.get("deductibleType") or "standard",
            "deductibleAmount": float(snapshot.get("deductible") or 0),
            "coinsurancePercentage": float(snapshot.get("coinsurance") or 80),
        },
        "adjusterInfo": {
            "name": adjuster_data.get("name") or claim.get("adjusterName") or "",
            "company": adjuster_data.get("company")
            or claim.get("adjustingCompany")
            or settings.carrier_name,
            "licenseNumber": adjuster_data.get("licenseNumber"),
            "phoneNumber": adjuster_data.get("phoneNumber"),
            "email": adjuster_data.get("email"),
            "licenseState": adjuster_data.get("licenseState"),
        },
        "inspectorInfo": {
            "name": session.get("inspectorName") or "Field Inspector",
            "company": settings.carrier_name,
            "inspectionDate": today,
            "phoneNumber": session.get("inspectorPhone"),
            "email": session.get("inspectorEmail"),
        },
        "insuredInfo": {
            "name": claim.get("insuredName") or "",
            "address": claim.get("propertyAddress") or "",
            "city": claim.get("city") or "",
            "state": claim.get("state") or "",
            "zip": claim.get("zip") or "",
            "homePhone": claim.get("homePhone"),
            "cellPhone": claim.get("cellPhone"),
            "email": claim.get("email"),
        },
        "priceListId": resolve_price_list_id(claim, briefing, settings),
        "laborEfficiency": 100,
        "depreciationType": resolve_depreciation_type(claim),
        "summary": summary,
    }

    roof = claim.get("roofInfo")
    if roof:
        metadata["roofInfo"] = {
            "roofType": roof.get("roofType") or "",
            "roofAge": roof.get("roofAge") or 0,
            "roofMaterial": roof.get("roofMaterial") or "",
            "roofSlope": roof.get("roofSlope") or "6:12",
            "squareFootage": roof.get("squareFootage") or 0,
            "condition": roof.get("condition") or "unknown",
        }

    if is_supplemental:
        metadata["supplemental"] = {
            "supplementalReason": supplemental_reason or "Additional items discovered",
            "supplementalNumber": 1,
            "previousRCV": claim.get("previousRCV"),
            "addedRCV": summary["totalRCV"],
        }

    logger.debug(
        "Built XACTDOC metadata — claim=%s items=%d rcv=%s",
        metadata["claimNumber"],
        summary["lineItemCount"],
        summary["totalRCV"],
    )
    return metadata
