"""Typed records exchanged with the storage collaborator.

Keys mirror the stored JSON field names so records round-trip without
translation. Optional fields are ``NotRequired`` so every gate check on a
possibly-absent field is explicit.
"""

from typing import Any, Literal, NotRequired, TypedDict

ViewType = Literal["interior", "elevation", "roof_plan", "exterior"]


class Point(TypedDict):
    """A single polygon vertex in feet."""

    x: float
    y: float


class RoomDimensions(TypedDict, total=False):
    length: float
    width: float
    height: float


class Room(TypedDict):
    id: int
    name: str
    viewType: NotRequired[ViewType | str]
    polygon: NotRequired[list[Point]]
    dimensions: NotRequired[RoomDimensions]
    roomType: NotRequired[str]


class Opening(TypedDict):
    id: int
    roomId: int
    wallIndex: NotRequired[int | None]
    widthFt: NotRequired[float | None]
    heightFt: NotRequired[float | None]
    openingType: NotRequired[str]


class Damage(TypedDict):
    id: int
    roomId: int
    damageType: NotRequired[str]
    severity: NotRequired[str | None]


class LineItem(TypedDict):
    id: int
    roomId: NotRequired[int | None]
    damageId: NotRequired[int | None]
    category: NotRequired[str]
    description: NotRequired[str]
    action: NotRequired[str]
    quantity: NotRequired[float]
    unit: NotRequired[str]
    unitPrice: NotRequired[float]
    totalPrice: NotRequired[float]
    age: NotRequired[float | None]
    lifeExpectancy: NotRequired[float | None]
    xactCode: NotRequired[str | None]
    tradeCode: NotRequired[str | None]
    provenance: NotRequired[str | None]


class ScopeItem(TypedDict):
    id: int
    roomId: NotRequired[int | None]
    damageId: NotRequired[int | None]
    status: NotRequired[str]


class PhotoAnalysis(TypedDict, total=False):
    matchConfidence: float
    damageVisible: list[dict[str, Any]]


class Photo(TypedDict):
    id: int
    roomId: NotRequired[int | None]
    matchesRequest: NotRequired[bool | None]
    analysis: NotRequired[PhotoAnalysis | None]
    photoType: NotRequired[str]


class WaterClassification(TypedDict, total=False):
    category: int
    waterClass: int


class RoofInfo(TypedDict, total=False):
    roofType: str
    roofAge: float
    roofMaterial: str
    roofSlope: str
    squareFootage: float
    condition: str


class Claim(TypedDict):
    id: int
    claimNumber: NotRequired[str | None]
    policyNumber: NotRequired[str | None]
    carrierName: NotRequired[str | None]
    propertyAddress: NotRequired[str | None]
    city: NotRequired[str]
    state: NotRequired[str]
    zip: NotRequired[str]
    perilType: NotRequired[str | None]
    dateOfLoss: NotRequired[str | None]
    insuredName: NotRequired[str]
    adjusterName: NotRequired[str]
    depreciationType: NotRequired[str]
    regionalPriceListId: NotRequired[str | None]
    roofInfo: NotRequired[RoofInfo | None]
    county: NotRequired[str]
    latitude: NotRequired[float]
    longitude: NotRequired[float]
    propertyType: NotRequired[str]
    yearBuilt: NotRequired[int]
    squareFootage: NotRequired[float]
    perilSeverity: NotRequired[str]
    affectedRooms: NotRequired[list[str]]
    dateDiscovered: NotRequired[str]
    dateReported: NotRequired[str]
    causeOfLoss: NotRequired[str]
    isCatastrophic: NotRequired[bool]
    occupancyImpact: NotRequired[str]
    hasSalvage: NotRequired[bool]
    adjustingCompany: NotRequired[str]
    homePhone: NotRequired[str]
    cellPhone: NotRequired[str]
    email: NotRequired[str]
    previousRCV: NotRequired[float]


class InspectionSession(TypedDict):
    id: int
    claimId: int
    inspectorName: NotRequired[str]
    waterClassification: NotRequired[WaterClassification | None]
    workflowState: NotRequired[dict[str, Any] | None]
