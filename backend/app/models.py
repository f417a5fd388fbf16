"""
Quote data models - candidate records from extraction and canonical quotes.
"""
from __future__ import annotations

import math
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel


SERVICE_ITEM_TEMPLATES: List[Dict[str, str]] = [
    {
        "id": "origin-services",
        "name": "Origin Services",
        "subtext": "confirm this includes full pack and wrap along with loading",
    },
    {
        "id": "crating",
        "name": "Crating",
        "subtext": "combine origin and destination crating if provided separately",
    },
    {
        "id": "shuttle-services",
        "name": "Shuttle Services",
        "subtext": "For difficult-to-access locations, e.g., narrow streets",
    },
    {
        "id": "parking-permits",
        "name": "Parking Permits",
        "subtext": "Arranged for origin and destination",
    },
    {
        "id": "storage-in-transit",
        "name": "Storage-in-Transit (SIT)",
        "subtext": "Up to [X] days of storage, if needed",
    },
    {
        "id": "destination-terminal-handling",
        "name": "Destination Terminal Handling Charges (DTHC)",
        "subtext": "Many competitors exclude DTHC, adding significant costs at the destination port",
    },
    {
        "id": "customs-clearance",
        "name": "Customs Clearance Fees",
        "subtext": "Documentation and processing",
    },
    {
        "id": "delivery-services",
        "name": "Delivery Services",
        "subtext": "confirm this includes unpacking",
    },
]

REQUIRED_SERVICE_ITEM_IDS: tuple[str, ...] = tuple(item["id"] for item in SERVICE_ITEM_TEMPLATES)

ServiceItemId = Literal[
    "origin-services",
    "crating",
    "shuttle-services",
    "parking-permits",
    "storage-in-transit",
    "destination-terminal-handling",
    "customs-clearance",
    "delivery-services",
]


class _QuoteModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        allow_inf_nan=False,
    )

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class _CandidateModel(_QuoteModel):
    model_config = ConfigDict(strict=True)


# --- Shared ---

class OtherCostItem(_QuoteModel):
    """One entry of the free-text "other" ledger."""

    key: str
    label: str = ""
    description: str = ""
    value: float


class CalculatedMetrics(_QuoteModel):
    total_cost: float
    price_per_pound: Optional[float] = None
    price_per_cubic_foot: Optional[float] = None


# --- Candidate (untrusted) ---

class CandidateServiceItem(_CandidateModel):
    id: ServiceItemId
    included: bool
    cost: Optional[float] = None


class CandidateOtherItem(_CandidateModel):
    key: str
    label: str = ""
    description: str = ""
    value: float

    def to_other_cost(self) -> OtherCostItem:
        return OtherCostItem(key=self.key, label=self.label, description=self.description, value=self.value)


class CandidateQuote(_CandidateModel):
    """Structured record produced by the document-understanding collaborator."""

    company_name: str
    base_cost: Optional[float] = None
    service_items: List[CandidateServiceItem]
    shipment_weight: Optional[float] = None
    shipment_volume: Optional[float] = None
    transit_time_min: Optional[float] = None
    transit_time_max: Optional[float] = None
    insurance_percentage: Optional[float] = None
    other: Optional[List[CandidateOtherItem]] = None
    is_arpin_quote: bool = False
    original_currency: Optional[str] = None
    exchange_rate: Optional[float] = None

    @field_validator("service_items")
    @classmethod
    def _exactly_the_required_items(cls, items: List[CandidateServiceItem]) -> List[CandidateServiceItem]:
        ids = [item.id for item in items]
        if len(ids) != len(REQUIRED_SERVICE_ITEM_IDS):
            raise ValueError(f"Must include exactly {len(REQUIRED_SERVICE_ITEM_IDS)} service items")
        if len(set(ids)) != len(ids):
            raise ValueError("Duplicate service item IDs found")
        missing = [sid for sid in REQUIRED_SERVICE_ITEM_IDS if sid not in ids]
        if missing:
            raise ValueError(f"Missing service items: {', '.join(missing)}")
        return items

    @field_validator("insurance_percentage")
    @classmethod
    def _insurance_in_range(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and not 0 <= value <= 100:
            raise ValueError("Insurance percentage must be between 0 and 100, or null")
        return value

    @field_validator("exchange_rate")
    @classmethod
    def _positive_rate(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and value <= 0:
            raise ValueError("Exchange rate must be a positive number")
        return value

    def other_costs(self) -> List[OtherCostItem]:
        return [item.to_other_cost() for item in self.other or []]


# --- Canonical ---

class ServiceItem(_QuoteModel):
    id: str
    name: str
    subtext: str = ""
    included: bool = False
    cost: Optional[float] = None


class QuoteData(_QuoteModel):
    """Canonical, comparison-ready quote. ``other`` is either None or non-empty."""

    id: str
    company_name: str
    base_cost: Optional[float] = None
    service_items: List[ServiceItem] = Field(default_factory=list)
    shipment_weight: Optional[float] = None
    shipment_volume: Optional[float] = None
    transit_time_min: Optional[float] = None
    transit_time_max: Optional[float] = None
    insurance_percentage: Optional[float] = None
    other: Optional[List[OtherCostItem]] = None


def default_service_items() -> List[ServiceItem]:
    return [
        ServiceItem(id=t["id"], name=t["name"], subtext=t["subtext"], included=False, cost=None)
        for t in SERVICE_ITEM_TEMPLATES
    ]


def create_default_quote(quote_id: str, company_name: str) -> QuoteData:
    return QuoteData(id=quote_id, company_name=company_name, service_items=default_service_items())


# --- Decode boundary ---

class CandidateDecodeError(ValueError):
    """Raised when a collaborator record does not match the candidate schema."""

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []


def decode_candidate(payload: Any) -> CandidateQuote:
    """Parse *payload* into a :class:`CandidateQuote` or raise :class:`CandidateDecodeError`.

    Nothing partially valid escapes: either every field decodes or the whole
    record is rejected.
    """
    if isinstance(payload, CandidateQuote):
        return payload
    if not isinstance(payload, dict):
        raise CandidateDecodeError("Candidate record must be a JSON object.")
    try:
        return CandidateQuote.model_validate(payload)
    except ValidationError as exc:
        errors = [
            {"loc": ".".join(str(part) for part in err.get("loc", ())), "msg": err.get("msg", "")}
            for err in exc.errors()
        ]
        summary = "; ".join(f"{err['loc']}: {err['msg']}" if err["loc"] else err["msg"] for err in errors)
        raise CandidateDecodeError(f"Validation failed for candidate record: {summary}", errors) from exc


def is_positive_number(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value) and value > 0
