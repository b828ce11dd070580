"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WasteType(str, Enum):
    wet = "wet"
    dry = "dry"
    hazardous = "hazardous"
    mixed = "mixed"


class Quality(str, Enum):
    excellent = "excellent"
    good = "good"
    fair = "fair"
    poor = "poor"


class ProcessType(str, Enum):
    biomethanization = "biomethanization"
    wte = "wte"
    recycling = "recycling"
    composting = "composting"


class RewardCategory(str, Enum):
    training = "training"
    segregation = "segregation"
    participation = "participation"
    innovation = "innovation"
    referral = "referral"


class ViolationType(str, Enum):
    non_segregation = "non_segregation"
    illegal_dumping = "illegal_dumping"
    missed_collection = "missed_collection"
    other = "other"


class PaymentMethod(str, Enum):
    cash = "cash"
    online = "online"
    upi = "upi"
    card = "card"


class CamelModel(BaseModel):
    """Accepts camelCase payload keys while exposing snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PickupRequest(CamelModel):
    vehicle_id: str
    household_id: str
    waste_type: WasteType
    quantity: float = Field(..., ge=0)
    quality: Quality
    photos: List[str] = Field(default_factory=list)
    notes: Optional[str] = None


class RejectionRequest(CamelModel):
    vehicle_id: str
    household_id: str
    reason: str
    photos: List[str] = Field(default_factory=list)
    notes: Optional[str] = None


class IntakeRequest(CamelModel):
    facility_id: str
    waste_type: WasteType
    quantity: float = Field(..., ge=0)
    source: str
    quality: Quality
    photos: List[str] = Field(default_factory=list)
    notes: Optional[str] = None


class ProcessLogRequest(CamelModel):
    facility_id: str
    process_type: ProcessType
    input_quantity: float = Field(..., ge=0)
    output_quantity: float = Field(..., ge=0)
    efficiency: float = Field(..., ge=0, le=100)
    parameters: Dict[str, Any] = Field(default_factory=dict)
    notes: Optional[str] = None


class AwardRequest(CamelModel):
    citizen_id: str
    points: int = Field(..., ge=1, le=500)
    reason: str
    category: RewardCategory


class RedemptionRequest(CamelModel):
    citizen_id: str
    reward_id: str
    quantity: int = Field(..., ge=1)


class PenaltyRequest(CamelModel):
    citizen_id: str
    violation_type: ViolationType
    amount: float = Field(..., ge=0)
    description: str
    evidence: List[str] = Field(default_factory=list)


class PaymentRequest(CamelModel):
    payment_method: PaymentMethod
    amount: float = Field(..., ge=0)
    transaction_id: Optional[str] = None


class ImportRequest(CamelModel):
    """Bulk record import for one entity set."""

    records: List[Dict[str, Any]] = Field(..., description="Documents to insert.")
    timestamp_fields: List[str] = Field(
        default_factory=list,
        description="Fields parsed from ISO-8601 strings into timestamps.",
    )


class ImportResponse(CamelModel):
    entity_set: str
    imported: int = Field(..., ge=0)
    ids: List[str] = Field(default_factory=list)


class Envelope(BaseModel):
    """Response wrapper shared by reports and writes."""

    success: bool = True
    message: Optional[str] = None
    data: Any = None


class ErrorResponse(BaseModel):
    detail: str
    code: Optional[str] = None
