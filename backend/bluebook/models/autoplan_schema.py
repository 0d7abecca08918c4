"""
AutoPlan record schemas (pydantic v2).

Wire field names are camelCase where the plan editor persists them that way
(instanceId, symbolId, fontSize, endX ...); Python code uses snake_case.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class InvalidStatusTransition(ValueError):
    """Raised when a floor or plan status change would move backwards or skip a state."""


# ── Status state machines ─────────────────────────────────────────────────────

class FloorAnalysisStatus(str, Enum):
    PENDING = "pending"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    FAILED = "failed"


class PlanStatus(str, Enum):
    DRAFT = "draft"
    REVIEW = "review"
    APPROVED = "approved"
    SUPERSEDED = "superseded"


_FLOOR_TRANSITIONS: dict[FloorAnalysisStatus, set[FloorAnalysisStatus]] = {
    FloorAnalysisStatus.PENDING: {FloorAnalysisStatus.ANALYZING},
    FloorAnalysisStatus.ANALYZING: {FloorAnalysisStatus.COMPLETED, FloorAnalysisStatus.FAILED},
    FloorAnalysisStatus.COMPLETED: set(),
    FloorAnalysisStatus.FAILED: set(),
}

_PLAN_TRANSITIONS: dict[PlanStatus, set[PlanStatus]] = {
    PlanStatus.DRAFT: {PlanStatus.REVIEW, PlanStatus.APPROVED, PlanStatus.SUPERSEDED},
    PlanStatus.REVIEW: {PlanStatus.APPROVED, PlanStatus.SUPERSEDED},
    PlanStatus.APPROVED: {PlanStatus.SUPERSEDED},
    PlanStatus.SUPERSEDED: set(),
}


def check_floor_transition(current: str, target: str) -> FloorAnalysisStatus:
    cur, nxt = FloorAnalysisStatus(current), FloorAnalysisStatus(target)
    if nxt not in _FLOOR_TRANSITIONS[cur]:
        raise InvalidStatusTransition(f"Floor analysis cannot move from {cur.value} to {nxt.value}")
    return nxt


def check_plan_transition(current: str, target: str) -> PlanStatus:
    cur, nxt = PlanStatus(current), PlanStatus(target)
    if nxt not in _PLAN_TRANSITIONS[cur]:
        raise InvalidStatusTransition(f"Plan cannot move from {cur.value} to {nxt.value}")
    return nxt


# ── Building / floor ──────────────────────────────────────────────────────────

Jurisdiction = Literal["england", "scotland", "wales"]

BuildingUse = Literal[
    "residential_high_rise", "residential_low_rise", "mixed_use", "care_home",
    "student_accommodation", "hotel", "office", "retail",
]
EvacuationStrategy = Literal[
    "stay_put", "simultaneous", "phased", "progressive_horizontal", "defend_in_place",
]


class Building(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str = ""
    organization_id: str = ""
    name: str
    address_line_1: str
    address_line_2: Optional[str] = None
    city: str
    postcode: str = ""
    # Free string: unrecognised jurisdictions render the generic citation
    jurisdiction: str = "england"
    height_metres: Optional[float] = None
    number_of_storeys: int = 1
    building_use: str = "residential_high_rise"
    evacuation_strategy: str = "stay_put"
    has_sprinklers: bool = False
    has_dry_riser: bool = False
    has_wet_riser: bool = False
    number_of_firefighting_lifts: int = 0
    responsible_person: Optional[str] = None


class BuildingCreate(BaseModel):
    name: str = Field(..., min_length=1)
    address_line_1: str = Field(..., min_length=1)
    address_line_2: Optional[str] = None
    city: str = Field(..., min_length=1)
    postcode: str = Field(..., min_length=1)
    jurisdiction: Jurisdiction = "england"
    height_metres: Optional[float] = Field(None, gt=0)
    number_of_storeys: int = Field(1, ge=1)
    building_use: BuildingUse = "residential_high_rise"
    evacuation_strategy: EvacuationStrategy = "stay_put"
    has_sprinklers: bool = False
    has_dry_riser: bool = False
    has_wet_riser: bool = False
    number_of_firefighting_lifts: int = Field(0, ge=0)
    responsible_person: Optional[str] = None
    rp_contact_email: Optional[str] = None
    notes: Optional[str] = None


class Floor(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str = ""
    building_id: str = ""
    floor_number: int = 0
    floor_name: Optional[str] = None
    storage_path: str = ""
    original_filename: str = ""
    scale: Optional[str] = None
    ai_analysis_status: FloorAnalysisStatus = FloorAnalysisStatus.PENDING
    ai_analysis_result: Optional[dict] = None
    ai_confidence: Optional[float] = None
    ai_error: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.floor_name or f"Floor {self.floor_number}"


# ── Plan contents ─────────────────────────────────────────────────────────────

class PlacedSymbol(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    instance_id: str = Field(..., alias="instanceId")
    symbol_id: str = Field(..., alias="symbolId")
    x: float = Field(..., ge=0.0, le=1.0)
    y: float = Field(..., ge=0.0, le=1.0)
    rotation: float = 0.0            # degrees, clockwise on the editor canvas
    scale: float = Field(1.0, gt=0)
    label: Optional[str] = None
    metadata: Optional[dict[str, str]] = None


class _AnnotationBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    x: float = Field(..., ge=0.0, le=1.0)
    y: float = Field(..., ge=0.0, le=1.0)


class TextAnnotation(_AnnotationBase):
    type: Literal["text"] = "text"
    text: str = ""
    font_size: Optional[float] = Field(None, alias="fontSize", gt=0)


class TravelDistanceAnnotation(_AnnotationBase):
    type: Literal["travel_distance"] = "travel_distance"
    end_x: float = Field(..., alias="endX", ge=0.0, le=1.0)
    end_y: float = Field(..., alias="endY", ge=0.0, le=1.0)
    distance_metres: Optional[float] = Field(None, alias="distanceMetres", ge=0)


class ArrowAnnotation(_AnnotationBase):
    type: Literal["arrow"] = "arrow"
    end_x: float = Field(..., alias="endX", ge=0.0, le=1.0)
    end_y: float = Field(..., alias="endY", ge=0.0, le=1.0)
    text: Optional[str] = None


class ZoneAnnotation(_AnnotationBase):
    """Rectangular region; (x, y) is its top-left corner in normalised space."""
    type: Literal["zone"] = "zone"
    width: float = Field(..., ge=0.0, le=1.0)
    height: float = Field(..., ge=0.0, le=1.0)
    zone_type: Literal["compartment", "protected_corridor", "stairwell"] = Field(
        "compartment", alias="zoneType"
    )
    text: Optional[str] = None


Annotation = Annotated[
    Union[TextAnnotation, TravelDistanceAnnotation, ArrowAnnotation, ZoneAnnotation],
    Field(discriminator="type"),
]


class CanvasViewport(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    zoom: float = 1.0
    pan_x: float = Field(0.0, alias="panX")
    pan_y: float = Field(0.0, alias="panY")


class Plan(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str = ""
    floor_id: str = ""
    building_id: str = ""
    organization_id: str = ""
    plan_reference: str
    version: int = 1
    status: PlanStatus = PlanStatus.DRAFT
    symbol_data: list[PlacedSymbol] = Field(default_factory=list)
    annotations: list[Annotation] = Field(default_factory=list)
    canvas_viewport: Optional[CanvasViewport] = None
    final_pdf_path: Optional[str] = None
    final_pdf_size: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PlanRevision(BaseModel):
    """Body of a save from the plan editor. Omitted fields carry over from the source version."""
    symbol_data: Optional[list[PlacedSymbol]] = None
    annotations: Optional[list[Annotation]] = None
    canvas_viewport: Optional[CanvasViewport] = None


# ── Approval ──────────────────────────────────────────────────────────────────

CHECKLIST_LABELS: dict[str, str] = {
    "exits_marked": "Fire exits marked",
    "doors_labelled": "Fire doors labelled with FD rating",
    "travel_distances_checked": "Travel distances comply with ADB Table 3.1",
    "equipment_shown": "Fire equipment positioned (extinguishers, call points)",
    "detection_shown": "Detection shown (smoke/heat detectors per BS 5839-1)",
    "emergency_lighting_shown": "Emergency lighting on escape routes (BS 5266-1)",
    "risers_shown": "Dry/wet riser positions marked (if applicable)",
    "regulatory_text_added": "Regulatory compliance statement present",
}


class ComplianceChecklist(BaseModel):
    exits_marked: bool = False
    doors_labelled: bool = False
    travel_distances_checked: bool = False
    equipment_shown: bool = False
    detection_shown: bool = False
    emergency_lighting_shown: bool = False
    risers_shown: bool = False
    regulatory_text_added: bool = False

    def unchecked(self) -> list[str]:
        return [key for key in CHECKLIST_LABELS if getattr(self, key) is not True]


class ApprovalRequest(BaseModel):
    approver_name: str = ""
    approver_qualifications: str = ""
    approver_company: str = ""
    checklist_results: Optional[ComplianceChecklist] = None


class Approval(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str = ""
    plan_id: str = ""
    approved_by: Optional[str] = None
    approver_name: str
    approver_qualifications: str
    approver_company: str
    attestation: str = ""
    checklist_results: ComplianceChecklist = Field(default_factory=ComplianceChecklist)
    approved_at: datetime


# ── AI analysis ───────────────────────────────────────────────────────────────

class _Point(BaseModel):
    model_config = ConfigDict(extra="ignore")

    x: float = Field(..., ge=0.0, le=1.0)
    y: float = Field(..., ge=0.0, le=1.0)


class ExitElement(_Point):
    type: str = "exit"
    notes: Optional[str] = None


class FireDoorElement(_Point):
    rating: str = ""
    notes: Optional[str] = None


class StaircaseElement(_Point):
    type: str = "stair"
    notes: Optional[str] = None


class EquipmentElement(_Point):
    type: str = ""


class CorridorElement(_Point):
    width: float = Field(0.0, ge=0.0)
    height: float = Field(0.0, ge=0.0)
    notes: Optional[str] = None


class RoomElement(_Point):
    label: Optional[str] = None
    type: str = ""


class AnalysisElements(BaseModel):
    exits: list[ExitElement] = Field(default_factory=list)
    fire_doors: list[FireDoorElement] = Field(default_factory=list)
    staircases: list[StaircaseElement] = Field(default_factory=list)
    equipment: list[EquipmentElement] = Field(default_factory=list)
    corridors: list[CorridorElement] = Field(default_factory=list)
    rooms: list[RoomElement] = Field(default_factory=list)


class SuggestedSymbol(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    symbol_id: str = Field(..., alias="symbolId")
    x: float = Field(..., ge=0.0, le=1.0)
    y: float = Field(..., ge=0.0, le=1.0)
    rotation: float = 0.0
    label: Optional[str] = None


class AIAnalysisResult(BaseModel):
    """Fully populated analysis result. Nothing partial leaves the analyzer."""
    model_config = ConfigDict(populate_by_name=True)

    confidence: float = Field(0.0, ge=0.0, le=1.0)
    scale: Optional[str] = None
    elements: AnalysisElements = Field(default_factory=AnalysisElements)
    suggested_symbols: list[SuggestedSymbol] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    regulatory_notes: list[str] = Field(default_factory=list)


class AIAnalysisWire(BaseModel):
    """What the model actually sends back: every field optional and loosely typed."""
    model_config = ConfigDict(extra="ignore")

    confidence: Optional[Any] = None
    scale: Optional[Any] = None
    elements: Optional[Any] = None
    suggested_symbols: Optional[Any] = None
    warnings: Optional[Any] = None
    regulatory_notes: Optional[Any] = None
