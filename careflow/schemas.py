"""
schemas.py
==========
Pydantic models for the patient aggregate and the values passed in and out
of the workflow. Every domain model is frozen: a mutation always produces a
new value through `model_copy(update=...)`, so a committed snapshot can be
read concurrently without locking.
"""

import datetime
from typing import Annotated, Any, Dict, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from .models import (
    AuditAction, AuditEntity, ClinicalFileStatus, OrderCategory, OrderPriority,
    OrderStatus, PatientStatus, RoundStatus, SectionKey, TriageLevel, VitalsSource,
)


class FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class StrictModel(FrozenModel):
    """Rejects unknown fields. Used at every merge / input boundary."""
    model_config = ConfigDict(frozen=True, extra="forbid")


# ---------------------------------------------------------------------------
# VITALS & TRIAGE
# ---------------------------------------------------------------------------

class Measurements(StrictModel):
    """One set of vital-sign readings. Every value is independently optional."""
    pulse: Optional[float] = Field(default=None, ge=0)
    bp_sys: Optional[float] = Field(default=None, ge=0)
    bp_dia: Optional[float] = Field(default=None, ge=0)
    rr: Optional[float] = Field(default=None, ge=0)
    spo2: Optional[float] = Field(default=None, ge=0, le=100)
    temp_c: Optional[float] = Field(default=None, ge=0)
    glucose: Optional[float] = Field(default=None, ge=0)
    pain_score: Optional[float] = Field(default=None, ge=0, le=10)


class VitalsRecord(FrozenModel):
    id: str
    patient_id: str
    measurements: Measurements
    recorded_at: datetime.datetime
    recorded_by: str
    source: VitalsSource = VitalsSource.manual
    observations: str = ""


class Triage(FrozenModel):
    level: TriageLevel = TriageLevel.none
    reasons: Tuple[str, ...] = ()


class TriageSuggestion(FrozenModel):
    """Advisor classification of a chief complaint. Advisory only."""
    department: str = "Unknown"
    suggested_triage: TriageLevel = TriageLevel.none
    confidence: float = Field(default=0.0, ge=0, le=1)
    from_cache: bool = False


# ---------------------------------------------------------------------------
# CLINICAL FILE SECTIONS
# ---------------------------------------------------------------------------

class Allergy(StrictModel):
    substance: str
    reaction: str = ""
    severity: Literal["Mild", "Moderate", "Severe", ""] = ""


class HistorySection(StrictModel):
    chief_complaint: str = ""
    duration: str = ""
    hpi: str = ""
    associated_symptoms: Tuple[str, ...] = ()
    past_medical_history: str = ""
    past_surgical_history: str = ""
    drug_history: str = ""
    allergy_history: Tuple[Allergy, ...] = ()
    family_history: str = ""
    personal_social_history: str = ""
    menstrual_obstetric_history: str = ""
    socioeconomic_lifestyle: str = ""
    review_of_systems: Dict[str, Union[bool, str]] = Field(default_factory=dict)


class ExamFlags(StrictModel):
    pallor: bool = False
    icterus: bool = False
    cyanosis: bool = False
    clubbing: bool = False
    lymphadenopathy: bool = False
    edema: bool = False


class GeneralExamSection(StrictModel):
    general_appearance: Literal["well", "ill", "toxic", "cachectic", ""] = ""
    build: Literal["normal", "obese", "cachectic", ""] = ""
    hydration: Literal["normal", "mild", "moderate", "severe", ""] = ""
    flags: ExamFlags = Field(default_factory=ExamFlags)
    vitals: Measurements = Field(default_factory=Measurements)
    height_cm: Optional[float] = Field(default=None, gt=0)
    weight_kg: Optional[float] = Field(default=None, gt=0)
    bmi: Optional[float] = Field(default=None, gt=0)
    remarks: str = ""


class SystemExam(StrictModel):
    autofill: bool = False
    inspection: str = ""
    palpation: str = ""
    percussion: str = ""
    auscultation: str = ""
    summary: str = ""


class SystemicExamSection(StrictModel):
    cvs: Optional[SystemExam] = None
    rs: Optional[SystemExam] = None
    cns: Optional[SystemExam] = None
    abdomen: Optional[SystemExam] = None
    msk: Optional[SystemExam] = None
    skin: Optional[SystemExam] = None
    other: Optional[SystemExam] = None


SECTION_MODELS = {
    SectionKey.history: HistorySection,
    SectionKey.general_exam: GeneralExamSection,
    SectionKey.systemic_exam: SystemicExamSection,
}


class ClinicalSections(FrozenModel):
    history: HistorySection = Field(default_factory=HistorySection)
    general_exam: GeneralExamSection = Field(default_factory=GeneralExamSection)
    systemic_exam: SystemicExamSection = Field(default_factory=SystemicExamSection)


class ClinicalFile(FrozenModel):
    id: str
    patient_id: str
    status: ClinicalFileStatus = ClinicalFileStatus.draft
    signed_at: Optional[datetime.datetime] = None
    signed_by: Optional[str] = None
    sections: ClinicalSections = Field(default_factory=ClinicalSections)
    ai_summary: Optional[str] = None
    missing_info: Tuple[str, ...] = ()
    cross_check_inconsistencies: Tuple[str, ...] = ()
    # Proposal queue, kept apart from the authoritative sections
    pending_suggestions: Dict[SectionKey, Dict[str, Any]] = Field(default_factory=dict)

    @property
    def is_signed(self) -> bool:
        return self.status == ClinicalFileStatus.signed


# ---------------------------------------------------------------------------
# ORDERS
# ---------------------------------------------------------------------------

class AIProvenance(FrozenModel):
    """Why the advisor proposed an order. Rationale only, never certainty."""
    rationale: Optional[str] = None


class OrderHistoryEntry(FrozenModel):
    timestamp: datetime.datetime
    actor_id: str
    action: str  # created | amended | status_changed | cancelled
    details: Dict[str, Any] = Field(default_factory=dict)


class OrderRequest(StrictModel):
    """What a clinician (or the advisor) asks for when creating an order."""
    category: OrderCategory
    sub_type: str = ""
    label: str = ""
    priority: OrderPriority = OrderPriority.routine
    payload: Dict[str, Any] = Field(default_factory=dict)


class OrderAmendment(StrictModel):
    sub_type: Optional[str] = None
    label: Optional[str] = None
    priority: Optional[OrderPriority] = None
    payload: Optional[Dict[str, Any]] = None


class SuggestedOrder(FrozenModel):
    category: OrderCategory
    sub_type: str = ""
    label: str = ""
    priority: OrderPriority = OrderPriority.routine
    rationale: str = ""
    payload: Dict[str, Any] = Field(default_factory=dict)


class Order(FrozenModel):
    id: str
    patient_id: str
    category: OrderCategory
    sub_type: str = ""
    label: str = ""
    payload: Dict[str, Any] = Field(default_factory=dict)
    priority: OrderPriority = OrderPriority.routine
    status: OrderStatus = OrderStatus.draft
    created_by: str
    created_at: datetime.datetime
    modified_by: Optional[str] = None
    modified_at: Optional[datetime.datetime] = None
    ai_provenance: Optional[AIProvenance] = None
    result_summary: Optional[str] = None
    history: Tuple[OrderHistoryEntry, ...] = ()


# ---------------------------------------------------------------------------
# ROUNDS
# ---------------------------------------------------------------------------

class RoundUpdate(StrictModel):
    subjective: Optional[str] = None
    objective: Optional[str] = None
    assessment: Optional[str] = None
    plan: Optional[str] = None
    linked_order_ids: Optional[Tuple[str, ...]] = None


class Round(FrozenModel):
    """One ward-round progress note (SOAP)."""
    id: str
    patient_id: str
    number: int
    doctor_id: str
    created_at: datetime.datetime
    subjective: str = ""
    objective: str = ""
    assessment: str = ""
    plan: str = ""
    linked_order_ids: Tuple[str, ...] = ()
    status: RoundStatus = RoundStatus.draft
    signed_by: Optional[str] = None
    signed_at: Optional[datetime.datetime] = None
    acknowledged_warnings: Tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# AUDIT
# ---------------------------------------------------------------------------

class AuditEvent(FrozenModel):
    id: str
    sequence: int
    actor_id: str
    patient_id: str
    action: AuditAction
    entity: AuditEntity
    entity_id: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None
    timestamp: datetime.datetime


# ---------------------------------------------------------------------------
# TIMELINE & COMPLAINTS
# ---------------------------------------------------------------------------

class TeamNote(FrozenModel):
    """Free-text note left for the care team. Escalations are flagged for review."""
    kind: Literal["team_note"] = "team_note"
    id: str
    patient_id: str
    author_id: str
    content: str = Field(min_length=1)
    is_escalation: bool = False
    timestamp: datetime.datetime


class ChecklistItem(FrozenModel):
    text: str = Field(min_length=1)
    checked: bool = False


class Checklist(FrozenModel):
    kind: Literal["checklist"] = "checklist"
    id: str
    patient_id: str
    author_id: str
    title: str = Field(min_length=1)
    items: Tuple[ChecklistItem, ...] = ()
    timestamp: datetime.datetime


TimelineEntry = Annotated[Union[TeamNote, Checklist], Field(discriminator="kind")]


class ChiefComplaint(StrictModel):
    """One presenting complaint with how long it has lasted."""
    complaint: str = Field(min_length=1)
    duration_value: int = Field(ge=0)
    duration_unit: Literal["hours", "days", "weeks", "months"] = "days"

    def describe(self) -> str:
        unit = self.duration_unit[:-1] if self.duration_value == 1 else self.duration_unit
        return f"{self.complaint} for {self.duration_value} {unit}"


# ---------------------------------------------------------------------------
# PATIENT AGGREGATE
# ---------------------------------------------------------------------------

class DischargeSummary(FrozenModel):
    draft: str = ""
    finalized: Optional[str] = None
    finalized_by: Optional[str] = None
    finalized_at: Optional[datetime.datetime] = None


class RegistrationRequest(StrictModel):
    """Request body for registering a patient."""
    name: str = Field(min_length=1)
    age: Optional[int] = Field(default=None, ge=0)
    gender: Literal["Male", "Female", "Other", ""] = ""
    phone: str = ""
    complaint: str = ""
    complaints: Tuple[ChiefComplaint, ...] = ()


class Patient(FrozenModel):
    id: str
    name: str
    age: Optional[int] = None
    gender: str = ""
    phone: str = ""
    complaint: str = ""
    complaints: Tuple[ChiefComplaint, ...] = ()
    registered_at: datetime.datetime
    status: PatientStatus = PatientStatus.waiting_for_triage
    triage: Triage = Field(default_factory=Triage)
    ai_triage: Optional[TriageSuggestion] = None
    vitals: Optional[Measurements] = None
    vitals_history: Tuple[VitalsRecord, ...] = ()
    clinical_file: ClinicalFile
    orders: Tuple[Order, ...] = ()
    rounds: Tuple[Round, ...] = ()
    discharge: Optional[DischargeSummary] = None
    # newest first
    timeline: Tuple[TimelineEntry, ...] = ()

    def find_order(self, order_id: str) -> Optional[Order]:
        for order in self.orders:
            if order.id == order_id:
                return order
        return None

    def find_round(self, round_id: str) -> Optional[Round]:
        for rnd in self.rounds:
            if rnd.id == round_id:
                return rnd
        return None


class OperationResult(FrozenModel):
    """
    Outcome of one workflow intent.
    `applied` is False for no-ops; `degraded` means the advisor fell back to
    a safe default; `warnings` are non-blocking banner messages.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    patient: Patient
    applied: bool = True
    degraded: bool = False
    warnings: Tuple[str, ...] = ()
    value: Any = None
