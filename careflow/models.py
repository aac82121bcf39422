"""
models.py
=========
Enumerations shared by the workflow core, plus the SQLAlchemy tables used by
the persistence mirror. Contains:
 - workflow enums (patient status, triage, orders, rounds, audit)
 - PatientRecord  (latest committed snapshot per patient)
 - AuditLog       (forwarded audit events)
"""

from sqlalchemy import Column, Integer, String, DateTime, Text, Enum
from sqlalchemy.orm import declarative_base
import datetime
import enum

# SQLAlchemy Base class
Base = declarative_base()

# ---------------------------------------------------------------------------
# ENUM DEFINITIONS
# ---------------------------------------------------------------------------

class PatientStatus(str, enum.Enum):
    """Workflow stage of a patient encounter."""
    waiting_for_triage = "Waiting for Triage"
    waiting_for_doctor = "Waiting for Doctor"
    in_treatment = "In Treatment"
    discharged = "Discharged"


class TriageLevel(str, enum.Enum):
    """Coarse urgency classification."""
    red = "Red"
    yellow = "Yellow"
    green = "Green"
    none = "None"


class VitalsSource(str, enum.Enum):
    manual = "manual"
    device = "device"


class SectionKey(str, enum.Enum):
    """Named sections of a clinical file."""
    history = "history"
    general_exam = "general_exam"
    systemic_exam = "systemic_exam"

    @classmethod
    def parse(cls, value) -> "SectionKey":
        """Accept enum members, 'general_exam' or 'general-exam'."""
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower().replace("-", "_"))


class ClinicalFileStatus(str, enum.Enum):
    draft = "draft"
    signed = "signed"


class OrderCategory(str, enum.Enum):
    investigation = "investigation"
    radiology = "radiology"
    medication = "medication"
    procedure = "procedure"
    nursing = "nursing"
    referral = "referral"


class OrderPriority(str, enum.Enum):
    routine = "routine"
    urgent = "urgent"
    stat = "STAT"


class OrderStatus(str, enum.Enum):
    """Order lifecycle. See orders.ALLOWED_TRANSITIONS for the adjacency."""
    draft = "draft"
    sent = "sent"
    scheduled = "scheduled"
    in_progress = "in_progress"
    completed = "completed"
    resulted = "resulted"
    cancelled = "cancelled"


class RoundStatus(str, enum.Enum):
    draft = "draft"
    signed = "signed"


class AuditAction(str, enum.Enum):
    create = "create"
    modify = "modify"
    accept = "accept"
    reject = "reject"
    view = "view"
    signoff = "signoff"
    cancel = "cancel"


class AuditEntity(str, enum.Enum):
    patient_record = "patient_record"
    clinical_file = "clinical_file"
    history_section = "history_section"
    order = "order"
    round = "round"
    discharge_summary = "discharge_summary"
    vitals = "vitals"
    team_note = "team_note"
    checklist = "checklist"


# ---------------------------------------------------------------------------
# TABLE DEFINITIONS
# ---------------------------------------------------------------------------

class PatientRecord(Base):
    """Latest committed snapshot of one patient aggregate (JSON)."""
    __tablename__ = "patients"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    status = Column(Enum(PatientStatus), default=PatientStatus.waiting_for_triage)
    triage_level = Column(Enum(TriageLevel), default=TriageLevel.none)
    snapshot = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=lambda: datetime.datetime.now(datetime.timezone.utc))


class AuditLog(Base):
    """One row per forwarded audit event."""
    __tablename__ = "audit_log"

    id = Column(String, primary_key=True)
    patient_id = Column(String, index=True, nullable=False)
    sequence = Column(Integer, nullable=False)
    actor_id = Column(String, nullable=False)
    action = Column(Enum(AuditAction), nullable=False)
    entity = Column(Enum(AuditEntity), nullable=False)
    entity_id = Column(String, nullable=True)
    payload = Column(Text)  # JSON
    timestamp = Column(DateTime, nullable=False)
