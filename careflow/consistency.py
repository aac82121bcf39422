"""
consistency.py
==============
Local, deterministic record checks. They only ever produce warnings; no
check here blocks a workflow step.
 - missing-info findings per clinical-file section
 - examination findings that contradict the latest vitals
 - round pre-sign-off checks
"""

from typing import List, Optional

from .models import OrderStatus, SectionKey
from .schemas import Measurements, Patient, Round, SystemExam
from .vitals import format_reading


def _exam_text(exam: Optional[SystemExam]) -> str:
    if exam is None:
        return ""
    parts = [exam.inspection, exam.palpation, exam.percussion, exam.auscultation, exam.summary]
    return " ".join(p for p in parts if p).lower()


def latest_measurements(patient: Patient) -> Measurements:
    """Latest recorded vitals, falling back to those typed into the exam."""
    if patient.vitals is not None:
        return patient.vitals
    return patient.clinical_file.sections.general_exam.vitals


def missing_info(patient: Patient, key: SectionKey) -> List[str]:
    sections = patient.clinical_file.sections
    findings: List[str] = []

    if key == SectionKey.history:
        history = sections.history
        if not history.allergy_history:
            findings.append("Allergies are not documented.")
        if not history.past_medical_history.strip():
            findings.append("Past Medical History is empty.")
        if not history.duration.strip():
            findings.append("Duration of the presenting complaint is not recorded.")
        if not history.hpi.strip():
            findings.append("History of presenting illness is empty.")

    elif key == SectionKey.general_exam:
        exam = sections.general_exam
        if not exam.general_appearance:
            findings.append("General appearance is not recorded.")
        if not any(v is not None for v in exam.vitals.model_dump().values()):
            findings.append("No vitals recorded in the general examination.")

    elif key == SectionKey.systemic_exam:
        exam = sections.systemic_exam
        if all(getattr(exam, name) is None for name in type(exam).model_fields):
            findings.append("No systemic examination recorded.")

    return findings


def exam_vs_vitals(patient: Patient) -> List[str]:
    file = patient.clinical_file
    vitals = latest_measurements(patient)
    systemic = file.sections.systemic_exam
    checks: List[str] = []

    if vitals.spo2 is not None and vitals.spo2 < 94 and "clear" in _exam_text(systemic.rs):
        checks.append(
            f"SpO2 is low ({format_reading(vitals.spo2)}%) but Respiratory System examination is recorded as 'Clear'."
        )
    if vitals.pulse is not None and vitals.pulse < 60 and "normal" in _exam_text(systemic.cvs):
        checks.append(f"Bradycardia ({format_reading(vitals.pulse)} bpm) detected but CVS exam marked as normal.")
    if patient.gender == "Male" and "pregnan" in file.sections.general_exam.remarks.lower():
        checks.append("Patient is Male but GPE mentions pregnancy.")

    return checks


def check_round(patient: Patient, rnd: Round) -> List[str]:
    """Pre-sign-off warnings for a round. The clinician decides what to do."""
    warnings: List[str] = []
    if not rnd.assessment.strip():
        warnings.append("Assessment is empty.")
    if not rnd.plan.strip():
        warnings.append("Plan is empty.")

    vitals = latest_measurements(patient)
    notes = f"{rnd.objective} {rnd.assessment}".lower()
    if vitals.temp_c is not None and vitals.temp_c >= 38 and "afebrile" in notes:
        warnings.append(
            f"Round notes say 'afebrile' but the latest temperature is {format_reading(vitals.temp_c)}°C."
        )
    if vitals.spo2 is not None and vitals.spo2 < 94 and "chest clear" in notes:
        warnings.append(
            f"Round notes say 'chest clear' but the latest SpO2 is {format_reading(vitals.spo2)}%."
        )

    for order_id in rnd.linked_order_ids:
        order = patient.find_order(order_id)
        if order is None:
            warnings.append(f"Plan links unknown order {order_id}.")
        elif order.status == OrderStatus.cancelled:
            warnings.append(f"Plan links cancelled order {order.label or order_id}.")

    return warnings
