"""
clinical_file.py
================
Operations on a patient's clinical file: section merges, the AI proposal
slot, and the one-way sign-off.

All functions take a ClinicalFile and return a new one; nothing is changed in
place. A signed file refuses every section change with FileLocked.
"""

import copy
import datetime
from typing import Any, Dict, Iterable, Mapping, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .exceptions import AlreadySigned, FileLocked, ValidationError
from .models import ClinicalFileStatus, SectionKey
from .schemas import SECTION_MODELS, ClinicalFile, HistorySection

# Sub-objects merged one level deeper instead of being replaced wholesale
NESTED_MERGE_KEYS = {
    SectionKey.general_exam: ("flags", "vitals"),
}

# (section, field) pairs that must be non-empty before sign-off
REQUIRED_FOR_SIGNOFF = (
    (SectionKey.history, "chief_complaint"),
)

# Suggestion keys that land on a differently named section field
SUGGESTION_FIELD_ALIASES = {
    SectionKey.history: {"structured_hpi": "hpi"},
}


def new_clinical_file(patient_id: str, chief_complaint: str = "") -> ClinicalFile:
    """Draft file for a freshly registered patient, seeded with the complaint."""
    file = ClinicalFile(id=f"CF-{patient_id}", patient_id=patient_id)
    sections = file.sections.model_copy(
        update={"history": HistorySection(chief_complaint=chief_complaint or "")}
    )
    return file.model_copy(update={"sections": sections})


def section_key(value: Union[str, SectionKey]) -> SectionKey:
    try:
        return SectionKey.parse(value)
    except ValueError:
        raise ValidationError(
            f"Unknown clinical file section: {value!r}",
            code="UNKNOWN_SECTION",
            detail={"allowed": [k.value for k in SectionKey]},
        )


def _as_dict(data: Union[Mapping[str, Any], BaseModel]) -> Dict[str, Any]:
    if isinstance(data, BaseModel):
        return data.model_dump(exclude_unset=True)
    return dict(data)


def merge_section(file: ClinicalFile, key: Union[str, SectionKey], partial) -> BaseModel:
    """
    Shallow-merge `partial` over the current section and validate the result.
    Keys listed in NESTED_MERGE_KEYS are merged one level deeper.
    """
    key = section_key(key)
    model_cls = SECTION_MODELS[key]
    partial = _as_dict(partial)

    current = getattr(file.sections, key.value).model_dump()
    merged = {**current, **partial}
    for nested in NESTED_MERGE_KEYS.get(key, ()):
        if nested not in partial or partial[nested] is None:
            continue
        value = partial[nested]
        if isinstance(value, BaseModel):
            value = value.model_dump(exclude_unset=True)
        if isinstance(value, Mapping):
            merged[nested] = {**(current.get(nested) or {}), **value}

    try:
        return model_cls.model_validate(merged)
    except PydanticValidationError as exc:
        raise ValidationError(
            f"Invalid data for section '{key.value}'",
            detail={"errors": [{"loc": list(err["loc"]), "msg": err["msg"]} for err in exc.errors()]},
        )


def update_section(file: ClinicalFile, key: Union[str, SectionKey], partial) -> ClinicalFile:
    if file.is_signed:
        raise FileLocked(detail={"file_id": file.id, "section": str(key)})
    key = section_key(key)
    section = merge_section(file, key, partial)
    sections = file.sections.model_copy(update={key.value: section})
    return file.model_copy(update={"sections": sections})


# ---------------------------------------------------------------------------
# AI PROPOSAL SLOT
# ---------------------------------------------------------------------------

def _target_field(key: SectionKey, field: str) -> str:
    return SUGGESTION_FIELD_ALIASES.get(key, {}).get(field, field)


def record_suggestion(file: ClinicalFile, key: Union[str, SectionKey], suggestion) -> ClinicalFile:
    """
    Park advisor proposals next to (not inside) the authoritative section.
    Proposals for the same field replace the previous one.
    """
    if file.is_signed:
        raise FileLocked(detail={"file_id": file.id})
    key = section_key(key)
    suggestion = {k: copy.deepcopy(v) for k, v in _as_dict(suggestion).items() if v not in (None, "", [], ())}
    if not suggestion:
        return file

    allowed = set(SECTION_MODELS[key].model_fields)
    unknown = [f for f in suggestion if _target_field(key, f) not in allowed]
    if unknown:
        raise ValidationError(
            f"Suggestion has unknown fields for section '{key.value}'",
            detail={"fields": unknown},
        )

    pending = {k: dict(v) for k, v in file.pending_suggestions.items()}
    pending[key] = {**pending.get(key, {}), **suggestion}
    return file.model_copy(update={"pending_suggestions": pending})


def accept_suggestion(file: ClinicalFile, field: str, key: Union[str, SectionKey] = SectionKey.history) -> ClinicalFile:
    """
    Copy one proposed field into the section and drop that proposal.
    List-valued fields are appended to, everything else is replaced.
    """
    if file.is_signed:
        raise FileLocked(detail={"file_id": file.id, "field": field})
    key = section_key(key)
    proposals = file.pending_suggestions.get(key, {})
    if field not in proposals:
        raise ValidationError(
            f"No pending suggestion for '{field}'",
            code="NO_SUGGESTION",
            detail={"section": key.value, "field": field},
        )

    value = proposals[field]
    target = _target_field(key, field)
    current_value = getattr(getattr(file.sections, key.value), target)
    if isinstance(current_value, tuple):
        incoming = value if isinstance(value, (list, tuple)) else [value]
        value = list(current_value) + list(incoming)

    section = merge_section(file, key, {target: value})
    sections = file.sections.model_copy(update={key.value: section})

    pending = {k: dict(v) for k, v in file.pending_suggestions.items()}
    remaining = {k: v for k, v in proposals.items() if k != field}
    if remaining:
        pending[key] = remaining
    else:
        pending.pop(key, None)

    return file.model_copy(update={"sections": sections, "pending_suggestions": pending})


def clear_suggestions(file: ClinicalFile, key: Union[str, SectionKey]) -> ClinicalFile:
    key = section_key(key)
    if key not in file.pending_suggestions:
        return file
    pending = {k: dict(v) for k, v in file.pending_suggestions.items() if k != key}
    return file.model_copy(update={"pending_suggestions": pending})


# ---------------------------------------------------------------------------
# SIGN-OFF
# ---------------------------------------------------------------------------

def missing_required(file: ClinicalFile) -> list:
    missing = []
    for key, field in REQUIRED_FOR_SIGNOFF:
        value = getattr(getattr(file.sections, key.value), field)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(f"{key.value}.{field}")
    return missing


def sign_off(file: ClinicalFile, actor_id: str, at: datetime.datetime) -> ClinicalFile:
    """
    The only irreversible transition in the model. Pending proposals are
    dropped: nothing can be accepted into a signed file.
    """
    if file.is_signed:
        raise AlreadySigned(detail={
            "file_id": file.id,
            "signed_by": file.signed_by,
            "signed_at": file.signed_at.isoformat() if file.signed_at else None,
        })
    missing = missing_required(file)
    if missing:
        raise ValidationError(
            "Chief complaint is required before sign-off",
            code="MISSING_REQUIRED_FIELDS",
            detail={"missing": missing},
        )
    return file.model_copy(update={
        "status": ClinicalFileStatus.signed,
        "signed_at": at,
        "signed_by": actor_id,
        "pending_suggestions": {},
    })


# ---------------------------------------------------------------------------
# ADVISORY ANNOTATIONS (not section data)
# ---------------------------------------------------------------------------

def with_ai_summary(file: ClinicalFile, summary: str) -> ClinicalFile:
    return file.model_copy(update={"ai_summary": summary})


def with_missing_info(file: ClinicalFile, findings: Iterable[str]) -> ClinicalFile:
    return file.model_copy(update={"missing_info": tuple(findings)})


def with_inconsistencies(file: ClinicalFile, findings: Iterable[str]) -> ClinicalFile:
    return file.model_copy(update={"cross_check_inconsistencies": tuple(findings)})
