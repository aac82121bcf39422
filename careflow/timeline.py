"""
timeline.py
===========
Team notes and checklists shown on the patient timeline, newest first, plus
the structured list of presenting complaints.
"""

import datetime
import uuid
from typing import Iterable, Tuple

from .exceptions import EntityNotFound, ValidationError
from .schemas import Checklist, ChecklistItem, ChiefComplaint, TeamNote


def new_team_note(
    patient_id: str,
    content: str,
    actor_id: str,
    at: datetime.datetime,
    escalation: bool = False,
) -> TeamNote:
    content = (content or "").strip()
    if not content:
        raise ValidationError("A team note needs content", detail={"patient_id": patient_id})
    return TeamNote(
        id=f"NOTE-{uuid.uuid4().hex[:10]}",
        patient_id=patient_id,
        author_id=actor_id,
        content=content,
        is_escalation=escalation,
        timestamp=at,
    )


def new_checklist(
    patient_id: str,
    title: str,
    items: Iterable[str],
    actor_id: str,
    at: datetime.datetime,
) -> Checklist:
    title = (title or "").strip()
    texts = [t.strip() for t in items if t and t.strip()]
    if not title or not texts:
        raise ValidationError(
            "A checklist needs a title and at least one item",
            detail={"patient_id": patient_id},
        )
    return Checklist(
        id=f"CHK-{uuid.uuid4().hex[:10]}",
        patient_id=patient_id,
        author_id=actor_id,
        title=title,
        items=tuple(ChecklistItem(text=t) for t in texts),
        timestamp=at,
    )


def find_checklist(timeline: tuple, checklist_id: str) -> Checklist:
    for entry in timeline:
        if entry.kind == "checklist" and entry.id == checklist_id:
            return entry
    raise EntityNotFound("Checklist not found", detail={"checklist_id": checklist_id})


def toggle_item(checklist: Checklist, index: int) -> Checklist:
    if not 0 <= index < len(checklist.items):
        raise ValidationError(
            "Checklist item index out of range",
            detail={"checklist_id": checklist.id, "index": index},
        )
    items = list(checklist.items)
    items[index] = items[index].model_copy(update={"checked": not items[index].checked})
    return checklist.model_copy(update={"items": tuple(items)})


def replace(timeline: tuple, entry) -> tuple:
    return tuple(entry if e.id == entry.id else e for e in timeline)


def complaint_text(complaints: Tuple[ChiefComplaint, ...]) -> str:
    """Single-line form kept in `Patient.complaint` for classification and lists."""
    return "; ".join(c.describe() for c in complaints)
