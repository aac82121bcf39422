"""
rounds.py
=========
Ward-round progress notes. A patient has at most one draft round; signing
is terminal for that round, after which a new draft may be opened.
"""

import datetime
from typing import Iterable, Optional, Tuple

from .exceptions import IllegalTransition
from .models import RoundStatus
from .schemas import Round, RoundUpdate


def current_draft(rounds: Tuple[Round, ...]) -> Optional[Round]:
    for rnd in rounds:
        if rnd.status == RoundStatus.draft:
            return rnd
    return None


def open_draft(
    rounds: Tuple[Round, ...],
    patient_id: str,
    actor_id: str,
    at: datetime.datetime,
) -> Tuple[Tuple[Round, ...], Round, bool]:
    """
    Get-or-create the draft round.
    Returns (rounds, the draft, whether it was created now).
    """
    existing = current_draft(rounds)
    if existing is not None:
        return rounds, existing, False

    number = max((r.number for r in rounds), default=0) + 1
    draft = Round(
        id=f"RND-{patient_id}-{number}",
        patient_id=patient_id,
        number=number,
        doctor_id=actor_id,
        created_at=at,
    )
    return rounds + (draft,), draft, True


def update_draft(rnd: Round, changes: RoundUpdate) -> Round:
    if rnd.status != RoundStatus.draft:
        raise IllegalTransition("Signed rounds cannot be edited", detail={"round_id": rnd.id})
    fields = changes.model_dump(exclude_none=True)
    if not fields:
        return rnd
    if "linked_order_ids" in fields:
        fields["linked_order_ids"] = tuple(fields["linked_order_ids"])
    return rnd.model_copy(update=fields)


def sign_off(
    rnd: Round,
    actor_id: str,
    at: datetime.datetime,
    acknowledged_warnings: Iterable[str] = (),
) -> Round:
    if rnd.status != RoundStatus.draft:
        raise IllegalTransition("Round is already signed", detail={"round_id": rnd.id})
    return rnd.model_copy(update={
        "status": RoundStatus.signed,
        "signed_by": actor_id,
        "signed_at": at,
        "acknowledged_warnings": tuple(acknowledged_warnings),
    })


def replace(rounds: Tuple[Round, ...], rnd: Round) -> Tuple[Round, ...]:
    return tuple(rnd if r.id == rnd.id else r for r in rounds)
