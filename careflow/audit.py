"""
audit.py
========
Append-only audit trail.

Events are kept per patient in the exact order the workflow accepted the
causing operations, each with a gap-free per-patient sequence number. Every
event is then forwarded to the registered sinks; a failing sink is logged
and never undoes the in-memory record.
"""

import copy
import datetime
import logging
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

from .models import AuditAction, AuditEntity
from .schemas import AuditEvent

logger = logging.getLogger(__name__)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class AuditTrail:
    """
    In-memory, append-only event log.
    A sink is either a callable taking an AuditEvent or an object with
    an `emit(event)` method.
    """

    def __init__(self, sinks: Optional[List[Any]] = None, clock: Callable[[], datetime.datetime] = _utcnow):
        self._events: Dict[str, List[AuditEvent]] = {}
        self._sinks: List[Any] = list(sinks or [])
        self._clock = clock

    def add_sink(self, sink) -> None:
        self._sinks.append(sink)

    def record(
        self,
        actor_id: str,
        patient_id: str,
        action: AuditAction,
        entity: AuditEntity,
        entity_id: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
        at: Optional[datetime.datetime] = None,
    ) -> AuditEvent:
        log = self._events.setdefault(patient_id, [])
        event = AuditEvent(
            id=f"AUDIT-{uuid.uuid4().hex[:12]}",
            sequence=len(log) + 1,
            actor_id=actor_id,
            patient_id=patient_id,
            action=action,
            entity=entity,
            entity_id=entity_id,
            payload=copy.deepcopy(payload),
            timestamp=at or self._clock(),
        )
        log.append(event)
        logger.info(
            "audit %s %s patient=%s entity_id=%s seq=%d",
            event.action.value, event.entity.value, patient_id, entity_id, event.sequence,
        )
        self._forward(event)
        return event

    def _forward(self, event: AuditEvent) -> None:
        for sink in self._sinks:
            handler = getattr(sink, "emit", sink)
            try:
                handler(event)
            except Exception:
                logger.exception("Audit sink %r failed for event %s", sink, event.id)

    def events(self, patient_id: str) -> Tuple[AuditEvent, ...]:
        return tuple(self._events.get(patient_id, ()))

    def __len__(self) -> int:
        return sum(len(log) for log in self._events.values())
