"""
persistence.py
==============
Persistence boundary for patient aggregates.

 - PatientRepository: the authoritative, injected in-memory store of
   committed snapshots. The workflow reads and writes only through it.
 - SqlSnapshotMirror: best-effort copy of each committed snapshot into
   SQLite, and reload on startup.
 - SqlAuditSink: best-effort copy of each audit event into SQLite, written
   on a background worker so recording an event never waits on the database.

Mirror and sink failures are logged and rolled back on their own session;
they never affect the in-memory state.
"""

import datetime
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from .exceptions import EntityNotFound
from .models import AuditLog, PatientRecord
from .schemas import AuditEvent, Patient

logger = logging.getLogger(__name__)


class PatientRepository:
    """Latest committed snapshot per patient, in registration order."""

    def __init__(self, patients: Optional[Iterable[Patient]] = None):
        self._patients: Dict[str, Patient] = {}
        if patients:
            self.hydrate(patients)

    def find(self, patient_id: str) -> Optional[Patient]:
        return self._patients.get(patient_id)

    def get(self, patient_id: str) -> Patient:
        patient = self._patients.get(patient_id)
        if patient is None:
            raise EntityNotFound("Patient not found", detail={"patient_id": patient_id})
        return patient

    def save(self, patient: Patient) -> None:
        self._patients[patient.id] = patient

    def list(self) -> List[Patient]:
        return list(self._patients.values())

    def hydrate(self, patients: Iterable[Patient]) -> None:
        for patient in sorted(patients, key=lambda p: p.registered_at):
            self._patients[patient.id] = patient

    def __contains__(self, patient_id) -> bool:
        return patient_id in self._patients

    def __len__(self) -> int:
        return len(self._patients)


class SqlSnapshotMirror:
    """Writes each committed snapshot to the `patients` table as JSON."""

    def __init__(self, session_factory):
        self._session_factory = session_factory

    def save(self, patient: Patient) -> None:
        db = self._session_factory()
        try:
            record = db.get(PatientRecord, patient.id)
            if record is None:
                record = PatientRecord(id=patient.id)
                db.add(record)
            record.name = patient.name
            record.status = patient.status
            record.triage_level = patient.triage.level
            record.snapshot = patient.model_dump_json()
            record.updated_at = datetime.datetime.now(datetime.timezone.utc)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to mirror snapshot for patient %s: %s", patient.id, e)
        finally:
            db.close()

    def load_all(self) -> List[Patient]:
        db = self._session_factory()
        try:
            records = db.query(PatientRecord).all()
            return [Patient.model_validate_json(r.snapshot) for r in records]
        finally:
            db.close()


class SqlAuditSink:
    """Appends each forwarded audit event to the `audit_log` table."""

    def __init__(self, session_factory):
        self._session_factory = session_factory
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="audit-sql")

    def emit(self, event: AuditEvent) -> None:
        self._executor.submit(self._store, event)

    def _store(self, event: AuditEvent) -> None:
        db = self._session_factory()
        try:
            db.add(AuditLog(
                id=event.id,
                patient_id=event.patient_id,
                sequence=event.sequence,
                actor_id=event.actor_id,
                action=event.action,
                entity=event.entity,
                entity_id=event.entity_id,
                payload=json.dumps(event.payload, default=str) if event.payload is not None else None,
                timestamp=event.timestamp,
            ))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to store audit event %s: %s", event.id, e)
        finally:
            db.close()

    def load(self, patient_id: str) -> List[AuditEvent]:
        """Events for one patient in acceptance order, for compliance review."""
        self.flush()
        db = self._session_factory()
        try:
            rows = (
                db.query(AuditLog)
                .filter(AuditLog.patient_id == patient_id)
                .order_by(AuditLog.sequence)
                .all()
            )
            return [
                AuditEvent(
                    id=row.id,
                    sequence=row.sequence,
                    actor_id=row.actor_id,
                    patient_id=row.patient_id,
                    action=row.action,
                    entity=row.entity,
                    entity_id=row.entity_id,
                    payload=json.loads(row.payload) if row.payload else None,
                    timestamp=row.timestamp,
                )
                for row in rows
            ]
        finally:
            db.close()

    def flush(self) -> None:
        """Block until every queued event has been written (or failed)."""
        self._executor.submit(lambda: None).result()

    def close(self) -> None:
        self._executor.shutdown(wait=True)
