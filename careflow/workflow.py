"""
workflow.py
===========
Patient workflow orchestration:
 - registration, vitals and status transitions
 - clinical file editing, AI proposals and sign-off
 - the orders/rounds gate and every order/round intent
 - team notes, checklists and the complaint list
 - discharge
 - worklist and board views for the dashboard

Writes to one patient are serialized by a per-patient asyncio.Lock; reads
take no lock and see the last committed (immutable) snapshot. Advisor calls
always run outside the lock, and their results are applied only if the
patient still accepts them when they arrive. Snapshot mirroring and
WebSocket broadcast are handed off at commit and run after the lock is
released, so a slow subscriber or database never stalls the next intent.
"""

import asyncio
import datetime
import heapq
import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from . import clinical_file as cf
from . import config
from . import consistency
from . import orders as order_ledger
from . import rounds as round_ledger
from . import timeline
from .advisor import AdvisorInterface, make_advisor
from .audit import AuditTrail
from .exceptions import (
    AdvisorUnavailable, EntityNotFound, FileLocked, FileNotSigned,
    IllegalTransition, ValidationError,
)
from .models import (
    AuditAction, AuditEntity, OrderCategory, OrderStatus, PatientStatus,
    RoundStatus, SectionKey, VitalsSource,
)
from .persistence import PatientRepository
from .schemas import (
    ChiefComplaint, DischargeSummary, Measurements, OperationResult, Order, OrderAmendment,
    OrderRequest, Patient, RegistrationRequest, Round, RoundUpdate,
    TriageSuggestion, VitalsRecord,
)
from .vitals import evaluate, triage_priority

logger = logging.getLogger(__name__)

# Operator-driven moves. WFT -> WFD happens only when vitals are first recorded.
PATIENT_TRANSITIONS = {
    PatientStatus.waiting_for_triage: {PatientStatus.waiting_for_doctor},
    PatientStatus.waiting_for_doctor: {PatientStatus.in_treatment, PatientStatus.discharged},
    PatientStatus.in_treatment: {PatientStatus.discharged},
    PatientStatus.discharged: set(),
}

ACTIVE_ORDER_STATUSES = {
    OrderStatus.draft, OrderStatus.sent, OrderStatus.scheduled, OrderStatus.in_progress,
}

AI_REGISTRATION_WARNING = "AI advisory unavailable. Patient was registered without AI suggestion."
AI_ORDERS_WARNING = "AI order suggestion failed. Please add orders manually."
AI_CROSS_CHECK_WARNING = "AI cross-check unavailable. Please review manually before sign-off."
STALE_SUGGESTION_WARNING = "Clinical file was signed before the suggestions arrived; they were discarded."


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _coerce(model_cls, data):
    """Validate raw input into `model_cls`, mapping errors to our taxonomy."""
    if isinstance(data, model_cls):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump(exclude_unset=True)
    try:
        return model_cls.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(
            f"Invalid {model_cls.__name__}",
            detail={"errors": [{"loc": list(err["loc"]), "msg": err["msg"]} for err in exc.errors()]},
        )


def _jsonable(data) -> Dict[str, Any]:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json", exclude_unset=True)
    return {k: (v.model_dump(mode="json") if isinstance(v, BaseModel) else v) for k, v in dict(data).items()}


def _event(action: AuditAction, entity: AuditEntity, entity_id: Optional[str] = None, **payload) -> Dict[str, Any]:
    return {
        "action": action,
        "entity": entity,
        "entity_id": entity_id,
        "payload": payload or None,
    }


def compile_discharge_text(patient: Patient) -> str:
    """Plain discharge draft assembled from the record, used without the advisor."""
    history = patient.clinical_file.sections.history
    demographics = ", ".join(str(x) for x in (patient.age, patient.gender) if x not in (None, ""))
    lines = [f"Patient: {patient.name}" + (f" ({demographics})" if demographics else "")]
    lines.append(f"Chief complaint: {history.chief_complaint or patient.complaint or 'not recorded'}")
    if patient.clinical_file.ai_summary:
        lines.append(f"Clinical summary: {patient.clinical_file.ai_summary}")

    signed_rounds = [r for r in patient.rounds if r.status == RoundStatus.signed]
    if signed_rounds:
        lines.append("Course in hospital:")
        for r in signed_rounds:
            lines.append(f"  Round {r.number}: {r.assessment or '-'} | Plan: {r.plan or '-'}")

    given = [o for o in patient.orders if o.status not in (OrderStatus.draft, OrderStatus.cancelled)]
    if given:
        lines.append("Orders:")
        for o in given:
            lines.append(f"  - {o.category.value}: {o.label or o.sub_type} ({o.status.value})")
    return "\n".join(lines)


class PatientWorkflow:
    """
    Orchestrator over patient aggregates.
    Collaborators are injected; defaults give an in-memory repository, the
    mock advisor and an audit trail with no external sinks.
    """

    def __init__(
        self,
        repository: Optional[PatientRepository] = None,
        advisor: Optional[AdvisorInterface] = None,
        audit: Optional[AuditTrail] = None,
        mirrors: Optional[List[Any]] = None,
        broadcaster=None,
        clock=_utcnow,
        broadcast_timeout: Optional[float] = None,
    ):
        self.repository = repository if repository is not None else PatientRepository()
        self.advisor = advisor if advisor is not None else make_advisor()
        self.audit = audit if audit is not None else AuditTrail()
        self._mirrors = list(mirrors or [])
        self.broadcaster = broadcaster
        self._clock = clock
        self._locks: Dict[str, asyncio.Lock] = {}
        self.broadcast_timeout = config.BROADCAST_TIMEOUT_SECONDS if broadcast_timeout is None else broadcast_timeout
        self._mirror_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="careflow-mirror")
        self._pending_broadcasts: Set[asyncio.Task] = set()

    # -----------------------------------------------------------------------
    # INTERNALS
    # -----------------------------------------------------------------------

    def _lock(self, patient_id: str) -> asyncio.Lock:
        lock = self._locks.get(patient_id)
        if lock is None:
            lock = self._locks[patient_id] = asyncio.Lock()
        return lock

    def _commit(self, patient: Patient, actor_id: str, events: Iterable[Dict[str, Any]] = ()) -> Patient:
        """
        Make `patient` the committed snapshot and append its audit events.
        Called with the patient lock held; never blocks. Mirroring and the
        broadcast are handed off and finish after the lock is released.
        """
        at = self._clock()
        self.repository.save(patient)
        for event in events:
            self.audit.record(actor_id=actor_id, patient_id=patient.id, at=at, **event)

        if self._mirrors:
            # single worker: snapshots reach the mirrors in commit order
            self._mirror_executor.submit(self._mirror, patient)
        if self.broadcaster is not None:
            task = asyncio.create_task(self._broadcast(patient))
            self._pending_broadcasts.add(task)
            task.add_done_callback(self._pending_broadcasts.discard)
        return patient

    def _mirror(self, patient: Patient) -> None:
        for mirror in self._mirrors:
            try:
                mirror.save(patient)
            except Exception:
                logger.exception("Snapshot mirror %r failed for patient %s", mirror, patient.id)

    async def _broadcast(self, patient: Patient) -> None:
        try:
            await asyncio.wait_for(self.broadcaster.broadcast(patient), timeout=self.broadcast_timeout)
        except asyncio.TimeoutError:
            logger.warning("Snapshot broadcast for patient %s timed out after %gs", patient.id, self.broadcast_timeout)
        except Exception:
            logger.exception("Snapshot broadcast failed for patient %s", patient.id)

    def flush(self) -> None:
        """Block until every snapshot handed to the mirrors has been written."""
        self._mirror_executor.submit(lambda: None).result()

    async def drain(self) -> None:
        """Wait for in-flight broadcasts (each is bounded by broadcast_timeout)."""
        if self._pending_broadcasts:
            await asyncio.gather(*list(self._pending_broadcasts), return_exceptions=True)

    def close(self) -> None:
        self._mirror_executor.shutdown(wait=True)

    @staticmethod
    def _ensure_active(patient: Patient) -> None:
        if patient.status == PatientStatus.discharged:
            raise IllegalTransition("Patient is discharged", detail={"patient_id": patient.id})

    @staticmethod
    def _ensure_unlocked(patient: Patient) -> None:
        """Orders and rounds stay locked until the clinical file is signed."""
        if not patient.clinical_file.is_signed:
            raise FileNotSigned(detail={"patient_id": patient.id})

    @staticmethod
    def _find_order(patient: Patient, order_id: str) -> Order:
        order = patient.find_order(order_id)
        if order is None:
            raise EntityNotFound("Order not found", detail={"order_id": order_id})
        return order

    @staticmethod
    def _find_round(patient: Patient, round_id: str) -> Round:
        rnd = patient.find_round(round_id)
        if rnd is None:
            raise EntityNotFound("Round not found", detail={"round_id": round_id})
        return rnd

    def _move(self, patient: Patient, new_status: PatientStatus) -> Patient:
        if new_status not in PATIENT_TRANSITIONS[patient.status]:
            raise IllegalTransition(
                f"Patient cannot move from '{patient.status.value}' to '{new_status.value}'",
                detail={"patient_id": patient.id, "from": patient.status.value, "to": new_status.value},
            )
        return patient.model_copy(update={"status": new_status})

    # -----------------------------------------------------------------------
    # READS (lock-free, committed snapshots)
    # -----------------------------------------------------------------------

    def get_patient(self, patient_id: str) -> Patient:
        return self.repository.get(patient_id)

    def list_patients(self) -> List[Patient]:
        return self.repository.list()

    def is_unlocked(self, patient_id: str) -> bool:
        return self.repository.get(patient_id).clinical_file.is_signed

    def audit_events(self, patient_id: str):
        return self.audit.events(patient_id)

    def worklist(self, include_discharged: bool = False) -> List[Patient]:
        """Most urgent triage first; ties keep arrival order."""
        heap = []
        for counter, patient in enumerate(self.repository.list()):
            if patient.status == PatientStatus.discharged and not include_discharged:
                continue
            heapq.heappush(heap, (triage_priority(patient.triage.level), counter, patient.id))
        ordered = []
        while heap:
            _, _, patient_id = heapq.heappop(heap)
            ordered.append(self.repository.get(patient_id))
        return ordered

    def board(self) -> Dict[PatientStatus, List[Patient]]:
        """Patients grouped into dashboard columns by workflow stage."""
        columns: Dict[PatientStatus, List[Patient]] = {status: [] for status in PatientStatus}
        for patient in self.repository.list():
            columns[patient.status].append(patient)
        return columns

    # -----------------------------------------------------------------------
    # REGISTRATION, VITALS, STATUS
    # -----------------------------------------------------------------------

    async def register_patient(self, request: Union[RegistrationRequest, Dict[str, Any]], actor_id: str) -> OperationResult:
        """
        Registers a patient.
        Steps:
          1. Ask the advisor to classify the complaint (advisory only)
          2. Create the patient in Waiting for Triage with a draft clinical file
          3. Audit the creation
        """
        request = _coerce(RegistrationRequest, request)
        complaint = request.complaint or timeline.complaint_text(request.complaints)

        warnings: Tuple[str, ...] = ()
        ai_triage = TriageSuggestion()
        if complaint.strip():
            try:
                ai_triage = await self.advisor.classify(complaint)
            except AdvisorUnavailable as e:
                logger.warning("Complaint classification failed, registering without it: %s", e.message)
                warnings = (AI_REGISTRATION_WARNING,)

        patient_id = f"PAT-{uuid.uuid4().hex[:10]}"
        patient = Patient(
            id=patient_id,
            name=request.name,
            age=request.age,
            gender=request.gender,
            phone=request.phone,
            complaint=complaint,
            complaints=request.complaints,
            registered_at=self._clock(),
            ai_triage=ai_triage,
            clinical_file=cf.new_clinical_file(patient_id, complaint),
        )
        async with self._lock(patient_id):
            self._commit(patient, actor_id, [
                _event(AuditAction.create, AuditEntity.patient_record, patient_id,
                       ai_triage=ai_triage.model_dump(mode="json")),
            ])
        logger.info("📋 Registered patient %s (%s), AI department=%s", patient_id, request.name, ai_triage.department)
        return OperationResult(patient=patient, degraded=bool(warnings), warnings=warnings)

    async def record_vitals(
        self,
        patient_id: str,
        measurements: Union[Measurements, Dict[str, Any]],
        actor_id: str,
        source: VitalsSource = VitalsSource.manual,
        observations: str = "",
    ) -> OperationResult:
        """Append a vitals record, recompute triage, and leave the triage queue on first vitals."""
        measurements = _coerce(Measurements, measurements)
        async with self._lock(patient_id):
            patient = self.repository.get(patient_id)
            self._ensure_active(patient)

            now = self._clock()
            triage = evaluate(measurements)
            record = VitalsRecord(
                id=f"VIT-{uuid.uuid4().hex[:10]}",
                patient_id=patient_id,
                measurements=measurements,
                recorded_at=now,
                recorded_by=actor_id,
                source=VitalsSource(source),
                observations=observations,
            )
            update = {
                "vitals": measurements,
                "triage": triage,
                "vitals_history": (record,) + patient.vitals_history,
            }
            if patient.status == PatientStatus.waiting_for_triage:
                update["status"] = PatientStatus.waiting_for_doctor
            updated = patient.model_copy(update=update)

            self._commit(updated, actor_id, [
                _event(AuditAction.create, AuditEntity.vitals, record.id,
                       measurements=measurements.model_dump(exclude_none=True),
                       triage=triage.level.value,
                       status=updated.status.value),
            ])
        logger.info("🩺 Triage for %s: %s %s", patient_id, triage.level.value, list(triage.reasons))
        return OperationResult(patient=updated, value=record)

    async def start_treatment(self, patient_id: str, actor_id: str) -> OperationResult:
        async with self._lock(patient_id):
            patient = self.repository.get(patient_id)
            updated = self._move(patient, PatientStatus.in_treatment)
            self._commit(updated, actor_id, [
                _event(AuditAction.modify, AuditEntity.patient_record, patient_id,
                       **{"from": patient.status.value, "to": updated.status.value}),
            ])
        return OperationResult(patient=updated)

    # -----------------------------------------------------------------------
    # CLINICAL FILE
    # -----------------------------------------------------------------------

    async def update_clinical_section(
        self,
        patient_id: str,
        section: Union[str, SectionKey],
        data,
        actor_id: str,
    ) -> OperationResult:
        """
        Merge a partial update into one section.
        On a signed file this is a no-op: applied=False with a warning.
        """
        key = cf.section_key(section)
        async with self._lock(patient_id):
            patient = self.repository.get(patient_id)
            self._ensure_active(patient)
            try:
                new_file = cf.update_section(patient.clinical_file, key, data)
            except FileLocked as e:
                return OperationResult(patient=patient, applied=False, warnings=(e.message,))

            updated = patient.model_copy(update={"clinical_file": new_file})
            entity = AuditEntity.history_section if key == SectionKey.history else AuditEntity.clinical_file
            self._commit(updated, actor_id, [
                _event(AuditAction.modify, entity, new_file.id, section=key.value, changes=_jsonable(data)),
            ])
        return OperationResult(patient=updated)

    async def record_advisor_suggestion(
        self,
        patient_id: str,
        section: Union[str, SectionKey],
        suggestion: Dict[str, Any],
        actor_id: str,
    ) -> OperationResult:
        """
        Park advisor proposals in the suggestion slot. Proposals that arrive
        after the file was signed are discarded.
        """
        key = cf.section_key(section)
        async with self._lock(patient_id):
            patient = self.repository.get(patient_id)
            if patient.status == PatientStatus.discharged or patient.clinical_file.is_signed:
                logger.info("Discarding late advisor suggestions for patient %s", patient_id)
                return OperationResult(patient=patient, applied=False, warnings=(STALE_SUGGESTION_WARNING,))

            new_file = cf.record_suggestion(patient.clinical_file, key, suggestion)
            if new_file is patient.clinical_file:
                return OperationResult(patient=patient, applied=False)

            updated = patient.model_copy(update={"clinical_file": new_file})
            self._commit(updated, actor_id, [
                _event(AuditAction.create, AuditEntity.history_section if key == SectionKey.history else AuditEntity.clinical_file,
                       new_file.id, section=key.value, ai_suggestion=_jsonable(suggestion)),
            ])
        return OperationResult(patient=updated)

    async def request_history_suggestions(self, patient_id: str, actor_id: str) -> OperationResult:
        """Ask the advisor to structure the HPI into history-field proposals."""
        patient = self.repository.get(patient_id)
        self._ensure_active(patient)
        if patient.clinical_file.is_signed:
            return OperationResult(patient=patient, applied=False, warnings=(FileLocked.message,))
        hpi = patient.clinical_file.sections.history.hpi
        if not hpi.strip():
            return OperationResult(patient=patient, applied=False, warnings=("History of presenting illness is empty.",))

        try:
            suggestions = await self.advisor.suggest_history(hpi)
        except AdvisorUnavailable as e:
            logger.warning("History suggestions unavailable for %s: %s", patient_id, e.message)
            return OperationResult(patient=self.repository.get(patient_id), applied=False,
                                   degraded=True, warnings=(e.message,))

        try:
            return await self.record_advisor_suggestion(patient_id, SectionKey.history, suggestions, actor_id)
        except ValidationError as e:
            logger.warning("Advisor returned unusable history suggestions for %s: %s", patient_id, e.detail)
            return OperationResult(patient=self.repository.get(patient_id), applied=False,
                                   degraded=True, warnings=("AI suggestions could not be used.",))

    async def accept_suggestion(
        self,
        patient_id: str,
        field: str,
        actor_id: str,
        section: Union[str, SectionKey] = SectionKey.history,
    ) -> OperationResult:
        key = cf.section_key(section)
        async with self._lock(patient_id):
            patient = self.repository.get(patient_id)
            self._ensure_active(patient)
            suggested = patient.clinical_file.pending_suggestions.get(key, {}).get(field)
            new_file = cf.accept_suggestion(patient.clinical_file, field, key)
            updated = patient.model_copy(update={"clinical_file": new_file})
            self._commit(updated, actor_id, [
                _event(AuditAction.accept, AuditEntity.history_section if key == SectionKey.history else AuditEntity.clinical_file,
                       new_file.id, section=key.value, field=field, original_suggestion=suggested),
            ])
        return OperationResult(patient=updated)

    async def clear_suggestions(self, patient_id: str, section: Union[str, SectionKey], actor_id: str) -> OperationResult:
        key = cf.section_key(section)
        async with self._lock(patient_id):
            patient = self.repository.get(patient_id)
            rejected = sorted(patient.clinical_file.pending_suggestions.get(key, {}))
            if not rejected:
                return OperationResult(patient=patient, applied=False)
            updated = patient.model_copy(update={"clinical_file": cf.clear_suggestions(patient.clinical_file, key)})
            self._commit(updated, actor_id, [
                _event(AuditAction.reject, AuditEntity.history_section if key == SectionKey.history else AuditEntity.clinical_file,
                       updated.clinical_file.id, section=key.value, fields=rejected),
            ])
        return OperationResult(patient=updated)

    async def check_missing_info(self, patient_id: str, section: Union[str, SectionKey], actor_id: str) -> OperationResult:
        key = cf.section_key(section)
        async with self._lock(patient_id):
            patient = self.repository.get(patient_id)
            self._ensure_active(patient)
            findings = consistency.missing_info(patient, key)
            updated = patient.model_copy(update={"clinical_file": cf.with_missing_info(patient.clinical_file, findings)})
            self._commit(updated, actor_id, [
                _event(AuditAction.modify, AuditEntity.clinical_file, updated.clinical_file.id,
                       section=key.value, missing_info=findings),
            ])
        return OperationResult(patient=updated, warnings=tuple(findings), value=findings)

    async def summarize_clinical_file(self, patient_id: str, actor_id: str) -> OperationResult:
        patient = self.repository.get(patient_id)
        self._ensure_active(patient)
        try:
            summary = await self.advisor.summarize("clinical_file", patient.clinical_file.sections.model_dump(mode="json"))
        except AdvisorUnavailable as e:
            logger.warning("Clinical file summary unavailable for %s: %s", patient_id, e.message)
            return OperationResult(patient=self.repository.get(patient_id), applied=False,
                                   degraded=True, warnings=(e.message,))

        async with self._lock(patient_id):
            patient = self.repository.get(patient_id)
            if patient.status == PatientStatus.discharged:
                return OperationResult(patient=patient, applied=False)
            updated = patient.model_copy(update={"clinical_file": cf.with_ai_summary(patient.clinical_file, summary)})
            self._commit(updated, actor_id, [
                _event(AuditAction.create, AuditEntity.clinical_file, updated.clinical_file.id, ai_summary=summary),
            ])
        return OperationResult(patient=updated, value=summary)

    async def cross_check_file(self, patient_id: str, actor_id: str) -> OperationResult:
        """Local exam-vs-vitals rules plus the advisor's cross-check."""
        patient = self.repository.get(patient_id)
        self._ensure_active(patient)
        findings = consistency.exam_vs_vitals(patient)
        warnings: Tuple[str, ...] = ()
        try:
            remote = await self.advisor.cross_check(patient)
        except AdvisorUnavailable as e:
            logger.warning("Advisor cross-check unavailable for %s: %s", patient_id, e.message)
            remote = []
            warnings = (e.message,)
        findings += [item for item in remote if item not in findings]

        async with self._lock(patient_id):
            patient = self.repository.get(patient_id)
            if patient.status == PatientStatus.discharged:
                return OperationResult(patient=patient, applied=False)
            updated = patient.model_copy(update={"clinical_file": cf.with_inconsistencies(patient.clinical_file, findings)})
            self._commit(updated, actor_id, [
                _event(AuditAction.modify, AuditEntity.clinical_file, updated.clinical_file.id, inconsistencies=findings),
            ])
        return OperationResult(patient=updated, degraded=bool(warnings), warnings=warnings, value=findings)

    async def summarize_vitals(self, patient_id: str) -> OperationResult:
        """Read-only trend summary of the vitals history."""
        patient = self.repository.get(patient_id)
        if len(patient.vitals_history) < 2:
            return OperationResult(patient=patient, applied=False, value="Not enough data for a summary.")
        history = [r.model_dump(mode="json") for r in patient.vitals_history]
        try:
            summary = await self.advisor.summarize("vitals", history)
        except AdvisorUnavailable as e:
            return OperationResult(patient=patient, applied=False, degraded=True,
                                   warnings=(e.message,), value="AI summary generation failed.")
        return OperationResult(patient=patient, applied=False, value=summary)

    async def sign_off_clinical_file(self, patient_id: str, actor_id: str) -> OperationResult:
        """
        Sign the clinical file, then seed AI-suggested draft orders.
        The sign-off stands even if the advisor fails (degraded result).
        """
        async with self._lock(patient_id):
            patient = self.repository.get(patient_id)
            self._ensure_active(patient)
            signed_file = cf.sign_off(patient.clinical_file, actor_id, self._clock())
            signed = patient.model_copy(update={"clinical_file": signed_file})
            self._commit(signed, actor_id, [
                _event(AuditAction.signoff, AuditEntity.clinical_file, signed_file.id),
            ])
        logger.info("✍️ Clinical file %s signed by %s", signed_file.id, actor_id)

        try:
            suggestions = await self.advisor.suggest_orders(signed_file.sections)
        except AdvisorUnavailable as e:
            logger.warning("Order suggestions unavailable for %s: %s", patient_id, e.message)
            return OperationResult(patient=self.repository.get(patient_id), degraded=True, warnings=(AI_ORDERS_WARNING,))
        if not suggestions:
            return OperationResult(patient=self.repository.get(patient_id), value=())

        async with self._lock(patient_id):
            patient = self.repository.get(patient_id)
            if patient.status == PatientStatus.discharged:
                return OperationResult(patient=patient, value=())
            now = self._clock()
            seeded = tuple(order_ledger.from_suggestion(patient.clinical_file, s, actor_id, now) for s in suggestions)
            updated = patient.model_copy(update={"orders": patient.orders + seeded})
            self._commit(updated, actor_id, [
                _event(AuditAction.create, AuditEntity.order, o.id,
                       source="ai_suggestion", rationale=o.ai_provenance.rationale)
                for o in seeded
            ])
        logger.info("🧾 %d AI-suggested draft orders added for %s", len(seeded), patient_id)
        return OperationResult(patient=updated, value=seeded)

    # -----------------------------------------------------------------------
    # ORDERS
    # -----------------------------------------------------------------------

    async def create_order(self, patient_id: str, request: Union[OrderRequest, Dict[str, Any]], actor_id: str) -> OperationResult:
        request = _coerce(OrderRequest, request)
        async with self._lock(patient_id):
            patient = self.repository.get(patient_id)
            self._ensure_active(patient)
            order = order_ledger.create(patient.clinical_file, request, actor_id, self._clock())
            updated = patient.model_copy(update={"orders": patient.orders + (order,)})
            self._commit(updated, actor_id, [
                _event(AuditAction.create, AuditEntity.order, order.id,
                       category=order.category.value, label=order.label, priority=order.priority.value),
            ])
        return OperationResult(patient=updated, value=order)

    async def amend_order(self, patient_id: str, order_id: str, changes, actor_id: str) -> OperationResult:
        changes = _coerce(OrderAmendment, changes)
        async with self._lock(patient_id):
            patient = self.repository.get(patient_id)
            self._ensure_active(patient)
            order = order_ledger.amend(self._find_order(patient, order_id), changes, actor_id, self._clock())
            updated = patient.model_copy(update={"orders": order_ledger.replace(patient.orders, order)})
            self._commit(updated, actor_id, [
                _event(AuditAction.modify, AuditEntity.order, order_id, changes=changes.model_dump(mode="json", exclude_none=True)),
            ])
        return OperationResult(patient=updated, value=order)

    async def transition_order(
        self,
        patient_id: str,
        order_id: str,
        new_status: Union[OrderStatus, str],
        actor_id: str,
        result_summary: Optional[str] = None,
        reason: str = "",
    ) -> OperationResult:
        new_status = OrderStatus(new_status)
        async with self._lock(patient_id):
            patient = self.repository.get(patient_id)
            self._ensure_active(patient)
            current = self._find_order(patient, order_id)
            order = order_ledger.transition(current, new_status, actor_id, self._clock(), result_summary=result_summary)
            updated = patient.model_copy(update={"orders": order_ledger.replace(patient.orders, order)})
            action = AuditAction.cancel if new_status == OrderStatus.cancelled else AuditAction.modify
            payload = {"from": current.status.value, "to": new_status.value}
            if reason:
                payload["reason"] = reason
            self._commit(updated, actor_id, [_event(action, AuditEntity.order, order_id, **payload)])
        return OperationResult(patient=updated, value=order)

    async def cancel_order(self, patient_id: str, order_id: str, actor_id: str, reason: str = "") -> OperationResult:
        return await self.transition_order(patient_id, order_id, OrderStatus.cancelled, actor_id, reason=reason)

    async def accept_suggested_orders(self, patient_id: str, order_ids: Iterable[str], actor_id: str) -> OperationResult:
        """Send the named AI-proposed drafts. Idempotent: non-drafts are skipped."""
        order_ids = list(order_ids)
        async with self._lock(patient_id):
            patient = self.repository.get(patient_id)
            self._ensure_active(patient)
            self._ensure_unlocked(patient)
            new_orders, sent = order_ledger.accept_suggested(patient.orders, order_ids, actor_id, self._clock())
            if not sent:
                return OperationResult(patient=patient, applied=False, value=())
            updated = patient.model_copy(update={"orders": new_orders})
            self._commit(updated, actor_id, [
                _event(AuditAction.accept, AuditEntity.order, o.id,
                       **{"from": "ai_suggestion", "rationale": o.ai_provenance.rationale})
                for o in sent
            ])
        return OperationResult(patient=updated, value=tuple(sent))

    async def send_all_drafts(self, patient_id: str, category: Union[OrderCategory, str], actor_id: str) -> OperationResult:
        """Send every draft in one category; one audit event per order sent."""
        category = OrderCategory(category)
        async with self._lock(patient_id):
            patient = self.repository.get(patient_id)
            self._ensure_active(patient)
            self._ensure_unlocked(patient)
            new_orders, sent = order_ledger.send_all_drafts(patient.orders, category, actor_id, self._clock())
            if not sent:
                return OperationResult(patient=patient, applied=False, value=())
            updated = patient.model_copy(update={"orders": new_orders})
            self._commit(updated, actor_id, [
                _event(AuditAction.accept, AuditEntity.order, o.id, **{"from": "bulk_send_drafts"})
                for o in sent
            ])
        logger.info("📤 Sent %d %s drafts for %s", len(sent), category.value, patient_id)
        return OperationResult(patient=updated, value=tuple(sent))

    # -----------------------------------------------------------------------
    # ROUNDS
    # -----------------------------------------------------------------------

    async def open_round(self, patient_id: str, actor_id: str) -> OperationResult:
        """Get-or-create the patient's single draft round."""
        async with self._lock(patient_id):
            patient = self.repository.get(patient_id)
            self._ensure_active(patient)
            self._ensure_unlocked(patient)
            rounds, draft, created = round_ledger.open_draft(patient.rounds, patient_id, actor_id, self._clock())
            if not created:
                return OperationResult(patient=patient, applied=False, value=draft)
            updated = patient.model_copy(update={"rounds": rounds})
            self._commit(updated, actor_id, [
                _event(AuditAction.create, AuditEntity.round, draft.id, number=draft.number),
            ])
        return OperationResult(patient=updated, value=draft)

    async def update_round(self, patient_id: str, round_id: str, changes, actor_id: str) -> OperationResult:
        changes = _coerce(RoundUpdate, changes)
        async with self._lock(patient_id):
            patient = self.repository.get(patient_id)
            self._ensure_active(patient)
            self._ensure_unlocked(patient)
            rnd = round_ledger.update_draft(self._find_round(patient, round_id), changes)
            updated = patient.model_copy(update={"rounds": round_ledger.replace(patient.rounds, rnd)})
            self._commit(updated, actor_id, [
                _event(AuditAction.modify, AuditEntity.round, round_id,
                       fields=sorted(changes.model_dump(exclude_none=True))),
            ])
        return OperationResult(patient=updated, value=rnd)

    async def precheck_round(self, patient_id: str, round_id: str) -> OperationResult:
        """
        Non-blocking pre-sign-off checks. `value` holds the contradictions;
        `warnings` also carries an advisory note if the advisor was down.
        """
        patient = self.repository.get(patient_id)
        rnd = self._find_round(patient, round_id)
        contradictions = consistency.check_round(patient, rnd)
        degraded = False
        try:
            remote = await self.advisor.cross_check(patient)
            contradictions += [item for item in remote if item not in contradictions]
        except AdvisorUnavailable as e:
            logger.warning("Round cross-check unavailable for %s: %s", round_id, e.message)
            degraded = True

        warnings = tuple(contradictions) + ((AI_CROSS_CHECK_WARNING,) if degraded else ())
        return OperationResult(patient=patient, applied=False, degraded=degraded,
                               warnings=warnings, value=tuple(contradictions))

    async def sign_off_round(self, patient_id: str, round_id: str, actor_id: str, confirm: bool = True) -> OperationResult:
        """
        Sign a draft round. With confirm=True the round is signed whatever the
        pre-check says and the contradictions are recorded as acknowledged;
        with confirm=False the pre-check is only reported.
        """
        check = await self.precheck_round(patient_id, round_id)
        if not confirm:
            return check

        async with self._lock(patient_id):
            patient = self.repository.get(patient_id)
            self._ensure_active(patient)
            self._ensure_unlocked(patient)
            rnd = round_ledger.sign_off(self._find_round(patient, round_id), actor_id, self._clock(), check.value)
            updated = patient.model_copy(update={"rounds": round_ledger.replace(patient.rounds, rnd)})
            self._commit(updated, actor_id, [
                _event(AuditAction.signoff, AuditEntity.round, round_id,
                       acknowledged_contradictions=list(check.value)),
            ])
        return OperationResult(patient=updated, degraded=check.degraded, warnings=check.warnings, value=rnd)

    # -----------------------------------------------------------------------
    # TIMELINE & COMPLAINTS
    # -----------------------------------------------------------------------

    async def update_complaints(self, patient_id: str, complaints: Iterable[Any], actor_id: str) -> OperationResult:
        """Replace the structured complaint list; `complaint` keeps the one-line form."""
        parsed = tuple(_coerce(ChiefComplaint, c) for c in complaints)
        async with self._lock(patient_id):
            patient = self.repository.get(patient_id)
            self._ensure_active(patient)
            text = timeline.complaint_text(parsed)
            if parsed == patient.complaints and text == patient.complaint:
                return OperationResult(patient=patient, applied=False)
            updated = patient.model_copy(update={"complaints": parsed, "complaint": text})
            self._commit(updated, actor_id, [
                _event(AuditAction.modify, AuditEntity.patient_record, patient_id,
                       field="complaints", final_content=text,
                       complaints=[c.model_dump(mode="json") for c in parsed]),
            ])
        return OperationResult(patient=updated)

    async def add_team_note(
        self,
        patient_id: str,
        content: str,
        actor_id: str,
        escalation: bool = False,
    ) -> OperationResult:
        async with self._lock(patient_id):
            patient = self.repository.get(patient_id)
            self._ensure_active(patient)
            note = timeline.new_team_note(patient_id, content, actor_id, self._clock(), escalation=escalation)
            updated = patient.model_copy(update={"timeline": (note,) + patient.timeline})
            self._commit(updated, actor_id, [
                _event(AuditAction.create, AuditEntity.team_note, note.id, escalation=escalation),
            ])
        if escalation:
            logger.warning("🚨 Escalation note on %s by %s", patient_id, actor_id)
        return OperationResult(patient=updated, value=note)

    async def add_checklist(self, patient_id: str, title: str, items: Iterable[str], actor_id: str) -> OperationResult:
        async with self._lock(patient_id):
            patient = self.repository.get(patient_id)
            self._ensure_active(patient)
            checklist = timeline.new_checklist(patient_id, title, items, actor_id, self._clock())
            updated = patient.model_copy(update={"timeline": (checklist,) + patient.timeline})
            self._commit(updated, actor_id, [
                _event(AuditAction.create, AuditEntity.checklist, checklist.id,
                       title=checklist.title, items=len(checklist.items)),
            ])
        return OperationResult(patient=updated, value=checklist)

    async def toggle_checklist_item(self, patient_id: str, checklist_id: str, item_index: int, actor_id: str) -> OperationResult:
        async with self._lock(patient_id):
            patient = self.repository.get(patient_id)
            self._ensure_active(patient)
            checklist = timeline.toggle_item(timeline.find_checklist(patient.timeline, checklist_id), item_index)
            updated = patient.model_copy(update={"timeline": timeline.replace(patient.timeline, checklist)})
            self._commit(updated, actor_id, [
                _event(AuditAction.modify, AuditEntity.checklist, checklist_id,
                       item=item_index, checked=checklist.items[item_index].checked),
            ])
        return OperationResult(patient=updated, value=checklist)

    # -----------------------------------------------------------------------
    # DISCHARGE
    # -----------------------------------------------------------------------

    async def generate_discharge_draft(self, patient_id: str, actor_id: str) -> OperationResult:
        """Advisor-written discharge draft, or a plain compiled one if it is down."""
        patient = self.repository.get(patient_id)
        self._ensure_active(patient)
        warnings: Tuple[str, ...] = ()
        source = "advisor"
        try:
            text = await self.advisor.summarize("discharge", {
                "name": patient.name,
                "record": patient.model_dump(mode="json", include={"clinical_file", "rounds", "orders", "complaint"}),
            })
        except AdvisorUnavailable as e:
            logger.warning("Discharge summary unavailable for %s: %s", patient_id, e.message)
            text = compile_discharge_text(patient)
            warnings = ("AI summary generation failed. A plain draft was compiled from the record.",)
            source = "compiled"

        async with self._lock(patient_id):
            patient = self.repository.get(patient_id)
            self._ensure_active(patient)
            updated = patient.model_copy(update={"discharge": DischargeSummary(draft=text)})
            self._commit(updated, actor_id, [
                _event(AuditAction.create, AuditEntity.discharge_summary, patient_id, source=source),
            ])
        return OperationResult(patient=updated, degraded=bool(warnings), warnings=warnings, value=text)

    async def discharge_patient(self, patient_id: str, actor_id: str, final_text: Optional[str] = None) -> OperationResult:
        """
        Finalize the discharge summary and move the patient to Discharged.
        Open drafts and active orders do not block; they come back as warnings.
        """
        async with self._lock(patient_id):
            patient = self.repository.get(patient_id)
            self._ensure_active(patient)
            text = final_text if final_text is not None else (patient.discharge.draft if patient.discharge else "")
            if not text.strip():
                raise ValidationError("A discharge summary is required before discharge",
                                      code="MISSING_DISCHARGE_SUMMARY")
            moved = self._move(patient, PatientStatus.discharged)

            warnings = []
            draft = round_ledger.current_draft(patient.rounds)
            if draft is not None:
                warnings.append(f"Round {draft.number} was left unsigned.")
            active = [o for o in patient.orders if o.status in ACTIVE_ORDER_STATUSES]
            if active:
                warnings.append(f"{len(active)} order(s) are still active.")

            now = self._clock()
            summary = DischargeSummary(
                draft=patient.discharge.draft if patient.discharge else text,
                finalized=text,
                finalized_by=actor_id,
                finalized_at=now,
            )
            updated = moved.model_copy(update={"discharge": summary})
            self._commit(updated, actor_id, [
                _event(AuditAction.signoff, AuditEntity.discharge_summary, patient_id,
                       **{"from": patient.status.value, "to": updated.status.value}),
            ])
        logger.info("🏁 Patient %s discharged by %s", patient_id, actor_id)
        return OperationResult(patient=updated, warnings=tuple(warnings))
