"""
test_workflow.py
================
End-to-end patient workflows through PatientWorkflow.
Tests cover:
 - Registration, vitals-driven triage and status transitions
 - Clinical file edits, AI proposals and sign-off
 - The orders/rounds gate, AI-seeded orders, bulk send
 - Round pre-check and confirmed sign-off
 - Discharge and the terminal Discharged state
 - Advisor failures, off-schema replies and late advisor results
 - Team notes, checklists and structured complaints
 - Audit ordering under concurrent writes
 - Worklist and board views
"""

import asyncio

import pytest

from careflow.advisor import make_advisor
from careflow.exceptions import (
    AlreadySigned, EntityNotFound, FileNotSigned, IllegalTransition,
    PreconditionNotMet, ValidationError,
)
from careflow.models import (
    AuditAction, AuditEntity, OrderStatus, PatientStatus, RoundStatus,
    SectionKey, TriageLevel,
)
from careflow.workflow import (
    AI_CROSS_CHECK_WARNING, AI_ORDERS_WARNING, STALE_SUGGESTION_WARNING, PatientWorkflow,
)

from conftest import GatedBackend, MalformedListBackend, register_and_sign


def run(coro):
    return asyncio.run(coro)


def _register(workflow, complaint="fever", name="John Doe"):
    return run(workflow.register_patient({"name": name, "age": 45, "complaint": complaint}, "reception-1"))


# --------------------------------------------------------------------------
# REGISTRATION & VITALS
# --------------------------------------------------------------------------

def test_register_patient(workflow):
    result = _register(workflow)
    patient = result.patient

    assert result.applied and not result.degraded
    assert patient.status == PatientStatus.waiting_for_triage
    assert patient.triage.level == TriageLevel.none
    assert patient.ai_triage.department == "General Medicine"
    assert patient.clinical_file.sections.history.chief_complaint == "fever"
    assert workflow.get_patient(patient.id) == patient

    events = workflow.audit_events(patient.id)
    assert [(e.action, e.entity) for e in events] == [(AuditAction.create, AuditEntity.patient_record)]
    assert events[0].actor_id == "reception-1"


def test_invalid_registration_is_rejected(workflow):
    with pytest.raises(ValidationError):
        run(workflow.register_patient({"name": "", "complaint": "fever"}, "reception-1"))
    assert workflow.list_patients() == []


def test_vitals_triage_and_first_transition(workflow):
    pid = _register(workflow).patient.id

    result = run(workflow.record_vitals(pid, {"spo2": 88, "pulse": 130}, "nurse-1"))
    patient = result.patient
    assert patient.triage.level == TriageLevel.red
    assert "Low SpO2 (88%)" in patient.triage.reasons
    assert patient.status == PatientStatus.waiting_for_doctor
    assert result.value.recorded_by == "nurse-1"

    second = run(workflow.record_vitals(pid, {"spo2": 97, "pulse": 90}, "nurse-1")).patient
    assert second.triage.level == TriageLevel.green
    assert second.status == PatientStatus.waiting_for_doctor
    assert len(second.vitals_history) == 2
    assert second.vitals_history[0].measurements.spo2 == 97  # newest first


def test_unknown_patient(workflow):
    with pytest.raises(EntityNotFound):
        run(workflow.record_vitals("PAT-missing", {"pulse": 80}, "nurse-1"))


def test_start_treatment_needs_doctor_queue(workflow):
    pid = _register(workflow).patient.id
    with pytest.raises(IllegalTransition):
        run(workflow.start_treatment(pid, "dr-house"))

    run(workflow.record_vitals(pid, {"pulse": 80}, "nurse-1"))
    patient = run(workflow.start_treatment(pid, "dr-house")).patient
    assert patient.status == PatientStatus.in_treatment

    last = workflow.audit_events(pid)[-1]
    assert last.payload == {"from": "Waiting for Doctor", "to": "In Treatment"}


# --------------------------------------------------------------------------
# CLINICAL FILE
# --------------------------------------------------------------------------

def test_order_on_draft_file_is_blocked(workflow):
    pid = _register(workflow).patient.id
    before = len(workflow.audit_events(pid))

    with pytest.raises(PreconditionNotMet):
        run(workflow.create_order(pid, {"category": "investigation", "sub_type": "CBC"}, "dr-house"))

    assert workflow.get_patient(pid).orders == ()
    assert len(workflow.audit_events(pid)) == before
    assert workflow.is_unlocked(pid) is False


def test_section_update_is_audited(workflow):
    pid = _register(workflow).patient.id
    result = run(workflow.update_clinical_section(pid, "history", {"duration": "3 days"}, "dr-house"))

    assert result.patient.clinical_file.sections.history.duration == "3 days"
    last = workflow.audit_events(pid)[-1]
    assert last.action == AuditAction.modify
    assert last.entity == AuditEntity.history_section
    assert last.payload["changes"] == {"duration": "3 days"}


def test_edit_after_sign_off_is_a_noop(workflow):
    pid = _register(workflow, complaint="headache").patient.id
    run(workflow.sign_off_clinical_file(pid, "dr-house"))
    before = workflow.get_patient(pid)
    events_before = len(workflow.audit_events(pid))

    result = run(workflow.update_clinical_section(pid, "history", {"duration": "2 days"}, "dr-house"))

    assert result.applied is False
    assert result.warnings
    assert workflow.get_patient(pid) == before
    assert len(workflow.audit_events(pid)) == events_before


def test_double_sign_off(workflow):
    pid = _register(workflow, complaint="headache").patient.id
    first = run(workflow.sign_off_clinical_file(pid, "dr-house")).patient.clinical_file

    with pytest.raises(AlreadySigned):
        run(workflow.sign_off_clinical_file(pid, "dr-wilson"))

    file = workflow.get_patient(pid).clinical_file
    assert file.signed_at == first.signed_at
    assert file.signed_by == "dr-house"


def test_history_suggestions_accept_and_clear(workflow):
    pid = _register(workflow).patient.id
    hpi = "Fever and cough for three days with body aches. Allergic to penicillin, gets a rash."
    run(workflow.update_clinical_section(pid, "history", {"hpi": hpi}, "dr-house"))

    result = run(workflow.request_history_suggestions(pid, "dr-house"))
    pending = result.patient.clinical_file.pending_suggestions[SectionKey.history]
    assert pending["duration"] == "3 days"
    # nothing is applied until a clinician accepts it
    assert result.patient.clinical_file.sections.history.duration == ""

    accepted = run(workflow.accept_suggestion(pid, "duration", "dr-house")).patient
    assert accepted.clinical_file.sections.history.duration == "3 days"
    assert "duration" not in accepted.clinical_file.pending_suggestions[SectionKey.history]
    accept_event = workflow.audit_events(pid)[-1]
    assert accept_event.action == AuditAction.accept
    assert accept_event.payload["field"] == "duration"

    cleared = run(workflow.clear_suggestions(pid, "history", "dr-house")).patient
    assert cleared.clinical_file.pending_suggestions == {}
    assert workflow.audit_events(pid)[-1].action == AuditAction.reject


def test_history_suggestions_need_hpi(workflow):
    pid = _register(workflow).patient.id
    result = run(workflow.request_history_suggestions(pid, "dr-house"))
    assert result.applied is False
    assert result.warnings


def test_late_suggestions_are_discarded_after_sign_off():
    async def scenario():
        backend = GatedBackend()
        workflow = PatientWorkflow(advisor=make_advisor(backend))
        pid = (await workflow.register_patient({"name": "Jane", "complaint": "fever"}, "reception-1")).patient.id
        await workflow.update_clinical_section(pid, "history", {"hpi": "fever for three days"}, "dr-house")

        pending = asyncio.create_task(workflow.request_history_suggestions(pid, "dr-house"))
        for _ in range(5):
            await asyncio.sleep(0)
        await workflow.sign_off_clinical_file(pid, "dr-house")
        backend.gate.set()
        return workflow, pid, await pending

    workflow, pid, result = run(scenario())

    assert result.applied is False
    assert result.warnings == (STALE_SUGGESTION_WARNING,)
    file = workflow.get_patient(pid).clinical_file
    assert file.is_signed
    assert file.pending_suggestions == {}


def test_missing_info_and_cross_check(workflow):
    pid = _register(workflow).patient.id
    missing = run(workflow.check_missing_info(pid, "history", "dr-house"))
    assert "Allergies are not documented." in missing.value
    assert missing.patient.clinical_file.missing_info == tuple(missing.value)

    run(workflow.update_clinical_section(pid, "general_exam", {"vitals": {"temp_c": 36.8}}, "dr-house"))
    checked = run(workflow.cross_check_file(pid, "dr-house"))
    assert "History mentions 'fever', but current temperature in GPE is normal. Please verify." in checked.value
    assert checked.patient.clinical_file.cross_check_inconsistencies == tuple(checked.value)


def test_summaries(workflow):
    pid = _register(workflow).patient.id
    run(workflow.update_clinical_section(pid, "history", {"duration": "2 days"}, "dr-house"))

    summary = run(workflow.summarize_clinical_file(pid, "dr-house"))
    assert summary.value == "Patient presents with fever for 2 days."
    assert summary.patient.clinical_file.ai_summary == summary.value

    assert run(workflow.summarize_vitals(pid)).value == "Not enough data for a summary."
    run(workflow.record_vitals(pid, {"pulse": 80}, "nurse-1"))
    run(workflow.record_vitals(pid, {"pulse": 84}, "nurse-1"))
    assert run(workflow.summarize_vitals(pid)).value == "2 vitals readings reviewed (mock)."


# --------------------------------------------------------------------------
# ORDERS
# --------------------------------------------------------------------------

def test_sign_off_seeds_ai_draft_orders(workflow):
    pid = _register(workflow, complaint="fever and cough").patient.id
    result = run(workflow.sign_off_clinical_file(pid, "dr-house"))

    seeded = result.value
    assert [o.sub_type for o in seeded] == ["CBC", "Paracetamol", "Chest X-ray"]
    assert all(o.status == OrderStatus.draft and o.ai_provenance for o in seeded)
    assert workflow.is_unlocked(pid)

    events = workflow.audit_events(pid)
    assert [(e.action, e.entity) for e in events] == [
        (AuditAction.create, AuditEntity.patient_record),
        (AuditAction.signoff, AuditEntity.clinical_file),
        (AuditAction.create, AuditEntity.order),
        (AuditAction.create, AuditEntity.order),
        (AuditAction.create, AuditEntity.order),
    ]


def test_accept_suggested_orders_twice(workflow):
    pid = _register(workflow, complaint="fever").patient.id
    seeded = run(workflow.sign_off_clinical_file(pid, "dr-house")).value
    cbc = seeded[0]

    first = run(workflow.accept_suggested_orders(pid, [cbc.id], "dr-house"))
    assert [o.id for o in first.value] == [cbc.id]
    assert first.patient.find_order(cbc.id).status == OrderStatus.sent

    second = run(workflow.accept_suggested_orders(pid, [cbc.id], "dr-house"))
    assert second.applied is False
    accepts = [e for e in workflow.audit_events(pid) if e.action == AuditAction.accept]
    assert len(accepts) == 1
    assert accepts[0].payload["from"] == "ai_suggestion"


def test_send_all_drafts_by_category(workflow):
    pid = run(register_and_sign(workflow, complaint="headache"))
    for name in ("Paracetamol", "Ondansetron", "Pantoprazole"):
        run(workflow.create_order(pid, {"category": "medication", "sub_type": name}, "dr-house"))
    for name in ("CBC", "LFT"):
        run(workflow.create_order(pid, {"category": "investigation", "sub_type": name}, "dr-house"))

    result = run(workflow.send_all_drafts(pid, "medication", "dr-house"))

    assert len(result.value) == 3
    statuses = [(o.category.value, o.status) for o in result.patient.orders]
    assert statuses.count(("medication", OrderStatus.sent)) == 3
    assert statuses.count(("investigation", OrderStatus.draft)) == 2
    accepts = [e for e in workflow.audit_events(pid) if e.action == AuditAction.accept]
    assert len(accepts) == 3
    assert all(e.payload == {"from": "bulk_send_drafts"} for e in accepts)

    again = run(workflow.send_all_drafts(pid, "medication", "dr-house"))
    assert again.applied is False


def test_order_lifecycle_through_workflow(workflow):
    pid = run(register_and_sign(workflow))
    order = run(workflow.create_order(pid, {"category": "radiology", "sub_type": "CT head"}, "dr-house")).value
    run(workflow.amend_order(pid, order.id, {"priority": "STAT"}, "dr-house"))
    run(workflow.transition_order(pid, order.id, "sent", "dr-house"))

    with pytest.raises(IllegalTransition):
        run(workflow.transition_order(pid, order.id, "completed", "radiology-1"))

    cancelled = run(workflow.cancel_order(pid, order.id, "dr-house", reason="Duplicate")).value
    assert cancelled.status == OrderStatus.cancelled
    last = workflow.audit_events(pid)[-1]
    assert last.action == AuditAction.cancel
    assert last.payload == {"from": "sent", "to": "cancelled", "reason": "Duplicate"}

    with pytest.raises(EntityNotFound):
        run(workflow.cancel_order(pid, "ORD-missing", "dr-house"))


# --------------------------------------------------------------------------
# ROUNDS
# --------------------------------------------------------------------------

def test_rounds_are_gated_and_single_draft(workflow):
    pid = _register(workflow, complaint="headache").patient.id
    with pytest.raises(FileNotSigned):
        run(workflow.open_round(pid, "dr-house"))

    run(workflow.sign_off_clinical_file(pid, "dr-house"))
    opened = run(workflow.open_round(pid, "dr-house"))
    again = run(workflow.open_round(pid, "dr-wilson"))

    assert opened.applied and not again.applied
    assert again.value.id == opened.value.id == f"RND-{pid}-1"
    drafts = [r for r in workflow.get_patient(pid).rounds if r.status == RoundStatus.draft]
    assert len(drafts) == 1


def test_round_precheck_and_confirmed_sign_off(workflow):
    pid = _register(workflow, complaint="headache").patient.id
    run(workflow.record_vitals(pid, {"temp_c": 38.6}, "nurse-1"))
    run(workflow.sign_off_clinical_file(pid, "dr-house"))
    rnd = run(workflow.open_round(pid, "dr-house")).value
    run(workflow.update_round(pid, rnd.id, {
        "objective": "Afebrile", "assessment": "Viral fever", "plan": "Oral fluids",
    }, "dr-house"))

    expected = "Round notes say 'afebrile' but the latest temperature is 38.6°C."
    report = run(workflow.sign_off_round(pid, rnd.id, "dr-house", confirm=False))
    assert report.applied is False
    assert expected in report.warnings
    assert workflow.get_patient(pid).find_round(rnd.id).status == RoundStatus.draft

    signed = run(workflow.sign_off_round(pid, rnd.id, "dr-house", confirm=True))
    final = signed.value
    assert final.status == RoundStatus.signed
    assert final.acknowledged_warnings == (expected,)
    assert workflow.audit_events(pid)[-1].action == AuditAction.signoff

    with pytest.raises(IllegalTransition):
        run(workflow.update_round(pid, rnd.id, {"plan": "late"}, "dr-house"))


# --------------------------------------------------------------------------
# DISCHARGE
# --------------------------------------------------------------------------

def test_discharge_is_terminal(workflow):
    pid = _register(workflow).patient.id
    with pytest.raises(IllegalTransition):
        run(workflow.discharge_patient(pid, "dr-house", final_text="Sent home."))

    run(workflow.record_vitals(pid, {"pulse": 80}, "nurse-1"))
    with pytest.raises(ValidationError):
        run(workflow.discharge_patient(pid, "dr-house"))

    draft = run(workflow.generate_discharge_draft(pid, "dr-house"))
    assert draft.value == "Discharge summary for John Doe (mock)."

    result = run(workflow.discharge_patient(pid, "dr-house"))
    patient = result.patient
    assert patient.status == PatientStatus.discharged
    assert patient.discharge.finalized == draft.value
    assert patient.discharge.finalized_by == "dr-house"

    with pytest.raises(IllegalTransition):
        run(workflow.record_vitals(pid, {"pulse": 70}, "nurse-1"))
    with pytest.raises(IllegalTransition):
        run(workflow.update_clinical_section(pid, "history", {"duration": "1 day"}, "dr-house"))


def test_discharge_reports_open_work(workflow):
    pid = run(register_and_sign(workflow))
    run(workflow.create_order(pid, {"category": "nursing", "sub_type": "Dressing"}, "dr-house"))
    run(workflow.open_round(pid, "dr-house"))

    result = run(workflow.discharge_patient(pid, "dr-house", final_text="Stable, discharged home."))
    assert result.patient.status == PatientStatus.discharged
    assert result.warnings == ("Round 1 was left unsigned.", "1 order(s) are still active.")


# --------------------------------------------------------------------------
# ADVISOR FAILURE
# --------------------------------------------------------------------------

def test_workflow_survives_advisor_outage(offline_workflow):
    registered = _register(offline_workflow)
    assert registered.degraded
    assert registered.patient.ai_triage.department == "Unknown"
    pid = registered.patient.id

    signed = run(offline_workflow.sign_off_clinical_file(pid, "dr-house"))
    assert signed.degraded
    assert signed.patient.clinical_file.is_signed
    assert signed.patient.orders == ()

    run(offline_workflow.record_vitals(pid, {"pulse": 80}, "nurse-1"))
    draft = run(offline_workflow.generate_discharge_draft(pid, "dr-house"))
    assert draft.degraded
    assert draft.value.startswith("Patient: John Doe (45)")


# --------------------------------------------------------------------------
# AUDIT, WORKLIST, BOARD
# --------------------------------------------------------------------------

def test_concurrent_vitals_keep_audit_gap_free(workflow):
    pid = _register(workflow).patient.id

    async def burst():
        await asyncio.gather(*[
            workflow.record_vitals(pid, {"pulse": 70 + i}, "nurse-1") for i in range(10)
        ])

    run(burst())

    assert len(workflow.get_patient(pid).vitals_history) == 10
    assert [e.sequence for e in workflow.audit_events(pid)] == list(range(1, 12))


def test_worklist_orders_by_triage_then_arrival(workflow):
    green = _register(workflow, name="Green").patient.id
    red = _register(workflow, name="Red").patient.id
    waiting = _register(workflow, name="Untriaged").patient.id
    yellow = _register(workflow, name="Yellow").patient.id
    gone = _register(workflow, name="Gone").patient.id

    run(workflow.record_vitals(green, {"pulse": 80}, "nurse-1"))
    run(workflow.record_vitals(red, {"spo2": 85}, "nurse-1"))
    run(workflow.record_vitals(yellow, {"pulse": 130}, "nurse-1"))
    run(workflow.record_vitals(gone, {"spo2": 80}, "nurse-1"))
    run(workflow.discharge_patient(gone, "dr-house", final_text="Transferred."))

    assert [p.id for p in workflow.worklist()] == [red, yellow, green, waiting]
    assert len(workflow.worklist(include_discharged=True)) == 5

    board = workflow.board()
    assert [p.id for p in board[PatientStatus.waiting_for_triage]] == [waiting]
    assert [p.id for p in board[PatientStatus.discharged]] == [gone]
    assert len(board[PatientStatus.waiting_for_doctor]) == 3


# --------------------------------------------------------------------------
# OFF-SCHEMA ADVISOR REPLIES & CALLER DATA
# --------------------------------------------------------------------------

def test_off_schema_order_reply_degrades_sign_off():
    workflow = PatientWorkflow(advisor=make_advisor(MalformedListBackend()))
    pid = _register(workflow, complaint="fever and cough").patient.id

    result = run(workflow.sign_off_clinical_file(pid, "dr-house"))

    assert result.degraded
    assert result.warnings == (AI_ORDERS_WARNING,)
    assert result.patient.clinical_file.is_signed
    assert result.patient.orders == ()


def test_off_schema_cross_check_still_signs_round():
    workflow = PatientWorkflow(advisor=make_advisor(MalformedListBackend()))
    pid = run(register_and_sign(workflow))
    rnd = run(workflow.open_round(pid, "dr-house")).value

    result = run(workflow.sign_off_round(pid, rnd.id, "dr-house", confirm=True))

    assert result.degraded
    assert AI_CROSS_CHECK_WARNING in result.warnings
    assert result.value.status == RoundStatus.signed


def test_parked_suggestion_does_not_follow_caller_changes(workflow):
    pid = _register(workflow).patient.id
    symptoms = ["cough"]
    run(workflow.record_advisor_suggestion(pid, "history", {"associated_symptoms": symptoms}, "dr-house"))

    symptoms.append("INJECTED")

    pending = workflow.get_patient(pid).clinical_file.pending_suggestions[SectionKey.history]
    assert list(pending["associated_symptoms"]) == ["cough"]
    event = workflow.audit_events(pid)[-1]
    assert event.payload["ai_suggestion"] == {"associated_symptoms": ["cough"]}


def test_second_discharge_is_illegal_even_without_text(workflow):
    pid = _register(workflow).patient.id
    run(workflow.record_vitals(pid, {"pulse": 80}, "nurse-1"))
    run(workflow.discharge_patient(pid, "dr-house", final_text="Sent home."))

    with pytest.raises(IllegalTransition):
        run(workflow.discharge_patient(pid, "dr-house", final_text=""))


# --------------------------------------------------------------------------
# TIMELINE & COMPLAINTS
# --------------------------------------------------------------------------

def test_team_notes_are_newest_first(workflow):
    pid = _register(workflow).patient.id
    run(workflow.add_team_note(pid, "Patient anxious overnight.", "intern-1"))
    result = run(workflow.add_team_note(pid, "New rash on the back.", "intern-1", escalation=True))

    note = result.value
    assert note.is_escalation and note.author_id == "intern-1"
    assert [e.content for e in result.patient.timeline] == ["New rash on the back.", "Patient anxious overnight."]

    last = workflow.audit_events(pid)[-1]
    assert (last.action, last.entity, last.entity_id) == (AuditAction.create, AuditEntity.team_note, note.id)
    assert last.payload == {"escalation": True}

    with pytest.raises(ValidationError):
        run(workflow.add_team_note(pid, "   ", "intern-1"))


def test_checklist_toggle_round_trip(workflow):
    pid = _register(workflow).patient.id
    checklist = run(workflow.add_checklist(pid, "Pre-op", ["Consent signed", "NPO since midnight"], "dr-house")).value
    assert [i.checked for i in checklist.items] == [False, False]

    ticked = run(workflow.toggle_checklist_item(pid, checklist.id, 1, "nurse-1")).value
    assert [i.checked for i in ticked.items] == [False, True]
    last = workflow.audit_events(pid)[-1]
    assert (last.action, last.entity) == (AuditAction.modify, AuditEntity.checklist)
    assert last.payload == {"item": 1, "checked": True}

    unticked = run(workflow.toggle_checklist_item(pid, checklist.id, 1, "nurse-1")).value
    assert unticked.items[1].checked is False
    assert workflow.get_patient(pid).timeline == (unticked,)

    events_before = len(workflow.audit_events(pid))
    with pytest.raises(ValidationError):
        run(workflow.toggle_checklist_item(pid, checklist.id, 5, "nurse-1"))
    with pytest.raises(EntityNotFound):
        run(workflow.toggle_checklist_item(pid, "CHK-missing", 0, "nurse-1"))
    assert len(workflow.audit_events(pid)) == events_before


def test_structured_complaints(workflow):
    registered = run(workflow.register_patient({
        "name": "Jane Doe",
        "complaints": [{"complaint": "Fever", "duration_value": 3, "duration_unit": "days"}],
    }, "reception-1")).patient
    assert registered.complaint == "Fever for 3 days"
    assert registered.clinical_file.sections.history.chief_complaint == "Fever for 3 days"

    result = run(workflow.update_complaints(registered.id, [
        {"complaint": "Fever", "duration_value": 3, "duration_unit": "days"},
        {"complaint": "Cough", "duration_value": 1, "duration_unit": "weeks"},
    ], "dr-house"))
    assert result.patient.complaint == "Fever for 3 days; Cough for 1 week"
    assert len(result.patient.complaints) == 2

    last = workflow.audit_events(registered.id)[-1]
    assert (last.action, last.entity) == (AuditAction.modify, AuditEntity.patient_record)
    assert last.payload["field"] == "complaints"

    again = run(workflow.update_complaints(registered.id, result.patient.complaints, "dr-house"))
    assert again.applied is False

    with pytest.raises(ValidationError):
        run(workflow.update_complaints(registered.id, [{"complaint": "", "duration_value": 1}], "dr-house"))


def test_timeline_is_closed_after_discharge(workflow):
    pid = _register(workflow).patient.id
    run(workflow.record_vitals(pid, {"pulse": 80}, "nurse-1"))
    run(workflow.discharge_patient(pid, "dr-house", final_text="Sent home."))

    with pytest.raises(IllegalTransition):
        run(workflow.add_team_note(pid, "Late note", "intern-1"))
    with pytest.raises(IllegalTransition):
        run(workflow.add_checklist(pid, "Follow-up", ["Book clinic"], "dr-house"))
