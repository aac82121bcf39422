"""
test_audit.py
=============
Append-only audit trail.
Tests cover:
 - Gap-free per-patient sequence numbers
 - Fan-out to callable and emit() sinks
 - A failing sink never undoes the recorded event
 - Later changes to a caller payload never reach a recorded event
"""

from careflow.audit import AuditTrail
from careflow.models import AuditAction, AuditEntity

from conftest import NOW


def test_sequence_is_per_patient_and_gap_free():
    trail = AuditTrail(clock=lambda: NOW)
    trail.record("dr-house", "P1", AuditAction.create, AuditEntity.patient_record, "P1")
    trail.record("dr-house", "P2", AuditAction.create, AuditEntity.patient_record, "P2")
    trail.record("nurse-1", "P1", AuditAction.create, AuditEntity.vitals, "VIT-1", {"triage": "Red"})

    assert [e.sequence for e in trail.events("P1")] == [1, 2]
    assert [e.sequence for e in trail.events("P2")] == [1]
    assert trail.events("P1")[1].payload == {"triage": "Red"}
    assert trail.events("P1")[0].timestamp == NOW
    assert len(trail) == 3
    assert trail.events("unknown") == ()


def test_events_are_forwarded_to_sinks():
    received = []

    class Collector:
        def __init__(self):
            self.events = []

        def emit(self, event):
            self.events.append(event)

    collector = Collector()
    trail = AuditTrail(sinks=[received.append])
    trail.add_sink(collector)
    event = trail.record("dr-house", "P1", AuditAction.signoff, AuditEntity.clinical_file, "CF-P1")

    assert received == [event]
    assert collector.events == [event]


def test_failing_sink_is_isolated():
    def broken(event):
        raise RuntimeError("sink down")

    later = []
    trail = AuditTrail(sinks=[broken, later.append])
    event = trail.record("dr-house", "P1", AuditAction.create, AuditEntity.order, "ORD-1")

    assert trail.events("P1") == (event,)
    assert later == [event]


def test_recorded_payload_is_a_private_copy():
    symptoms = ["cough"]
    payload = {"changes": {"associated_symptoms": symptoms}}
    trail = AuditTrail(clock=lambda: NOW)
    trail.record("dr-house", "P1", AuditAction.modify, AuditEntity.history_section, "CF-P1", payload)

    symptoms.append("INJECTED")
    payload["extra"] = True

    assert trail.events("P1")[0].payload == {"changes": {"associated_symptoms": ["cough"]}}
