"""
test_advisor.py
===============
AdvisorInterface over the mock backend and over failing backends.
Tests cover:
 - Complaint classification and its cache
 - Order and history suggestions from the mock rules
 - Timeouts, transport errors and malformed output -> AdvisorUnavailable
 - List fields of the wrong type -> AdvisorUnavailable
"""

import asyncio

import pytest

from careflow.advisor import make_advisor
from careflow.clinical_file import new_clinical_file, update_section
from careflow.exceptions import AdvisorUnavailable
from careflow.mock_advisor import MockAdvisor
from careflow.models import OrderCategory, OrderPriority, TriageLevel

from conftest import FailingBackend, GarbageBackend, MalformedListBackend, SlowBackend


def test_classify_and_cache():
    advisor = make_advisor(MockAdvisor())

    first = asyncio.run(advisor.classify("Crushing chest pain"))
    assert first.department == "Cardiology"
    assert first.suggested_triage == TriageLevel.red
    assert first.from_cache is False

    second = asyncio.run(advisor.classify("  crushing CHEST pain "))
    assert second.from_cache is True
    assert second.department == "Cardiology"


def test_suggest_orders_for_fever_and_cough():
    file = update_section(new_clinical_file("P1", "fever and cough"), "history", {"duration": "2 days"})
    suggestions = asyncio.run(make_advisor(MockAdvisor()).suggest_orders(file.sections))

    labels = [s.sub_type for s in suggestions]
    assert labels == ["CBC", "Paracetamol", "Chest X-ray"]
    assert suggestions[1].category == OrderCategory.medication
    assert suggestions[2].priority == OrderPriority.urgent
    assert all(s.rationale for s in suggestions)


def test_suggest_history_structures_hpi():
    hpi = "Fever and cough for three days with body aches. Allergic to penicillin, gets a rash."
    suggestions = asyncio.run(make_advisor(MockAdvisor()).suggest_history(hpi))

    assert suggestions["chief_complaint"] == "Fever, cough and body aches"
    assert suggestions["duration"] == "3 days"
    assert suggestions["allergy_history"][0]["substance"] == "Penicillin"


def test_summarize_kinds():
    advisor = make_advisor(MockAdvisor())
    text = asyncio.run(advisor.summarize("clinical_file", {"history": {"chief_complaint": "fever", "duration": "2 days"}}))
    assert text == "Patient presents with fever for 2 days."


@pytest.mark.parametrize("backend", [FailingBackend(), GarbageBackend()])
def test_backend_failures_become_unavailable(backend):
    advisor = make_advisor(backend)
    with pytest.raises(AdvisorUnavailable) as exc:
        asyncio.run(advisor.classify("fever"))
    assert exc.value.type == "warning"


def test_timeout_becomes_unavailable():
    advisor = make_advisor(SlowBackend(), timeout=0.05)
    with pytest.raises(AdvisorUnavailable) as exc:
        asyncio.run(advisor.summarize("vitals", []))
    assert "timed out" in exc.value.message


def test_failed_classification_is_not_cached():
    backend = FailingBackend()
    advisor = make_advisor(backend)
    for _ in range(2):
        with pytest.raises(AdvisorUnavailable):
            asyncio.run(advisor.classify("fever"))
    assert backend.calls == ["classify", "classify"]


def test_non_list_replies_become_unavailable(make_patient):
    advisor = make_advisor(MalformedListBackend())
    sections = new_clinical_file("P1", "fever").sections

    with pytest.raises(AdvisorUnavailable) as exc:
        asyncio.run(advisor.suggest_orders(sections))
    assert "expected a list" in exc.value.message
    assert exc.value.detail == {"role": "suggest_orders"}

    with pytest.raises(AdvisorUnavailable):
        asyncio.run(advisor.cross_check(make_patient()))
