"""
conftest.py
===========
Shared fixtures for the careflow test-suite:
 - workflows wired to the deterministic MockAdvisor
 - advisor backends that fail, hang, reply off-schema or wait on a gate
 - a temporary SQLite database for the persistence mirror
"""

import sys, os
# Ensure the careflow package is discoverable when running from /tests
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import asyncio
import datetime
import json

import pytest

from careflow.advisor import make_advisor
from careflow.clinical_file import new_clinical_file, sign_off
from careflow.db import init_db, make_engine, make_session_factory
from careflow.mock_advisor import MockAdvisor
from careflow.schemas import Measurements, Patient
from careflow.workflow import PatientWorkflow

NOW = datetime.datetime(2024, 5, 1, 9, 30, tzinfo=datetime.timezone.utc)


# --------------------------------------------------------------------------
# ADVISOR BACKENDS
# --------------------------------------------------------------------------

class FailingBackend:
    """Every call raises, like an unreachable model endpoint."""

    def __init__(self):
        self.calls = []

    async def send(self, role, prompt):
        self.calls.append(role)
        raise ConnectionError("advisor offline")


class SlowBackend:
    """Never answers within a reasonable timeout."""

    async def send(self, role, prompt):
        await asyncio.sleep(5)
        return "{}"


class GarbageBackend:
    """Answers with something that is not JSON."""

    async def send(self, role, prompt):
        return "Sure! Here are my thoughts..."


class MalformedListBackend:
    """
    MockAdvisor answers, except that the list-valued replies come back as a
    bare number, as a confused model sometimes does.
    """

    def __init__(self):
        self.mock = MockAdvisor()

    async def send(self, role, prompt):
        if role == "suggest_orders":
            return json.dumps({"suggested_orders": 5})
        if role == "cross_check":
            return json.dumps({"inconsistencies": 5})
        return await self.mock.send(role, prompt)


class GatedBackend:
    """
    MockAdvisor answers, except that history suggestions wait until
    `gate` is set. Must be built inside a running event loop.
    """

    def __init__(self):
        self.gate = asyncio.Event()
        self.mock = MockAdvisor()

    async def send(self, role, prompt):
        if role == "suggest_history":
            await self.gate.wait()
        return await self.mock.send(role, prompt)


# --------------------------------------------------------------------------
# FIXTURES
# --------------------------------------------------------------------------

@pytest.fixture
def workflow():
    """In-memory workflow backed by the mock advisor."""
    return PatientWorkflow(advisor=make_advisor(MockAdvisor()))


@pytest.fixture
def offline_workflow():
    """Workflow whose advisor always fails."""
    return PatientWorkflow(advisor=make_advisor(FailingBackend()))


@pytest.fixture
def session_factory(tmp_path):
    """Fresh SQLite database in a temp dir, tables created."""
    engine = make_engine(str(tmp_path / "careflow-test.db"))
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def signed_file():
    return sign_off(new_clinical_file("P1", "fever"), "dr-house", NOW)


@pytest.fixture
def make_patient():
    """Builds a bare Patient snapshot for rule tests."""
    def _make(clinical_file=None, vitals=None, **fields):
        return Patient(
            id=fields.pop("id", "P1"),
            name=fields.pop("name", "Test Patient"),
            registered_at=NOW,
            clinical_file=clinical_file or new_clinical_file("P1", "fever"),
            vitals=Measurements(**vitals) if vitals else None,
            **fields,
        )
    return _make


async def register_and_sign(workflow, complaint="headache", name="Jane Doe", actor="dr-house"):
    """Register a patient, record vitals and sign the clinical file."""
    result = await workflow.register_patient({"name": name, "complaint": complaint}, actor)
    pid = result.patient.id
    await workflow.record_vitals(pid, {"pulse": 80, "spo2": 98}, "nurse-1")
    await workflow.sign_off_clinical_file(pid, actor)
    return pid
