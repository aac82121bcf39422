"""
test_vitals.py
==============
Rule-based triage from vital signs.
Tests cover:
 - Red rules (SpO2, systolic BP) and their short-circuit over Yellow
 - Yellow rules (respiratory rate, heart rate)
 - Missing readings and the stable fallback
 - Reading formatting and triage priority
"""

import pydantic
import pytest

from careflow.models import TriageLevel
from careflow.schemas import Measurements
from careflow.vitals import STABLE_REASON, evaluate, format_reading, triage_priority


def test_low_spo2_is_red_regardless_of_heart_rate():
    triage = evaluate(Measurements(spo2=88, pulse=130))
    assert triage.level == TriageLevel.red
    assert triage.reasons == ("Low SpO2 (88%)",)


def test_both_red_rules_can_fire():
    triage = evaluate(Measurements(spo2=85, bp_sys=80))
    assert triage.level == TriageLevel.red
    assert triage.reasons == ("Low SpO2 (85%)", "Low Systolic BP (80 mmHg)")


def test_high_heart_rate_is_yellow_never_red():
    triage = evaluate(Measurements(pulse=130, spo2=97, bp_sys=120))
    assert triage.level == TriageLevel.yellow
    assert triage.reasons == ("High Heart Rate (130 bpm)",)


def test_yellow_rules_accumulate_reasons():
    triage = evaluate(Measurements(rr=30, pulse=125))
    assert triage.level == TriageLevel.yellow
    assert triage.reasons == ("High Respiratory Rate (30/min)", "High Heart Rate (125 bpm)")


def test_thresholds_are_strict():
    triage = evaluate(Measurements(spo2=90, bp_sys=90, rr=24, pulse=120))
    assert triage.level == TriageLevel.green
    assert triage.reasons == (STABLE_REASON,)


def test_missing_readings_are_not_evaluated_as_zero():
    triage = evaluate(Measurements(pulse=80))
    assert triage.level == TriageLevel.green

    empty = evaluate(Measurements())
    assert empty.level == TriageLevel.green
    assert empty.reasons == (STABLE_REASON,)


def test_out_of_range_readings_are_rejected():
    with pytest.raises(pydantic.ValidationError):
        Measurements(spo2=120)
    with pytest.raises(pydantic.ValidationError):
        Measurements(pulse=-1)
    with pytest.raises(pydantic.ValidationError):
        Measurements(heart_rate=80)


def test_format_reading_drops_trailing_zero():
    assert format_reading(88.0) == "88"
    assert format_reading(37.5) == "37.5"


def test_triage_priority_orders_red_first():
    levels = [TriageLevel.none, TriageLevel.green, TriageLevel.red, TriageLevel.yellow]
    assert sorted(levels, key=triage_priority) == [
        TriageLevel.red, TriageLevel.yellow, TriageLevel.green, TriageLevel.none,
    ]
