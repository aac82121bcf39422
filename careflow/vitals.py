"""
vitals.py
=========
Rule-based triage from raw vital signs.

Tiers are evaluated in priority order and short-circuit: once any Red rule
fires the Yellow rules are not consulted. A missing reading is "not
evaluable" for its rule, never zero.
"""

from typing import List

from .models import TriageLevel
from .schemas import Measurements, Triage

STABLE_REASON = "Vitals are stable."

# Lower number = more urgent (same convention as the worklist heap)
TRIAGE_PRIORITY = {
    TriageLevel.red: 0,
    TriageLevel.yellow: 1,
    TriageLevel.green: 2,
    TriageLevel.none: 3,
}


def format_reading(value: float) -> str:
    """88.0 -> '88', 37.5 -> '37.5'."""
    return f"{value:g}"


def evaluate(measurements: Measurements) -> Triage:
    """Map one set of readings to a triage level and its reasons."""
    reasons: List[str] = []
    level = TriageLevel.green

    m = measurements
    if m.spo2 is not None and m.spo2 < 90:
        reasons.append(f"Low SpO2 ({format_reading(m.spo2)}%)")
        level = TriageLevel.red
    if m.bp_sys is not None and m.bp_sys < 90:
        reasons.append(f"Low Systolic BP ({format_reading(m.bp_sys)} mmHg)")
        level = TriageLevel.red

    if level != TriageLevel.red:
        if m.rr is not None and m.rr > 24:
            reasons.append(f"High Respiratory Rate ({format_reading(m.rr)}/min)")
            level = TriageLevel.yellow
        if m.pulse is not None and m.pulse > 120:
            reasons.append(f"High Heart Rate ({format_reading(m.pulse)} bpm)")
            level = TriageLevel.yellow

    if not reasons:
        reasons.append(STABLE_REASON)

    return Triage(level=level, reasons=tuple(reasons))


def triage_priority(level: TriageLevel) -> int:
    return TRIAGE_PRIORITY.get(level, TRIAGE_PRIORITY[TriageLevel.none])
