"""
mock_advisor.py
===============
A deterministic advisor backend for local use and tests (no API calls).
Each role returns JSON built from simple keyword rules so results are
predictable.
"""

import asyncio
import json


def _payload(prompt: str):
    """Prompts are '<instruction>\\n<json>'. Returns the decoded JSON part."""
    _, _, body = prompt.partition("\n")
    try:
        return json.loads(body)
    except ValueError:
        return body


def _has(text: str, *words) -> bool:
    return any(w in text for w in words)


class MockAdvisor:
    """
    A mock version of the AI advisor.
    `delay` simulates thinking time in seconds.
    """

    def __init__(self, delay: float = 0.0):
        self.delay = delay

    async def send(self, role: str, prompt: str) -> str:
        if self.delay:
            await asyncio.sleep(self.delay)

        payload = _payload(prompt)
        handler = getattr(self, f"_{role}", None)
        if handler is None:
            return json.dumps({"message": f"Mock response from {role}"})
        return json.dumps(handler(payload))

    # -- roles -------------------------------------------------------------

    def _classify(self, payload):
        text = str(payload.get("complaint", "") if isinstance(payload, dict) else payload).lower()
        if _has(text, "bleeding", "unconscious"):
            return {"department": "Emergency", "suggested_triage": "Red", "confidence": 0.9}
        if _has(text, "chest pain", "palpitation"):
            return {"department": "Cardiology", "suggested_triage": "Red", "confidence": 0.85}
        if _has(text, "fell", "fracture", "deformed"):
            return {"department": "Orthopedics", "suggested_triage": "Yellow", "confidence": 0.8}
        if _has(text, "pregnan"):
            return {"department": "Obstetrics", "suggested_triage": "Green", "confidence": 0.75}
        if _has(text, "headache", "dizziness", "confusion", "memory"):
            return {"department": "Neurology", "suggested_triage": "Yellow", "confidence": 0.7}
        if _has(text, "fever", "cough", "infection"):
            return {"department": "General Medicine", "suggested_triage": "Yellow", "confidence": 0.7}
        return {"department": "General Medicine", "suggested_triage": "Green", "confidence": 0.5}

    def _suggest_orders(self, payload):
        text = json.dumps(payload).lower()
        orders = []
        if "fever" in text:
            orders.append({
                "category": "investigation", "sub_type": "CBC", "label": "Complete Blood Count",
                "priority": "routine", "rationale": "Fever may indicate infection; CBC can show leukocytosis.",
                "payload": {"sampleType": "blood"},
            })
            orders.append({
                "category": "medication", "sub_type": "Paracetamol", "label": "Paracetamol 500mg PO",
                "priority": "routine", "rationale": "Symptomatic relief of fever.",
                "payload": {"dose": "500mg", "route": "PO", "frequency": "TID"},
            })
        if "cough" in text or "breath" in text:
            orders.append({
                "category": "radiology", "sub_type": "Chest X-ray", "label": "Chest X-ray PA view",
                "priority": "urgent", "rationale": "Respiratory symptoms; rule out consolidation.",
                "payload": {"modality": "X-ray", "region": "chest"},
            })
        if "chest pain" in text:
            orders.append({
                "category": "investigation", "sub_type": "Troponin", "label": "Serum Troponin I",
                "priority": "STAT", "rationale": "Chest pain; rule out acute coronary syndrome.",
                "payload": {"sampleType": "blood"},
            })
        return {"suggested_orders": orders}

    def _summarize(self, payload):
        kind = payload.get("kind", "record") if isinstance(payload, dict) else "record"
        content = payload.get("content", {}) if isinstance(payload, dict) else {}
        if kind == "clinical_file":
            history = content.get("history", {})
            complaint = history.get("chief_complaint") or "unspecified complaint"
            duration = history.get("duration")
            text = f"Patient presents with {complaint}"
            text += f" for {duration}." if duration else "."
            return {"summary": text}
        if kind == "vitals":
            return {"summary": f"{len(content)} vitals readings reviewed (mock)."}
        if kind == "discharge":
            return {"summary": f"Discharge summary for {content.get('name', 'patient')} (mock)."}
        return {"summary": f"Summary of {kind} (mock)."}

    def _cross_check(self, payload):
        issues = []
        if not isinstance(payload, dict):
            return {"inconsistencies": issues}
        sections = payload.get("clinical_file", {}).get("sections", {})
        history_text = json.dumps(sections.get("history", {})).lower()
        temp = (sections.get("general_exam", {}).get("vitals") or {}).get("temp_c")
        if "fever" in history_text and temp is not None and temp < 37.5:
            issues.append("History mentions 'fever', but current temperature in GPE is normal. Please verify.")
        return {"inconsistencies": issues}

    def _suggest_history(self, payload):
        hpi = str(payload.get("hpi", "") if isinstance(payload, dict) else payload).lower()
        suggestions = {}
        if "fever" in hpi and "cough" in hpi:
            suggestions["chief_complaint"] = "Fever, cough and body aches"
        if "three days" in hpi or "3 days" in hpi:
            suggestions["duration"] = "3 days"
        if "body aches" in hpi:
            suggestions["associated_symptoms"] = ["cough", "body aches"]
        if "metformin" in hpi or "diabetes" in hpi:
            suggestions["past_medical_history"] = "Diabetes (on Metformin)"
        if "penicillin" in hpi and "rash" in hpi:
            suggestions["allergy_history"] = [{"substance": "Penicillin", "reaction": "Rash", "severity": "Moderate"}]
        if "father" in hpi and "diabetes" in hpi:
            suggestions["family_history"] = "Father: diabetes"
        return {"suggestions": suggestions}
