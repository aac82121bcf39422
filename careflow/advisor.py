"""
advisor.py
==========
Abstraction layer over the AI advisor.

The workflow only talks to AdvisorInterface. The backend behind it is any
object with `async send(role, prompt) -> str` returning JSON:
 - MockAdvisor (default, deterministic, offline)
 - a real model client supplied by the host application

Every call is bounded by a timeout. Any failure (timeout, transport error,
malformed JSON, schema mismatch) surfaces as AdvisorUnavailable so callers
can fall back to a safe default.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from . import config
from .exceptions import AdvisorUnavailable
from .mock_advisor import MockAdvisor
from .schemas import ClinicalSections, Patient, SuggestedOrder, TriageSuggestion

logger = logging.getLogger(__name__)

# Role instructions sent ahead of each JSON payload
SYSTEM_PROMPTS = {
    "classify": "You are a triage classifier. Given the chief complaint, return JSON with department, suggested_triage (Red/Yellow/Green) and confidence 0-1.",
    "suggest_orders": "You are a clinical decision support assistant. Given the clinical file sections, return JSON {suggested_orders: [{category, sub_type, label, priority, rationale, payload}]}.",
    "summarize": "You are a medical scribe. Summarize the given record content concisely. Return JSON {summary}.",
    "cross_check": "You review a patient record for internal contradictions. Return JSON {inconsistencies: [text]}.",
    "suggest_history": "You structure a free-text history of presenting illness into history fields. Return JSON {suggestions: {field: value}}.",
}


def _list_field(data: Dict[str, Any], key: str, role: str) -> list:
    """A missing/null field reads as empty; anything other than a list is a bad reply."""
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise AdvisorUnavailable(
            f"Advisor '{role}' returned '{key}' as {type(value).__name__}, expected a list",
            detail={"role": role},
        )
    return value


class AdvisorInterface:
    """
    Fallible, asynchronous advisor used by the workflow.
    Results are suggestions only and never applied without a human.
    """

    def __init__(self, backend=None, timeout: Optional[float] = None):
        self._impl = backend if backend is not None else MockAdvisor()
        self.timeout = config.ADVISOR_TIMEOUT_SECONDS if timeout is None else timeout
        self._classify_cache: Dict[str, TriageSuggestion] = {}

    async def _call(self, role: str, payload: Any) -> Dict[str, Any]:
        prompt = f"{SYSTEM_PROMPTS[role]}\n{json.dumps(payload, default=str)}"
        try:
            raw = await asyncio.wait_for(self._impl.send(role, prompt), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise AdvisorUnavailable(
                f"Advisor '{role}' timed out after {self.timeout:g}s",
                detail={"role": role},
            )
        except AdvisorUnavailable:
            raise
        except Exception as exc:
            raise AdvisorUnavailable(f"Advisor '{role}' failed: {exc}", detail={"role": role})

        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            raise AdvisorUnavailable(f"Advisor '{role}' returned malformed JSON", detail={"role": role})
        if not isinstance(data, dict):
            raise AdvisorUnavailable(f"Advisor '{role}' returned an unexpected shape", detail={"role": role})
        return data

    async def classify(self, complaint: str) -> TriageSuggestion:
        """Department + suggested triage for a complaint. Cached per complaint text."""
        cache_key = complaint.lower().strip()
        cached = self._classify_cache.get(cache_key)
        if cached is not None:
            return cached.model_copy(update={"from_cache": True})

        data = await self._call("classify", {"complaint": complaint})
        try:
            result = TriageSuggestion.model_validate({**data, "from_cache": False})
        except PydanticValidationError:
            raise AdvisorUnavailable("Advisor classification did not match the expected schema")
        self._classify_cache[cache_key] = result
        return result

    async def suggest_orders(self, sections: ClinicalSections) -> List[SuggestedOrder]:
        data = await self._call("suggest_orders", sections.model_dump(mode="json"))
        orders = _list_field(data, "suggested_orders", "suggest_orders")
        try:
            return [SuggestedOrder.model_validate(o) for o in orders]
        except PydanticValidationError:
            raise AdvisorUnavailable("Advisor order suggestions did not match the expected schema")

    async def summarize(self, kind: str, content: Any) -> str:
        data = await self._call("summarize", {"kind": kind, "content": content})
        summary = data.get("summary")
        if not isinstance(summary, str) or not summary.strip():
            raise AdvisorUnavailable(f"Advisor returned an empty {kind} summary")
        return summary.strip()

    async def cross_check(self, patient: Patient) -> List[str]:
        data = await self._call("cross_check", patient.model_dump(mode="json"))
        return [str(item) for item in _list_field(data, "inconsistencies", "cross_check")]

    async def suggest_history(self, hpi: str) -> Dict[str, Any]:
        data = await self._call("suggest_history", {"hpi": hpi})
        suggestions = data.get("suggestions") or {}
        if not isinstance(suggestions, dict):
            raise AdvisorUnavailable("Advisor history suggestions did not match the expected schema")
        return suggestions


def make_advisor(backend=None, timeout: Optional[float] = None) -> AdvisorInterface:
    """
    Factory function for the advisor.
    Example: make_advisor(), make_advisor(MockAdvisor(delay=0.2)), make_advisor(my_client, timeout=3)
    """
    return AdvisorInterface(backend, timeout=timeout)
