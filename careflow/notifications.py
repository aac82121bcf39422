"""
notifications.py
================
Outbound, best-effort channels:
 - HttpAuditSink forwards audit events to an external log endpoint
 - SnapshotBroadcaster pushes committed patient snapshots to WebSocket
   clients so the UI can re-render
Neither channel is assumed durable; failures are logged, never raised.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional

import requests
from fastapi import WebSocket

from . import config
from .schemas import AuditEvent, Patient

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# HTTP audit sink
# ---------------------------------------------------------------------------

class HttpAuditSink:
    """
    POSTs each audit event as JSON.
    Delivery runs on a single background worker, so events leave in the
    order they were recorded and the workflow never waits on the network.
    """

    def __init__(self, url: Optional[str] = None, token: Optional[str] = None, timeout: Optional[float] = None):
        self.url = url or config.AUDIT_SINK_URL
        self.token = token if token is not None else config.AUDIT_SINK_TOKEN
        self.timeout = config.AUDIT_SINK_TIMEOUT_SECONDS if timeout is None else timeout
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="audit-sink")

    def emit(self, event: AuditEvent) -> None:
        if not self.url:
            return  # no sink configured
        self._executor.submit(self._post, event.model_dump(mode="json"))

    def _post(self, body: dict) -> None:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        try:
            resp = requests.post(self.url, json=body, headers=headers, timeout=self.timeout)
            if resp.status_code >= 300:
                logger.error("Audit sink rejected event %s: %s %s", body.get("id"), resp.status_code, resp.text)
        except requests.RequestException as e:
            logger.error("Audit sink send failed for event %s: %s", body.get("id"), e)

    def close(self) -> None:
        """Wait for queued events to be delivered (or fail)."""
        self._executor.shutdown(wait=True)


# ---------------------------------------------------------------------------
# WebSocket snapshot broadcast
# ---------------------------------------------------------------------------

class SnapshotBroadcaster:
    """Registry of WebSocket connections per patient."""

    def __init__(self):
        self._clients: Dict[str, List[WebSocket]] = {}

    def register(self, patient_id: str, ws: WebSocket) -> None:
        self._clients.setdefault(patient_id, []).append(ws)
        logger.info("Client subscribed to patient %s (%d active)", patient_id, len(self._clients[patient_id]))

    def unregister(self, patient_id: str, ws: WebSocket) -> None:
        if patient_id in self._clients:
            self._clients[patient_id] = [w for w in self._clients[patient_id] if w is not ws]
            if not self._clients[patient_id]:
                del self._clients[patient_id]

    def subscribers(self, patient_id: str) -> int:
        return len(self._clients.get(patient_id, []))

    async def broadcast(self, patient: Patient) -> None:
        """Send the committed snapshot to every client watching this patient."""
        clients = list(self._clients.get(patient.id, []))
        if not clients:
            return
        message = {
            "event": "patient_updated",
            "patient_id": patient.id,
            "snapshot": patient.model_dump(mode="json"),
        }
        for ws in clients:
            try:
                await ws.send_json(message)
            except Exception:
                logger.warning("Failed to push snapshot of patient %s to a client", patient.id)
