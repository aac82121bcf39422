"""
config.py
=========
Environment-driven settings. Components read these as defaults and accept
explicit constructor arguments that take precedence.
"""

import os

# SQLite file used by the snapshot mirror and the SQL audit sink
DB_PATH = os.getenv("CAREFLOW_DB", "data/careflow.db")

# Upper bound on any single advisor call
ADVISOR_TIMEOUT_SECONDS = float(os.getenv("ADVISOR_TIMEOUT_SECONDS", "8"))

# Optional external audit log sink (HTTP POST, one event per request)
AUDIT_SINK_URL = os.getenv("AUDIT_SINK_URL")
AUDIT_SINK_TOKEN = os.getenv("AUDIT_SINK_TOKEN")
AUDIT_SINK_TIMEOUT_SECONDS = float(os.getenv("AUDIT_SINK_TIMEOUT_SECONDS", "5"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_JSON = os.getenv("LOG_JSON", "true").lower() == "true"

# Upper bound on pushing one snapshot to WebSocket subscribers
BROADCAST_TIMEOUT_SECONDS = float(os.getenv("BROADCAST_TIMEOUT_SECONDS", "2"))
