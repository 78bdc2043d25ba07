"""Generate run identifiers and job handles for MailBrief.

What:
  Provide minimal helpers for creating unique run IDs (log correlation) and
  opaque scheduler handles.

Why:
  Centralising the formats avoids subtle inconsistencies between the pipeline,
  the fetch-request job, and the scheduler when operators correlate log lines
  with persisted job tables.

Interfaces:
  :func:`new_run_id` and :func:`new_handle`.

Invariants & Safety:
  - Run IDs always include timezone-aware timestamps for traceability.
  - Handles carry no meaning; callers must never parse them.
"""
from __future__ import annotations

import secrets
from datetime import datetime, timezone
from uuid import uuid4


def new_run_id() -> str:
    """Return a unique identifier for a job invocation.

    Combines an ISO8601 UTC timestamp with a six-hex-character random suffix so
    identifiers stay sortable while avoiding collisions between the two jobs
    running concurrently.

    Returns:
      Identifier string (e.g., ``2024-01-01T00:00:00+00:00#1a2b3c``).
    """

    timestamp = datetime.now(timezone.utc).isoformat()
    suffix = secrets.token_hex(3)
    return f"{timestamp}#{suffix}"


def new_handle() -> str:
    """Return an opaque scheduler job handle."""

    return uuid4().hex
