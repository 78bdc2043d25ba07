"""MailBrief logging helpers with deterministic JSON emission and redaction.

What:
  Offer a tiny facade over Python streams so every MailBrief component emits
  JSON log lines with consistent fields and automatic removal of message
  content.

Why:
  Briefing runs are unattended; operators diagnose them by grepping logs. A
  structured layout keeps parsing trivial while preventing subjects, bodies,
  or LLM summaries of private mail from leaking into shared log storage.

How:
  Provide a :class:`JsonLogger` dataclass bound to a target stream and a
  component label. ``extra`` dictionaries are scrubbed via a recursive
  redaction helper before being serialised with ``json.dump``.

Interfaces:
  :class:`JsonLogger`, :func:`get_logger`.

Invariants & Safety:
  - Every payload includes an ISO8601 timestamp, severity, and component name.
  - Known sensitive keys (``subject``, ``body``, ``summary``, ``preview``,
    ``snippet``) are replaced with ``[redacted]`` even inside nested mappings.
  - Streams are flushed after every write so truncated runs keep their logs.
"""
from __future__ import annotations

import json
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


REDACTED = "[redacted]"
SENSITIVE_KEYS = frozenset({"subject", "body", "summary", "preview", "snippet"})


@dataclass
class JsonLogger:
    """Structured JSON logger with automatic redaction.

    What:
      Emit single-line JSON entries carrying a timestamp, severity, component
      tag, and optional structured fields.

    How:
      Exposes :meth:`log` plus level helpers (:meth:`debug`, :meth:`info`,
      :meth:`warning`, :meth:`error`) that merge a canonical payload with a
      redacted copy of the keyword arguments.
    """

    stream: Any = field(default_factory=lambda: sys.stdout)
    component: str = "mailbrief"

    def log(self, level: str, message: str, *, extra: Optional[Dict[str, Any]] = None) -> None:
        """Serialise ``message`` and ``extra`` to the configured stream.

        Args:
          level: Human-readable severity (e.g., ``"info"`` or ``"error"``).
          message: Core log message.
          extra: Optional context dictionary that will be redacted recursively.
        """

        payload = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "lvl": level.upper(),
            "msg": message,
            "component": self.component,
        }
        if extra:
            payload.update(self._redact(extra))
        json.dump(payload, self.stream, separators=(",", ":"), default=str)
        self.stream.write("\n")
        self.stream.flush()

    def debug(self, message: str, **kwargs: Any) -> None:
        self.log("DEBUG", message, extra=kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self.log("INFO", message, extra=kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self.log("WARN", message, extra=kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self.log("ERROR", message, extra=kwargs)

    def child(self, suffix: str) -> "JsonLogger":
        """Return a logger sharing the stream with ``component`` extended by ``suffix``."""

        return JsonLogger(stream=self.stream, component=f"{self.component}.{suffix}")

    @staticmethod
    def _redact(data: Dict[str, Any]) -> Dict[str, Any]:
        """Return a copy of ``data`` with sensitive values masked.

        Walks the mapping, replaces values stored under :data:`SENSITIVE_KEYS`
        with :data:`REDACTED`, and recurses into nested dictionaries so the
        structure survives for downstream parsing.
        """

        result: Dict[str, Any] = {}
        for key, value in data.items():
            if key in SENSITIVE_KEYS:
                result[key] = REDACTED
            elif isinstance(value, dict):
                result[key] = JsonLogger._redact(value)
            else:
                result[key] = value
        return result


def get_logger(component: str) -> JsonLogger:
    """Construct a :class:`JsonLogger` for the requested component.

    Call sites use this helper instead of instantiating :class:`JsonLogger`
    directly so the default stream and redaction keys evolve in one place.

    Args:
      component: Logical subsystem name to include in log payloads.

    Returns:
      Configured :class:`JsonLogger` writing to ``stdout``.
    """

    return JsonLogger(component=component)
