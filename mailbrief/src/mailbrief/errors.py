"""Error hierarchy shared by the MailBrief runtime.

What:
  Define the typed failures raised by lifecycle management, the triage
  pipeline, the fetch-request job, and the collaborator adapters (mail, LLM).

Why:
  Each failure kind has a distinct handling policy: configuration mistakes are
  surfaced to the caller, LLM faults degrade locally, delivery faults abort the
  run without marking mail read, and stale scheduler handles trigger
  reconciliation. Distinct types keep those policies explicit at the ``except``
  sites instead of relying on message parsing.

Interfaces:
  :class:`MailBriefError` and its subclasses.
"""
from __future__ import annotations


class MailBriefError(Exception):
    """Base class for every error raised by MailBrief."""


class ConfigError(MailBriefError):
    """Raised when operator input or ``config.yaml`` is invalid.

    Lifecycle operations raise it before mutating any state.
    """


class QuotaExceeded(MailBriefError):
    """Raised when the daily send quota is exhausted."""


class TransportError(MailBriefError):
    """Raised when a remote API (LLM, IMAP, SMTP) is unreachable or rejects a call.

    Attributes:
      status_code: HTTP status code when the failure came from an HTTP response.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MissingApiKeyError(TransportError):
    """Raised when the LLM API key is not configured."""


class ParseError(MailBriefError):
    """Raised when a remote response cannot be interpreted."""


class NotFoundError(MailBriefError):
    """Raised when a thread lookup does not resolve to a conversation."""


class StaleHandleError(MailBriefError):
    """Raised when a cached job handle no longer exists in the scheduler."""

    def __init__(self, handle: str) -> None:
        super().__init__(f"scheduler job {handle} no longer exists")
        self.handle = handle


__all__ = [
    "MailBriefError",
    "ConfigError",
    "QuotaExceeded",
    "TransportError",
    "MissingApiKeyError",
    "ParseError",
    "NotFoundError",
    "StaleHandleError",
]
