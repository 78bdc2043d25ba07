"""Briefing domain logic for MailBrief.

What:
  Group the job registry, the two periodic jobs, the LLM roles, and the
  lifecycle manager behind a lazy package facade.

Why:
  The CLI imports only what a command needs; ``status`` should not pay for
  importing ``httpx`` or the IMAP stack.

How:
  ``__getattr__`` resolves names listed in ``__all__`` to their owning module
  on first access.
"""

from __future__ import annotations

from importlib import import_module
from typing import Any

_EXPORTS = {
    "BriefingDocument": "renderer",
    "render_briefing": "renderer",
    "BriefingOutcome": "pipeline",
    "BriefingState": "pipeline",
    "TriagePipeline": "pipeline",
    "FetchRequestJob": "fetch_request",
    "FetchReport": "fetch_request",
    "GeminiClient": "llm",
    "LLMClient": "llm",
    "Summarizer": "summarizer",
    "Ranker": "ranker",
    "ServiceLifecycleManager": "lifecycle",
    "ServiceStatus": "lifecycle",
    "JobKind": "scheduler",
    "JobRecord": "scheduler",
    "LocalScheduler": "scheduler",
    "Scheduler": "scheduler",
    "InboxMessage": "models",
    "MailThread": "models",
    "MessageSummary": "models",
    "handle_command": "commands",
    "RenderInstruction": "commands",
}

__all__ = sorted(_EXPORTS)


def __getattr__(name: str) -> Any:
    module_name = _EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module 'mailbrief.core' has no attribute {name!r}")
    module = import_module(f".{module_name}", __name__)
    return getattr(module, name)
