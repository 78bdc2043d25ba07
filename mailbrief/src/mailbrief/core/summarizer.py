"""Per-message summaries that never fail a briefing run.

What:
  Ask the language model for a one or two sentence summary of a message body.

Why:
  A briefing with one unreadable summary is still useful; a briefing that
  aborts because the model hiccupped is not. Every failure class therefore maps
  to a fixed, human-readable sentinel that lands in the report instead.

Interfaces:
  :class:`Summarizer`, sentinel constants.
"""
from __future__ import annotations

from typing import Optional

from ..errors import MissingApiKeyError, ParseError, TransportError
from ..utils.logging import JsonLogger, get_logger
from .llm import LLMClient

SUMMARY_TEMPERATURE = 0.3
SUMMARY_MAX_TOKENS = 100

MISSING_KEY_SENTINEL = "[AI summary failed: API key not configured. Please check the configuration.]"
API_ERROR_SENTINEL = "[AI summary failed: API call error. Please check the logs.]"
EXECUTION_ERROR_SENTINEL = "[AI summary failed: Script execution error. Please check the logs.]"

_PROMPT = (
    "Please briefly summarize the core points of the following email in one or two "
    "{language} sentences, so the recipient can quickly judge its importance. Do not "
    "add any extra explanations or introductory phrases; just provide the summary "
    "directly. Here is the email content:\n\n{body}"
)


class Summarizer:
    def __init__(
        self,
        llm: LLMClient,
        *,
        language: str = "English",
        logger: Optional[JsonLogger] = None,
    ) -> None:
        self._llm = llm
        self._language = language
        self._logger = logger or get_logger("mailbrief.summarizer")

    def build_prompt(self, body: str) -> str:
        return _PROMPT.format(language=self._language, body=body)

    def summarize(self, body: str) -> str:
        """Return the model summary of ``body`` or a sentinel string."""

        try:
            return self._llm.complete(
                self.build_prompt(body),
                temperature=SUMMARY_TEMPERATURE,
                max_tokens=SUMMARY_MAX_TOKENS,
            )
        except MissingApiKeyError:
            self._logger.error("summary_missing_api_key")
            return MISSING_KEY_SENTINEL
        except TransportError as exc:
            self._logger.error("summary_transport_error", error=str(exc), status=exc.status_code)
            if exc.status_code is not None:
                return API_ERROR_SENTINEL
            return EXECUTION_ERROR_SENTINEL
        except ParseError as exc:
            self._logger.error("summary_parse_error", error=str(exc))
            return EXECUTION_ERROR_SENTINEL
