"""Order sender groups by importance using the language model.

What:
  Build one prompt listing every sender with its summaries and parse the
  comma-separated address list the model returns.

Why:
  Ranking is best effort. When the model is unreachable or answers in an
  unusable shape, the briefing still goes out in first-seen sender order.

How:
  Split the response on commas and pull one address out of each entry,
  dropping entries without one. An answer naming none of the input senders
  counts as unparsable. Otherwise unknown addresses and duplicates are kept;
  the renderer skips them.

Interfaces:
  :class:`Ranker`, :func:`parse_ranking`.
"""
from __future__ import annotations

from typing import List, Optional

from ..errors import ParseError, TransportError
from ..utils.addresses import find_address
from ..utils.logging import JsonLogger, get_logger
from .llm import LLMClient
from .models import SenderGroups

RANKING_TEMPERATURE = 0.1

_PREAMBLE = (
    "I have a list of email summaries, grouped by sender. Please act as my executive "
    "assistant. Based on the content of each group of email summaries, determine which "
    "senders are more urgent or important, and then sort these senders. Your response "
    "must include all the senders I provide, without missing any. Please only return a "
    "comma-separated list of sender email addresses, sorted from most to least important, "
    "without any other text, explanations, or numbering. For example: "
    "'boss@example.com,client@example.com,team@example.com'. Here is the data for you "
    "to analyze:\n\n"
)

_QUOTES = "'\"`"


def parse_ranking(text: str) -> List[str]:
    """Extract the sender addresses from a comma-separated model answer.

    Each entry contributes the first address it contains; entries without one
    (apologies, headings, numbering on its own) are dropped.

    Raises:
      ParseError: If no entry carries an address.
    """

    entries = []
    for raw in text.split(","):
        address = find_address(raw.strip().strip(_QUOTES))
        if address:
            entries.append(address)
    if not entries:
        raise ParseError("ranking response contained no addresses")
    return entries


class Ranker:
    def __init__(self, llm: LLMClient, *, logger: Optional[JsonLogger] = None) -> None:
        self._llm = llm
        self._logger = logger or get_logger("mailbrief.ranker")

    @staticmethod
    def build_prompt(groups: SenderGroups) -> str:
        lines = [_PREAMBLE]
        for sender, summaries in groups.items():
            lines.append(f"Sender: {sender}\n")
            for item in summaries:
                lines.append(f"- Summary: {item.summary_text}\n")
            lines.append("\n")
        return "".join(lines)

    def rank(self, groups: SenderGroups) -> List[str]:
        """Return sender addresses ordered from most to least important.

        Falls back to the group keys in insertion order on any model fault.
        """

        fallback = list(groups.keys())
        if not groups:
            return fallback
        try:
            answer = self._llm.complete(self.build_prompt(groups), temperature=RANKING_TEMPERATURE)
            ranking = parse_ranking(answer)
            known = {key.lower() for key in groups}
            if not any(entry in known for entry in ranking):
                raise ParseError("ranking response names none of the senders")
            return ranking
        except TransportError as exc:
            self._logger.error("ranking_transport_error", error=str(exc), status=exc.status_code)
        except ParseError as exc:
            self._logger.error("ranking_parse_error", error=str(exc))
        return fallback
