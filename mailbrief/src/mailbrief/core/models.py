"""Read-only mail views and the intermediate records of a briefing run."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List


@dataclass(frozen=True)
class InboxMessage:
    """One message as returned by a :class:`~mailbrief.imap.gateway.MailGateway`.

    Attributes:
      id: Gateway-specific message identifier (IMAP UID as text).
      thread_id: Conversation identifier shared by every message of a thread.
      sender: Raw ``From`` header, possibly display-name qualified.
      subject: Decoded subject line.
      body: HTML rendering of the message.
      plain_body: Plain-text rendering fed to the summarizer.
      timestamp: Server receive time (timezone aware).
      unread: Whether the message still lacks the ``\\Seen`` flag.
    """

    id: str
    thread_id: str
    sender: str
    subject: str
    body: str
    plain_body: str
    timestamp: datetime
    unread: bool = True


@dataclass(frozen=True)
class MailThread:
    id: str
    link: str
    messages: List[InboxMessage] = field(default_factory=list)

    @property
    def first_message(self) -> InboxMessage | None:
        return self.messages[0] if self.messages else None

    @property
    def last_message(self) -> InboxMessage | None:
        return self.messages[-1] if self.messages else None


@dataclass(frozen=True)
class MessageSummary:
    subject: str
    summary_text: str
    link: str
    timestamp: datetime
    thread_id: str


SenderGroups = Dict[str, List[MessageSummary]]
"""Bare sender address to summaries, in first-seen sender order."""
