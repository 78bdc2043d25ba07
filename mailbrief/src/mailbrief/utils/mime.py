"""MIME parsing helpers that turn raw IMAP payloads into briefing inputs.

What:
  Parse raw RFC822 bytes into a header mapping, a bounded plain-text body (fed
  to the summarizer), and an HTML body (forwarded verbatim by fetch replies).

Why:
  Inbox mail arrives in every shape: single-part plain text, HTML-only
  newsletters, multipart/alternative with attachments. The summarizer needs
  readable text and the fetch-request reply needs the richest rendering, so
  both are extracted once at the gateway boundary.

How:
  Use :class:`~email.parser.BytesParser` with the default policy, walk leaf
  parts picking the first ``text/plain`` and ``text/html`` payloads, derive
  whichever one is missing from the other, and truncate on encoded bytes.

Interfaces:
  :class:`ParsedMessage`, :func:`parse_message`.

Invariants & Safety:
  - Bodies are decoded with ``errors="ignore"`` so undecodable bytes never
    crash a run.
  - Truncation operates on UTF-8 bytes to avoid splitting code points.
"""
from __future__ import annotations

import html
import re
from dataclasses import dataclass
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from typing import Dict, Optional


MAX_BODY_BYTES = 1_000_000
"""Soft upper bound for decoded body size in bytes."""

_TAGS = re.compile(r"<[^>]+>")
_BLOCK_BREAKS = re.compile(r"(?i)<\s*(br|/p|/div|/li|/tr|/h[1-6])\s*/?>")
_STYLE_BLOCKS = re.compile(r"(?is)<(script|style)[^>]*>.*?</\1>")
_WHITESPACE = re.compile(r"[ \t\r\f\v]+")


@dataclass
class ParsedMessage:
    """Structured view over a raw message.

    Attributes:
      message: Parsed :class:`EmailMessage`.
      headers: Header values keyed by lower-cased names.
      plain_body: Plain-text rendering used for summarisation.
      html_body: HTML rendering used when forwarding the full message.
    """

    message: EmailMessage
    headers: Dict[str, str]
    plain_body: str
    html_body: str


def parse_message(raw: bytes) -> ParsedMessage:
    """Parse ``raw`` into a :class:`ParsedMessage`.

    Args:
      raw: Message bytes as returned by an IMAP ``BODY[]`` fetch.

    Returns:
      Parsed message with both body renderings populated.
    """

    message = BytesParser(policy=policy.default).parsebytes(raw)
    headers = {k.lower(): str(v) for k, v in message.items()}
    plain = _first_part(message, "text/plain")
    rich = _first_part(message, "text/html")
    if plain is None and rich is not None:
        plain = html_to_text(rich)
    if rich is None:
        rich = _text_to_html(plain or "")
    return ParsedMessage(
        message=message,
        headers=headers,
        plain_body=_truncate(plain or ""),
        html_body=_truncate(rich),
    )


def html_to_text(markup: str) -> str:
    """Collapse ``markup`` into readable plain text."""

    text = _STYLE_BLOCKS.sub("", markup)
    text = _BLOCK_BREAKS.sub("\n", text)
    text = html.unescape(_TAGS.sub("", text))
    lines = [_WHITESPACE.sub(" ", line).strip() for line in text.splitlines()]
    return "\n".join(line for line in lines if line)


def _text_to_html(text: str) -> str:
    return "<br>".join(html.escape(line) for line in text.splitlines())


def _first_part(message: EmailMessage, content_type: str) -> Optional[str]:
    for part in message.walk():
        if part.is_multipart():
            continue
        if part.get_content_disposition() == "attachment":
            continue
        if part.get_content_type() != content_type:
            continue
        payload = part.get_content()
        if isinstance(payload, bytes):
            payload = payload.decode(part.get_content_charset("utf-8"), errors="ignore")
        return payload
    return None


def _truncate(text: str) -> str:
    encoded = text.encode("utf-8")
    if len(encoded) <= MAX_BODY_BYTES:
        return text
    return encoded[:MAX_BODY_BYTES].decode("utf-8", errors="ignore")
