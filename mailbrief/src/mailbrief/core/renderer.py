"""Pure rendering of ranked sender groups into the briefing email.

What:
  Turn a ranking and the sender groups into a :class:`BriefingDocument`
  (subject plus HTML body).

Why:
  Rendering must be reproducible for a given input so that a retried run
  produces the same report and tests can assert on exact output. The function
  therefore takes the generation time and zone as arguments and touches no
  clock, network, or store.

How:
  Walk the ranking in order, resolving each entry to a group by exact key and
  then case-insensitively. Each group is emitted at most once; unknown entries
  are skipped. Groups the ranking never named are omitted unless
  ``include_unranked`` is set, in which case they follow in first-seen order.
  Every message-derived string is HTML-escaped.

Interfaces:
  :class:`BriefingDocument`, :func:`render_briefing`, :func:`ordered_senders`,
  :func:`fetch_subject`, :func:`format_local_time`.
"""
from __future__ import annotations

import html
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Sequence
from urllib.parse import quote
from zoneinfo import ZoneInfo

from .models import MessageSummary, SenderGroups

BRIEFING_SUBJECT_PREFIX = "✨ AI Smart Briefing - "

_ENCODE_SAFE = "-_.!~*'()"

_ITEM_TEMPLATE = """
        <div style="border: 1px solid #ccc; border-radius: 8px; margin-bottom: 20px; padding: 15px; background-color: #fff; box-shadow: 0 1px 3px rgba(0,0,0,0.1);">
           <p style="margin:0 0 10px 0;"><b>Subject:</b> {subject}</p>
           <div style="background-color: #E8F0FE; border-left: 4px solid #1A73E8; padding: 12px; font-size: 14px; color: #1C3A5A;">
             <p style="margin:0;">✨ <b>AI Summary:</b> {summary}</p>
           </div>
           <div style="display: flex; justify-content: space-between; align-items: center; margin-top: 10px;">
             <p style="margin:0; font-size: 12px; color: #777;">Time: {when}</p>
             <div style="display: flex; gap: 10px;">
               <a href="{mailto}" target="_blank" style="font-size: 12px; font-weight: bold; color: #ffffff; background-color: #185ABC; padding: 5px 12px; border-radius: 4px; text-decoration: none;">Request Full Body</a>
               <a href="{link}" target="_blank" style="font-size: 12px; font-weight: bold; color: #ffffff; background-color: #4285F4; padding: 5px 12px; border-radius: 4px; text-decoration: none;">Open in Gmail</a>
             </div>
           </div>
         </div>"""

_HEADER_TEMPLATE = (
    '<h2 style="padding-bottom: 10px; border-bottom: 2px solid #1A73E8; color: #1A73E8;">'
    "From: {sender}</h2>"
)

_PAGE_TEMPLATE = """
    <div style="font-family: Arial, sans-serif; background-color: #f4f4f9; padding: 20px;">
      <h1 style="color: #333; text-align: center;">AI Smart Briefing</h1>
      <p style="text-align: center; color: #555;">Your AI assistant has sorted and summarized your new emails by sender importance:</p>
      <hr style="border:none; border-top: 1px solid #ddd; margin: 20px 0;">
      {blocks}
    </div>
  """


@dataclass(frozen=True)
class BriefingDocument:
    subject: str
    html: str


def format_local_time(moment: datetime, zone: str) -> str:
    """Format ``moment`` as ``M/D/YYYY, h:MM:SS AM`` in ``zone``."""

    local = moment.astimezone(ZoneInfo(zone))
    hour = local.hour % 12 or 12
    meridiem = "AM" if local.hour < 12 else "PM"
    return f"{local.month}/{local.day}/{local.year}, {hour}:{local.minute:02d}:{local.second:02d} {meridiem}"


def fetch_subject(fetch_prefix: str, thread_id: str) -> str:
    """Return the command subject requesting the full body of ``thread_id``."""

    return f"{fetch_prefix} id:{thread_id}"


def ordered_senders(
    ranking: Sequence[str],
    groups: SenderGroups,
    include_unranked: bool,
) -> List[str]:
    """Resolve ``ranking`` to the group keys rendered, in order."""

    folded: Dict[str, str] = {}
    for key in groups:
        folded.setdefault(key.lower(), key)
    emitted: List[str] = []
    seen: set[str] = set()
    for entry in ranking:
        key = entry if entry in groups else folded.get(entry.strip().lower())
        if key is None or key in seen:
            continue
        seen.add(key)
        emitted.append(key)
    if include_unranked:
        emitted.extend(key for key in groups if key not in seen)
    return emitted


def _render_items(
    items: Iterable[MessageSummary],
    *,
    command_address: str,
    fetch_prefix: str,
    timezone: str,
) -> str:
    parts = []
    for item in items:
        subject = quote(fetch_subject(fetch_prefix, item.thread_id), safe=_ENCODE_SAFE)
        mailto = f"mailto:{command_address}?subject={subject}"
        parts.append(
            _ITEM_TEMPLATE.format(
                subject=html.escape(item.subject),
                summary=html.escape(item.summary_text),
                when=html.escape(format_local_time(item.timestamp, timezone)),
                mailto=html.escape(mailto, quote=True),
                link=html.escape(item.link, quote=True),
            )
        )
    return "".join(parts)


def render_briefing(
    ranking: Sequence[str],
    groups: SenderGroups,
    *,
    command_address: str,
    generated_at: datetime,
    timezone: str,
    fetch_prefix: str,
    include_unranked: bool = False,
) -> BriefingDocument:
    """Render the briefing email for ``groups`` in ``ranking`` order.

    Args:
      ranking: Sender addresses from most to least important. May name unknown
        senders, repeat senders, or omit some.
      groups: Sender groups with summaries already sorted by timestamp.
      command_address: Mailbox the "Request Full Body" link writes to.
      generated_at: Timestamp shown in the subject line.
      timezone: IANA zone used for every displayed time.
      fetch_prefix: Subject prefix recognised by the fetch-request job.
      include_unranked: Append groups the ranking omitted.

    Returns:
      The rendered :class:`BriefingDocument`.
    """

    blocks = []
    for sender in ordered_senders(ranking, groups, include_unranked):
        blocks.append(_HEADER_TEMPLATE.format(sender=html.escape(sender)))
        blocks.append(
            _render_items(
                groups[sender],
                command_address=command_address,
                fetch_prefix=fetch_prefix,
                timezone=timezone,
            )
        )
    subject = BRIEFING_SUBJECT_PREFIX + format_local_time(generated_at, timezone)
    return BriefingDocument(subject=subject, html=_PAGE_TEMPLATE.format(blocks="".join(blocks)))
