"""Remote "fetch full message" commands sent by the recipient.

What:
  Poll for unread messages from the configured recipient whose subject starts
  with the fetch prefix, resolve the requested conversation, and reply with its
  full body (or a not-found notice).

Why:
  The briefing only carries summaries. Its "Request Full Body" links open a
  pre-addressed email whose subject names a thread id; this job answers those
  emails so the full message reaches the recipient's own inbox.

How:
  The payload is the subject with the first occurrence of the prefix removed.
  ``id:<thread>`` payloads resolve by direct lookup; anything else runs as a
  search query excluding the account's own mail and takes the newest thread.
  The command thread is marked read whatever the outcome, so a broken command
  is answered at most once.

Interfaces:
  :class:`FetchRequestJob`, :class:`FetchReport`, :func:`extract_payload`.
"""
from __future__ import annotations

import html
from dataclasses import dataclass
from typing import Optional

from ..config.store import ConfigStore
from ..errors import ConfigError, NotFoundError, QuotaExceeded, TransportError
from ..imap.gateway import MailGateway
from ..utils.ids import new_run_id
from ..utils.logging import JsonLogger, get_logger
from .models import MailThread

REPLY_SUBJECT_PREFIX = "Email Body Reply: "
NOT_FOUND_SUBJECT_PREFIX = "Could not find email for request: "
NOT_FOUND_BODY = (
    'Sorry, no email was found in your inbox for the request "{payload}". '
    "Please try a different query or ID."
)

_REPLY_TEMPLATE = """
            <div style="font-family: Arial, sans-serif; padding: 20px;">
              <p>Hello, here is the full content of the email you requested:</p>
              <div style="border: 1px solid #ccc; border-radius: 8px; margin-top: 15px; padding: 15px; background-color: #f9f9f9;">
                <p><b>From:</b> {sender}</p>
                <p><b>Subject:</b> {subject}</p>
                <hr>
                {body}
              </div>
            </div>
          """


def extract_payload(subject: str, prefix: str) -> str:
    """Return ``subject`` without the first ``prefix`` occurrence, trimmed."""

    return subject.replace(prefix, "", 1).strip()


def command_query(recipient: str, prefix: str) -> str:
    return f'is:inbox is:unread from:({recipient}) subject:("{prefix}")'


@dataclass
class FetchReport:
    run_id: str
    processed: int = 0
    replied: int = 0
    not_found: int = 0
    failed: int = 0


class FetchRequestJob:
    def __init__(
        self,
        *,
        store: ConfigStore,
        gateway: MailGateway,
        fetch_prefix: str = "Fetch Email Body:",
        logger: Optional[JsonLogger] = None,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._prefix = fetch_prefix
        self._logger = logger or get_logger("mailbrief.fetch_request")

    def run(self) -> FetchReport:
        report = FetchReport(run_id=new_run_id())
        try:
            snapshot = self._store.load_snapshot()
        except ConfigError as exc:
            self._logger.error("fetch_state_invalid", run_id=report.run_id, error=str(exc))
            return report
        if snapshot is None:
            self._logger.info("fetch_skipped_no_recipient", run_id=report.run_id)
            return report
        recipient = snapshot.recipient_email

        threads = self._gateway.search(command_query(recipient, self._prefix))
        if threads:
            self._logger.info("fetch_requests_found", run_id=report.run_id, count=len(threads))
        for command in threads:
            message = command.first_message
            if message is None or not message.unread:
                continue
            report.processed += 1
            payload = extract_payload(message.subject, self._prefix)
            if payload:
                self._answer(payload, recipient, report)
            self._mark_command_read(command, report.run_id)
        return report

    def resolve(self, payload: str) -> Optional[MailThread]:
        """Return the thread ``payload`` designates, or ``None``."""

        if payload.lower().startswith("id:"):
            thread_id = payload[3:].strip()
            try:
                return self._gateway.get_thread(thread_id)
            except (NotFoundError, TransportError) as exc:
                self._logger.warning("fetch_lookup_failed", thread_id=thread_id, error=str(exc))
                return None
        try:
            matches = self._gateway.search(f"{payload} -from:me", limit=1)
        except TransportError as exc:
            self._logger.warning("fetch_search_failed", error=str(exc))
            return None
        return matches[0] if matches else None

    def _answer(self, payload: str, recipient: str, report: FetchReport) -> None:
        target = self.resolve(payload)
        message = target.last_message if target is not None else None
        try:
            if message is None:
                report.not_found += 1
                self._logger.info("fetch_not_found", run_id=report.run_id, query=payload)
                self._gateway.send(
                    recipient,
                    NOT_FOUND_SUBJECT_PREFIX + payload,
                    "",
                    text_body=NOT_FOUND_BODY.format(payload=payload),
                )
                return
            body = _REPLY_TEMPLATE.format(
                sender=html.escape(message.sender),
                subject=html.escape(message.subject),
                body=message.body,
            )
            self._gateway.send(recipient, REPLY_SUBJECT_PREFIX + message.subject, body)
            report.replied += 1
            self._logger.info("fetch_replied", run_id=report.run_id, thread_id=message.thread_id)
        except (TransportError, QuotaExceeded) as exc:
            report.failed += 1
            self._logger.error("fetch_reply_failed", run_id=report.run_id, error=str(exc))

    def _mark_command_read(self, command: MailThread, run_id: str) -> None:
        try:
            self._gateway.mark_thread_read(command)
        except TransportError as exc:
            self._logger.error("fetch_mark_read_failed", run_id=run_id, thread_id=command.id, error=str(exc))
