"""Gmail-backed mail gateway: IMAP for reading, SMTP for sending.

What:
  Implement the :class:`MailGateway` contract used by the briefing pipeline and
  the fetch-request job on top of ``imapclient`` (search, thread reads,
  mark-read) and :mod:`smtplib` (delivery), with the daily send ledger
  answering quota queries.

Why:
  Gmail exposes conversation semantics over IMAP through its extensions:
  ``X-GM-RAW`` runs web-style search queries and ``X-GM-THRID`` groups
  messages into threads. Wrapping them in one context-managed object keeps the
  jobs free of protocol details and lets tests substitute an in-memory backend.

How:
  Connect in :meth:`ImapMailGateway.__enter__`, select the "All Mail" folder,
  translate search hits into thread ids (newest first), and load each thread
  with ``BODY.PEEK[]`` so reading never sets ``\\Seen``. Thread ids are the
  hexadecimal form of ``X-GM-THRID``, which is also the id Gmail's web UI
  uses in conversation links.

Interfaces:
  :class:`MailGateway`, :class:`ImapMailGateway`.

Invariants & Safety:
  - Reads use ``BODY.PEEK[]``; only :meth:`ImapMailGateway.mark_thread_read`
    sets ``\\Seen``.
  - Mutating and fetching IMAP commands pass through :meth:`_throttle`
    (500 actions per minute).
  - A successful SMTP send is recorded in the quota ledger; a failed one is not.
"""
from __future__ import annotations

import smtplib
import time
from collections import deque
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Any, Callable, Deque, Dict, List, Optional, Protocol, Sequence

from imapclient import IMAPClient
from imapclient.exceptions import IMAPClientError

from ..config.schema import ImapSettings, SmtpSettings
from ..core.models import InboxMessage, MailThread
from ..errors import NotFoundError, QuotaExceeded, TransportError
from ..utils.logging import JsonLogger, get_logger
from ..utils.mime import html_to_text, parse_message
from .quota import SendQuotaLedger

SEEN = b"\\Seen"
FETCH_FIELDS = ["BODY.PEEK[]", "FLAGS", "INTERNALDATE"]
THREAD_FIELD = "X-GM-THRID"
ACTIONS_PER_MINUTE = 500


class MailGateway(Protocol):
    """Search, read, send, and mark-read operations against one mailbox."""

    @property
    def account_address(self) -> str: ...

    def search(self, query: str, limit: Optional[int] = None) -> List[MailThread]: ...

    def get_thread(self, thread_id: str) -> MailThread: ...

    def send(self, to: str, subject: str, html_body: str, text_body: Optional[str] = None) -> None: ...

    def remaining_quota(self) -> int: ...

    def mark_thread_read(self, thread: MailThread) -> None: ...


def _aware(moment: Any) -> datetime:
    if not isinstance(moment, datetime):
        return datetime.now(timezone.utc)
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def build_message(
    *,
    sender: str,
    to: str,
    subject: str,
    html_body: str,
    text_body: Optional[str] = None,
) -> EmailMessage:
    """Assemble an RFC 5322 message with a plain part and an optional HTML part."""

    message = EmailMessage()
    message["From"] = sender
    message["To"] = to
    message["Subject"] = subject
    message["Message-ID"] = make_msgid(domain=sender.rsplit("@", 1)[-1].rstrip(">") or None)
    if html_body:
        message.set_content(text_body if text_body is not None else html_to_text(html_body))
        message.add_alternative(html_body, subtype="html")
    else:
        message.set_content(text_body or "")
    return message


class ImapMailGateway:
    """:class:`MailGateway` for a Gmail account reached over IMAP and SMTP.

    Use as a context manager; every method other than :meth:`send` and
    :meth:`remaining_quota` requires an open IMAP session.
    """

    def __init__(
        self,
        imap: ImapSettings,
        smtp: SmtpSettings,
        *,
        quota: SendQuotaLedger,
        link_template: str,
        imap_factory: Optional[Callable[..., Any]] = None,
        smtp_factory: Optional[Callable[..., Any]] = None,
        logger: Optional[JsonLogger] = None,
    ) -> None:
        self._imap_settings = imap
        self._smtp_settings = smtp
        self._quota = quota
        self._link_template = link_template
        self._imap_factory = imap_factory or IMAPClient
        self._smtp_factory = smtp_factory or smtplib.SMTP
        self._logger = logger or get_logger("mailbrief.gateway")
        self._client: Any = None
        self._actions: Deque[float] = deque()

    def __enter__(self) -> "ImapMailGateway":
        settings = self._imap_settings
        try:
            client = self._imap_factory(settings.host, port=settings.port, ssl=settings.ssl, use_uid=True)
            client.normalise_times = False
            client.login(settings.username, settings.resolve_password())
            client.select_folder(settings.folder)
        except (IMAPClientError, OSError) as exc:
            raise TransportError(f"IMAP connection to {settings.host} failed: {exc}") from exc
        self._client = client
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._client is None:
            return
        try:
            self._client.logout()
        except (IMAPClientError, OSError) as error:
            self._logger.warning("imap_logout_failed", error=str(error))
        finally:
            self._client = None

    @property
    def client(self) -> Any:
        if self._client is None:
            raise RuntimeError("IMAP client not connected")
        return self._client

    @property
    def account_address(self) -> str:
        return self._imap_settings.username

    def _throttle(self) -> None:
        """Refuse to exceed :data:`ACTIONS_PER_MINUTE` IMAP actions."""

        now = time.monotonic()
        while self._actions and now - self._actions[0] > 60:
            self._actions.popleft()
        if len(self._actions) >= ACTIONS_PER_MINUTE:
            raise TransportError("IMAP action rate limit exceeded")
        self._actions.append(now)

    def link_for(self, thread_id: str) -> str:
        return self._link_template.format(thread_id=thread_id)

    def search(self, query: str, limit: Optional[int] = None) -> List[MailThread]:
        """Return threads with a message matching ``query``, newest first."""

        self._throttle()
        try:
            uids = self.client.gmail_search(query)
            if not uids:
                return []
            response = self.client.fetch(uids, [THREAD_FIELD])
        except (IMAPClientError, OSError) as exc:
            raise TransportError(f"IMAP search failed: {exc}") from exc
        thread_ids: List[int] = []
        for uid in sorted(response, reverse=True):
            thrid = response[uid].get(THREAD_FIELD.encode())
            if thrid is None or int(thrid) in thread_ids:
                continue
            thread_ids.append(int(thrid))
            if limit is not None and len(thread_ids) >= limit:
                break
        return [self._load_thread(thrid) for thrid in thread_ids]

    def get_thread(self, thread_id: str) -> MailThread:
        """Load one conversation by its hexadecimal id.

        Raises:
          NotFoundError: If ``thread_id`` is malformed or matches no message.
        """

        try:
            thrid = int(thread_id.strip(), 16)
        except ValueError as exc:
            raise NotFoundError(f"thread id {thread_id!r} is not valid") from exc
        thread = self._load_thread(thrid)
        if not thread.messages:
            raise NotFoundError(f"thread {thread_id} not found")
        return thread

    def _load_thread(self, thrid: int) -> MailThread:
        self._throttle()
        try:
            uids = self.client.search([THREAD_FIELD, thrid])
            response: Dict[int, Dict[bytes, Any]] = self.client.fetch(uids, FETCH_FIELDS) if uids else {}
        except (IMAPClientError, OSError) as exc:
            raise TransportError(f"IMAP thread fetch failed: {exc}") from exc
        thread_id = format(thrid, "x")
        messages = [self._to_message(uid, data, thread_id) for uid, data in response.items()]
        messages.sort(key=lambda item: (item.timestamp, int(item.id)))
        return MailThread(id=thread_id, link=self.link_for(thread_id), messages=messages)

    @staticmethod
    def _to_message(uid: int, data: Dict[bytes, Any], thread_id: str) -> InboxMessage:
        parsed = parse_message(data.get(b"BODY[]", b""))
        flags: Sequence[bytes] = data.get(b"FLAGS", ())
        return InboxMessage(
            id=str(uid),
            thread_id=thread_id,
            sender=parsed.headers.get("from", ""),
            subject=parsed.headers.get("subject", ""),
            body=parsed.html_body,
            plain_body=parsed.plain_body,
            timestamp=_aware(data.get(b"INTERNALDATE")),
            unread=SEEN not in flags,
        )

    def mark_thread_read(self, thread: MailThread) -> None:
        uids = [int(message.id) for message in thread.messages]
        if not uids:
            return
        self._throttle()
        try:
            self.client.add_flags(uids, [SEEN])
        except (IMAPClientError, OSError) as exc:
            raise TransportError(f"IMAP mark-read failed for thread {thread.id}: {exc}") from exc

    def remaining_quota(self) -> int:
        return self._quota.remaining()

    def send(self, to: str, subject: str, html_body: str, text_body: Optional[str] = None) -> None:
        """Deliver one message over SMTP.

        Raises:
          QuotaExceeded: The daily send budget is spent.
          TransportError: The relay rejected the message or was unreachable.
        """

        if self._quota.remaining() < 1:
            raise QuotaExceeded("daily send quota exhausted")
        settings = self._smtp_settings
        sender_address = settings.username or self.account_address
        message = build_message(
            sender=formataddr((settings.from_name, sender_address)),
            to=to,
            subject=subject,
            html_body=html_body,
            text_body=text_body,
        )
        try:
            with self._smtp_factory(settings.host, settings.port, timeout=30) as server:
                if settings.starttls:
                    server.starttls()
                server.login(sender_address, settings.resolve_password())
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise TransportError(f"SMTP delivery to {settings.host} failed: {exc}") from exc
        self._quota.record()
        self._logger.info("mail_sent", to=to, subject=subject)
