"""The briefing job: group, summarise, rank, render, deliver, mark read.

What:
  Run one briefing activation against the mailbox and report its terminal
  state as a :class:`BriefingOutcome`.

Why:
  The only irreversible side effect is marking mail read. Doing it strictly
  after a successful delivery means a crash or relay failure at any earlier
  step leaves every message unread, so the next activation reports it again.
  Duplicate briefings are acceptable; silently lost mail is not.

How:
  A linear state machine that stops at the first abort condition:

  1. load the service snapshot (no recipient: stop),
  2. check the send quota (exhausted: stop),
  3. search unread inbox threads (none: stop),
  4. group still-unread messages by bare sender, skipping the recipient's own,
     and summarise each one,
  5. sort every group by timestamp,
  6. with no groups left, mark the fetched threads read and stop,
  7. rank (an order naming no group falls back to first-seen), render,
     deliver,
  8. mark every fetched thread read, tolerating per-thread failures.

Interfaces:
  :class:`BriefingState`, :class:`BriefingOutcome`, :class:`TriagePipeline`,
  :func:`group_by_sender`.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional, Sequence

from ..config.store import ConfigStore
from ..errors import ConfigError, QuotaExceeded, TransportError
from ..imap.gateway import MailGateway
from ..utils.addresses import bare_address, same_address
from ..utils.ids import new_run_id
from ..utils.logging import JsonLogger, get_logger
from .models import MailThread, MessageSummary, SenderGroups
from .ranker import Ranker
from .renderer import ordered_senders, render_briefing
from .summarizer import Summarizer

INBOX_QUERY = "is:inbox is:unread"


class BriefingState(str, Enum):
    NO_RECIPIENT = "no_recipient"
    QUOTA_EXHAUSTED = "quota_exhausted"
    INBOX_EMPTY = "inbox_empty"
    SELF_ONLY = "self_only"
    DELIVERY_FAILED = "delivery_failed"
    DELIVERED = "delivered"


@dataclass
class BriefingOutcome:
    """Terminal state and counters of one briefing run."""

    state: BriefingState
    run_id: str
    threads_fetched: int = 0
    groups: int = 0
    threads_marked_read: int = 0
    mark_read_failures: int = 0

    @property
    def delivered(self) -> bool:
        return self.state is BriefingState.DELIVERED


def group_by_sender(
    threads: Sequence[MailThread],
    *,
    recipient: str,
    summarize: Callable[[str], str],
) -> SenderGroups:
    """Group the unread, non-self messages of ``threads`` by bare sender.

    Senders keep first-seen order; each group is sorted ascending by
    timestamp with a stable sort.
    """

    groups: SenderGroups = {}
    for thread in threads:
        for message in thread.messages:
            if not message.unread:
                continue
            if same_address(message.sender, recipient):
                continue
            summary = MessageSummary(
                subject=message.subject,
                summary_text=summarize(message.plain_body),
                link=thread.link,
                timestamp=message.timestamp,
                thread_id=thread.id,
            )
            groups.setdefault(bare_address(message.sender), []).append(summary)
    for items in groups.values():
        items.sort(key=lambda item: item.timestamp)
    return groups


class TriagePipeline:
    """Briefing job wired to its collaborators."""

    def __init__(
        self,
        *,
        store: ConfigStore,
        gateway: MailGateway,
        summarizer: Summarizer,
        ranker: Ranker,
        timezone_name: str = "America/New_York",
        fetch_prefix: str = "Fetch Email Body:",
        include_unranked: bool = False,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[JsonLogger] = None,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._summarizer = summarizer
        self._ranker = ranker
        self._timezone = timezone_name
        self._fetch_prefix = fetch_prefix
        self._include_unranked = include_unranked
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._logger = logger or get_logger("mailbrief.pipeline")

    def run(self) -> BriefingOutcome:
        run_id = new_run_id()
        log = self._logger
        try:
            snapshot = self._store.load_snapshot()
        except ConfigError as exc:
            log.error("briefing_state_invalid", run_id=run_id, error=str(exc))
            return BriefingOutcome(BriefingState.NO_RECIPIENT, run_id)
        if snapshot is None:
            log.info("briefing_skipped_no_recipient", run_id=run_id)
            return BriefingOutcome(BriefingState.NO_RECIPIENT, run_id)
        recipient = snapshot.recipient_email

        quota = self._gateway.remaining_quota()
        if quota < 1:
            log.warning(
                "briefing_quota_exhausted",
                run_id=run_id,
                remaining=quota,
                error=QuotaExceeded.__name__,
            )
            return BriefingOutcome(BriefingState.QUOTA_EXHAUSTED, run_id)

        threads = self._gateway.search(INBOX_QUERY)
        if not threads:
            log.info("briefing_inbox_empty", run_id=run_id)
            return BriefingOutcome(BriefingState.INBOX_EMPTY, run_id)
        log.info("briefing_threads_found", run_id=run_id, threads=len(threads))

        groups = group_by_sender(threads, recipient=recipient, summarize=self._summarizer.summarize)
        if not groups:
            log.info("briefing_self_only", run_id=run_id, threads=len(threads))
            marked, failures = self._mark_read(threads, run_id)
            return BriefingOutcome(
                BriefingState.SELF_ONLY,
                run_id,
                threads_fetched=len(threads),
                threads_marked_read=marked,
                mark_read_failures=failures,
            )

        ranking = self._ranker.rank(groups)
        if not ordered_senders(ranking, groups, self._include_unranked):
            log.warning("ranking_matches_no_group", run_id=run_id, entries=len(ranking))
            ranking = list(groups)
        document = render_briefing(
            ranking,
            groups,
            command_address=self._gateway.account_address,
            generated_at=self._clock(),
            timezone=self._timezone,
            fetch_prefix=self._fetch_prefix,
            include_unranked=self._include_unranked,
        )
        try:
            self._gateway.send(recipient, document.subject, document.html)
        except (TransportError, QuotaExceeded) as exc:
            log.error("briefing_delivery_failed", run_id=run_id, error=str(exc))
            return BriefingOutcome(
                BriefingState.DELIVERY_FAILED,
                run_id,
                threads_fetched=len(threads),
                groups=len(groups),
            )
        log.info("briefing_delivered", run_id=run_id, groups=len(groups))

        marked, failures = self._mark_read(threads, run_id)
        return BriefingOutcome(
            BriefingState.DELIVERED,
            run_id,
            threads_fetched=len(threads),
            groups=len(groups),
            threads_marked_read=marked,
            mark_read_failures=failures,
        )

    def _mark_read(self, threads: List[MailThread], run_id: str) -> tuple[int, int]:
        marked = 0
        failures = 0
        for thread in threads:
            try:
                self._gateway.mark_thread_read(thread)
            except TransportError as exc:
                failures += 1
                self._logger.error("mark_read_failed", run_id=run_id, thread_id=thread.id, error=str(exc))
                continue
            marked += 1
        self._logger.info("threads_marked_read", run_id=run_id, count=marked, failures=failures)
        return marked, failures
