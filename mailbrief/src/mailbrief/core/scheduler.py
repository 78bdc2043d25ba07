"""Periodic job registry and the file-backed local scheduler.

What:
  Define the typed registry of jobs MailBrief manages (briefing and fetch
  request), the :class:`Scheduler` contract the lifecycle manager relies on,
  and :class:`LocalScheduler`, which persists a job table under the state
  directory and reports which jobs are due.

Why:
  Scheduled jobs outlive the process that created them. Reconciliation needs
  to recognise its own jobs both by the handle it cached and by the handler
  identity recorded with the job, including identities used by earlier
  releases, so that drift never leaves a duplicate or orphaned job behind.

How:
  Each :class:`JobKind` maps to a :class:`JobSpec` carrying the current
  handler identity and its legacy aliases. The local scheduler stores one
  entry per handle in ``jobs.yaml`` (atomic replace) and evaluates due-ness
  with the cron helpers in :mod:`mailbrief.config.cron`.

Interfaces:
  :class:`JobKind`, :class:`JobSpec`, :data:`JOB_SPECS`,
  :func:`kind_for_identity`, :class:`JobRecord`, :class:`Scheduler`,
  :class:`LocalScheduler`.

Invariants & Safety:
  - Deletion in the local scheduler is synchronous.
  - A job that never ran is anchored on its creation time, so a fresh job
    first fires one full period after it was created.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Protocol, Tuple

from ..config.cron import every_hours_expression, is_due
from ..errors import StaleHandleError
from ..utils.files import read_mapping, write_mapping
from ..utils.ids import new_handle


class JobKind(str, Enum):
    """The two periodic activities the service manages."""

    BRIEFING = "briefing"
    FETCH_REQUEST = "fetch_request"


@dataclass(frozen=True)
class JobSpec:
    kind: JobKind
    identity: str
    aliases: Tuple[str, ...] = ()

    @property
    def identities(self) -> FrozenSet[str]:
        return frozenset((self.identity, *self.aliases))


JOB_SPECS: Dict[JobKind, JobSpec] = {
    JobKind.BRIEFING: JobSpec(
        kind=JobKind.BRIEFING,
        identity="mailbrief.briefing",
        aliases=("forwardAllEmails",),
    ),
    JobKind.FETCH_REQUEST: JobSpec(
        kind=JobKind.FETCH_REQUEST,
        identity="mailbrief.fetch_requests",
        aliases=("processEmailRequest",),
    ),
}


def kind_for_identity(identity: str) -> Optional[JobKind]:
    """Return the :class:`JobKind` whose current or legacy identity matches."""

    for spec in JOB_SPECS.values():
        if identity in spec.identities:
            return spec.kind
    return None


def managed_identities() -> FrozenSet[str]:
    names: set[str] = set()
    for spec in JOB_SPECS.values():
        names.update(spec.identities)
    return frozenset(names)


@dataclass
class JobRecord:
    """One scheduled job as reported by a :class:`Scheduler`."""

    handle: str
    handler_identity: str
    every_hours: int
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_run_at: Optional[datetime] = None

    @property
    def kind(self) -> Optional[JobKind]:
        return kind_for_identity(self.handler_identity)

    @property
    def cron(self) -> str:
        return every_hours_expression(self.every_hours)


class Scheduler(Protocol):
    """Creates, lists, and deletes periodic jobs keyed by handler identity."""

    deletes_are_async: bool

    def create(self, handler_identity: str, every_hours: int) -> str: ...

    def list(self) -> List[JobRecord]: ...

    def delete(self, handle: str) -> None: ...


def _parse_when(value: object) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        moment = value
    else:
        moment = datetime.fromisoformat(str(value))
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


class LocalScheduler:
    """:class:`Scheduler` persisting its job table in ``jobs.yaml``."""

    FILENAME = "jobs.yaml"
    deletes_are_async = False

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @classmethod
    def in_state_dir(cls, state_dir: Path | str) -> "LocalScheduler":
        return cls(Path(state_dir) / cls.FILENAME)

    def _load(self) -> Dict[str, JobRecord]:
        payload = read_mapping(self._path)
        jobs = payload.get("jobs") or {}
        records: Dict[str, JobRecord] = {}
        for handle, entry in jobs.items():
            records[str(handle)] = JobRecord(
                handle=str(handle),
                handler_identity=str(entry["identity"]),
                every_hours=int(entry["every_hours"]),
                created_at=_parse_when(entry.get("created_at")) or datetime.now(timezone.utc),
                last_run_at=_parse_when(entry.get("last_run_at")),
            )
        return records

    def _save(self, records: Dict[str, JobRecord]) -> None:
        jobs = {}
        for handle, record in records.items():
            jobs[handle] = {
                "identity": record.handler_identity,
                "every_hours": record.every_hours,
                "created_at": record.created_at.isoformat(),
                "last_run_at": record.last_run_at.isoformat() if record.last_run_at else None,
            }
        write_mapping(self._path, {"jobs": jobs})

    def create(self, handler_identity: str, every_hours: int, *, now: Optional[datetime] = None) -> str:
        # Validates the cadence before anything is written.
        every_hours_expression(every_hours)
        records = self._load()
        handle = new_handle()
        records[handle] = JobRecord(
            handle=handle,
            handler_identity=handler_identity,
            every_hours=every_hours,
            created_at=now or datetime.now(timezone.utc),
        )
        self._save(records)
        return handle

    def list(self) -> List[JobRecord]:
        return sorted(self._load().values(), key=lambda record: record.created_at)

    def delete(self, handle: str) -> None:
        records = self._load()
        if records.pop(handle, None) is None:
            return
        self._save(records)

    def due(self, now: Optional[datetime] = None) -> List[JobRecord]:
        """Return the jobs whose cadence elapsed since their last run."""

        current = now or datetime.now(timezone.utc)
        return [
            record
            for record in self.list()
            if is_due(record.cron, last_run=record.last_run_at or record.created_at, now=current)
        ]

    def mark_ran(self, handle: str, when: Optional[datetime] = None) -> None:
        """Record that ``handle`` ran at ``when``.

        Raises:
          StaleHandleError: If the job was deleted in the meantime.
        """

        records = self._load()
        record = records.get(handle)
        if record is None:
            raise StaleHandleError(handle)
        record.last_run_at = when or datetime.now(timezone.utc)
        self._save(records)
