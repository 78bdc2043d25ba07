"""Idempotent enable/disable/status for the two periodic jobs.

What:
  Register the briefing and fetch-request jobs with the scheduler, remove
  them, and report whether the service is running.

Why:
  Jobs outlive the process and the cached handles can drift from what the
  scheduler actually holds: a crash between create and persist, a job deleted
  by hand, or handles written by an older release. Every enable therefore
  starts with a full reconciliation that removes any job MailBrief could have
  created, and status checks self-heal when a cached handle went stale.

How:
  :meth:`ServiceLifecycleManager.disable` deletes every scheduler job matched
  by a stored handle (current or legacy key) or by a managed handler identity
  (current or legacy alias), then clears the store. :meth:`enable` validates
  its input before touching anything, disables, waits for the scheduler to
  settle when its deletions are asynchronous, creates the desired jobs, and
  persists the new snapshot in one write.

Interfaces:
  :class:`ServiceStatus`, :class:`ServiceLifecycleManager`,
  :func:`validate_frequency`.

Invariants & Safety:
  - At most one job per :class:`~mailbrief.core.scheduler.JobKind` exists
    after :meth:`enable` returns.
  - A :class:`~mailbrief.errors.ConfigError` from :meth:`enable` leaves the
    store and the scheduler untouched.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Set

from ..config.schema import ServiceConfig
from ..config.store import HANDLE_KEYS, RECIPIENT_KEY, ConfigStore
from ..errors import ConfigError, StaleHandleError
from ..utils.addresses import is_valid_address
from ..utils.logging import JsonLogger, get_logger
from .scheduler import JOB_SPECS, JobKind, JobRecord, Scheduler, managed_identities

INVALID_RECIPIENT_MESSAGE = "Please enter a valid email address."
INVALID_FREQUENCY_MESSAGE = "Briefing frequency must be a whole number of hours between 1 and 24."


@dataclass(frozen=True)
class ServiceStatus:
    running: bool
    recipient: Optional[str] = None
    frequency_hours: Optional[int] = None

    @classmethod
    def stopped(cls) -> "ServiceStatus":
        return cls(running=False)


def validate_frequency(value: object) -> int:
    """Return ``value`` as an hour count in ``1..24``.

    Raises:
      ConfigError: If ``value`` is not a whole number in range.
    """

    if isinstance(value, bool):
        raise ConfigError(INVALID_FREQUENCY_MESSAGE)
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int) or not 1 <= value <= 24:
        raise ConfigError(INVALID_FREQUENCY_MESSAGE)
    return value


class ServiceLifecycleManager:
    def __init__(
        self,
        *,
        store: ConfigStore,
        scheduler: Scheduler,
        settle_seconds: float = 10.0,
        request_job_hours: int = 1,
        sleep: Callable[[float], None] = time.sleep,
        logger: Optional[JsonLogger] = None,
    ) -> None:
        self._store = store
        self._scheduler = scheduler
        self._settle_seconds = settle_seconds
        self._request_job_hours = request_job_hours
        self._sleep = sleep
        self._logger = logger or get_logger("mailbrief.lifecycle")

    def _stored_handles(self) -> Set[str]:
        try:
            stored = [self._store.get(key) for key in HANDLE_KEYS]
        except ConfigError as exc:
            # Identity matching still finds every managed job.
            self._logger.error("service_state_unreadable", error=str(exc))
            return set()
        return {value for value in stored if value}

    def managed_jobs(self) -> List[JobRecord]:
        """Return every scheduler job this service owns or once owned."""

        handles = self._stored_handles()
        identities = managed_identities()
        return [
            record
            for record in self._scheduler.list()
            if record.handle in handles or record.handler_identity in identities
        ]

    def disable(self) -> int:
        """Delete every managed job and all persisted service state.

        Returns:
          The number of scheduler jobs deleted.
        """

        deleted = 0
        for record in self.managed_jobs():
            self._scheduler.delete(record.handle)
            deleted += 1
            self._logger.info("job_deleted", handle=record.handle, identity=record.handler_identity)
        self._store.delete_all()
        self._logger.info("service_disabled", deleted=deleted)
        return deleted

    def enable(self, recipient: str, frequency_hours: object) -> ServiceStatus:
        """(Re)start the service for ``recipient`` every ``frequency_hours``.

        Raises:
          ConfigError: If the recipient or the frequency is invalid. Nothing is
            changed in that case.
        """

        if not is_valid_address(recipient):
            raise ConfigError(INVALID_RECIPIENT_MESSAGE)
        hours = validate_frequency(frequency_hours)
        recipient = recipient.strip()

        self.disable()
        if self._scheduler.deletes_are_async and self._settle_seconds > 0:
            self._logger.debug("scheduler_settle", seconds=self._settle_seconds)
            self._sleep(self._settle_seconds)

        briefing_handle = self._scheduler.create(JOB_SPECS[JobKind.BRIEFING].identity, hours)
        request_handle = self._scheduler.create(
            JOB_SPECS[JobKind.FETCH_REQUEST].identity, self._request_job_hours
        )
        self._store.save_snapshot(
            ServiceConfig(
                recipient_email=recipient,
                frequency_hours=hours,
                briefing_job_handle=briefing_handle,
                request_job_handle=request_handle,
            )
        )
        self._logger.info("service_enabled", frequency_hours=hours, briefing=briefing_handle, request=request_handle)
        return ServiceStatus(running=True, recipient=recipient, frequency_hours=hours)

    def configured_recipient(self) -> Optional[str]:
        return self._store.get(RECIPIENT_KEY) or None

    def get_status(self) -> ServiceStatus:
        """Report the service state, cleaning up if a cached handle went stale."""

        try:
            snapshot = self._store.load_snapshot()
        except ConfigError as exc:
            self._logger.error("service_state_invalid", error=str(exc))
            self.disable()
            return ServiceStatus.stopped()
        if snapshot is None or not snapshot.briefing_job_handle:
            return ServiceStatus.stopped()

        live = {record.handle for record in self._scheduler.list()}
        for handle in (snapshot.briefing_job_handle, snapshot.request_job_handle):
            if handle and handle not in live:
                self._logger.warning("stale_job_handle", error=str(StaleHandleError(handle)))
                self.disable()
                return ServiceStatus.stopped()
        return ServiceStatus(
            running=True,
            recipient=snapshot.recipient_email,
            frequency_hours=snapshot.frequency_hours,
        )
