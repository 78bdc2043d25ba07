"""Daily outbound-mail ledger backing ``remaining_quota``.

What:
  Count messages sent per calendar day and report how many sends remain under
  the configured daily limit.

Why:
  Mail providers cap daily sends for an account. The briefing checks the
  remaining budget before doing any expensive summarisation so an exhausted
  day is skipped cheaply and retried on the next cadence.

How:
  Persist ``{"limit": n, "sends": {"YYYY-MM-DD": count}}`` in
  ``<state_dir>/send_quota.yaml``. Days are computed in the configured zone and
  entries for other days are pruned on every write.

Interfaces:
  :class:`SendQuotaLedger`.
"""
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo

from ..utils.files import read_mapping, write_mapping


class SendQuotaLedger:
    FILENAME = "send_quota.yaml"

    def __init__(self, path: Path, *, daily_limit: int, zone: str = "UTC") -> None:
        self._path = Path(path)
        self._limit = daily_limit
        self._zone = ZoneInfo(zone)

    @classmethod
    def in_state_dir(cls, state_dir: Path | str, *, daily_limit: int, zone: str = "UTC") -> "SendQuotaLedger":
        return cls(Path(state_dir) / cls.FILENAME, daily_limit=daily_limit, zone=zone)

    @property
    def daily_limit(self) -> int:
        return self._limit

    def _day(self, now: Optional[datetime]) -> str:
        moment = now or datetime.now(timezone.utc)
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return moment.astimezone(self._zone).date().isoformat()

    def sent_today(self, now: Optional[datetime] = None) -> int:
        sends = read_mapping(self._path).get("sends") or {}
        return int(sends.get(self._day(now), 0))

    def remaining(self, now: Optional[datetime] = None) -> int:
        return max(0, self._limit - self.sent_today(now))

    def record(self, now: Optional[datetime] = None, *, count: int = 1) -> int:
        """Add ``count`` sends to today's tally and return the new total."""

        day = self._day(now)
        sends = read_mapping(self._path).get("sends") or {}
        total = int(sends.get(day, 0)) + count
        write_mapping(self._path, {"limit": self._limit, "sends": {day: total}})
        return total
