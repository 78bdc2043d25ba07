"""Cron helpers that decide when scheduled MailBrief jobs are due.

What:
  Translate an "every N hours" cadence into a cron expression and evaluate
  whether a job should fire given its last run.

Why:
  The local scheduler persists one cron expression per job so that the
  ``watch`` loop, a restarted process, or an external cron wrapper all agree on
  when the briefing and fetch-request jobs run.

How:
  Wrap :mod:`croniter`, anchoring calculations on timezone-aware datetimes and
  normalising naive results to UTC.

Interfaces:
  :func:`every_hours_expression`, :func:`next_run`, :func:`is_due`.

Invariants:
  - All returned datetimes carry timezone information.
  - ``last_run=None`` means "never executed" and is always due.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from croniter import croniter


def every_hours_expression(hours: int) -> str:
    """Return the cron expression firing at minute zero every ``hours`` hours.

    Raises:
      ValueError: If ``hours`` is outside ``1..24``.
    """

    if hours < 1 or hours > 24:
        raise ValueError(f"cadence must be between 1 and 24 hours, got {hours}")
    if hours == 24:
        return "0 0 * * *"
    if hours == 1:
        return "0 * * * *"
    return f"0 */{hours} * * *"


def _aware(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def next_run(cron_expr: str, *, now: Optional[datetime] = None) -> datetime:
    """Return the next instant after ``now`` matching ``cron_expr``."""

    base = _aware(now or datetime.now(timezone.utc))
    return _aware(croniter(cron_expr, base).get_next(datetime))


def is_due(cron_expr: str, *, last_run: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """Return ``True`` when a tick of ``cron_expr`` fell after ``last_run``."""

    if last_run is None:
        return True
    current = _aware(now or datetime.now(timezone.utc))
    return current >= next_run(cron_expr, now=_aware(last_run))
