"""CLI wiring tests ensuring Typer commands integrate with runtime helpers.

What:
  Validate ``start``, ``status``, ``stop``, ``run-now``, ``fetch-requests``,
  and ``watch`` against a real state directory, with the mailbox-touching jobs
  monkeypatched out, plus the due-job dispatcher behind ``watch``.

Why:
  The CLI coordinates the lifecycle manager, the local scheduler, and both
  jobs; regression tests prevent accidental breaks when refactoring
  dependency wiring or exit codes.

How:
  Use :class:`typer.testing.CliRunner` with ``load_runtime_config`` patched to
  return the canned runtime pointing at ``tmp_path``.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from typer.testing import CliRunner

from mailbrief._wiring import dispatch_due_jobs, exponential_backoff, resolve_interval
from mailbrief.cli import app
from mailbrief.core.fetch_request import FetchReport
from mailbrief.core.pipeline import BriefingOutcome, BriefingState
from mailbrief.core.scheduler import JOB_SPECS, JobKind, LocalScheduler

runner = CliRunner()


@pytest.fixture
def cli_runtime(monkeypatch: pytest.MonkeyPatch, runtime: Any) -> Any:
    monkeypatch.setattr("mailbrief.cli.load_runtime_config", lambda: runtime)
    return runtime


def test_status_when_never_started(cli_runtime: Any) -> None:
    result = runner.invoke(app, ["status"])

    assert result.exit_code == 0
    assert "Service is currently stopped." in result.stdout


def test_start_status_stop_round_trip(cli_runtime: Any) -> None:
    """Starting registers both jobs; stopping removes them."""

    started = runner.invoke(app, ["start", "--recipient", "owner@example.com", "--frequency", "6"])
    assert started.exit_code == 0
    assert "Service started!" in started.stdout
    assert "approximately every 6 hours" in started.stdout

    scheduler = LocalScheduler.in_state_dir(cli_runtime.paths.state_dir)
    identities = sorted(record.handler_identity for record in scheduler.list())
    assert identities == sorted(spec.identity for spec in JOB_SPECS.values())

    status = runner.invoke(app, ["status"])
    assert "Will send to: owner@example.com" in status.stdout

    stopped = runner.invoke(app, ["stop"])
    assert stopped.exit_code == 0
    assert "Service has been successfully stopped." in stopped.stdout
    assert scheduler.list() == []


def test_start_rejects_invalid_recipient(cli_runtime: Any) -> None:
    result = runner.invoke(app, ["start", "-r", "nobody"])

    assert result.exit_code == 1
    assert "Please enter a valid email address." in result.stdout
    assert "Service is currently stopped." in result.stdout


def test_run_now_without_setup_does_not_touch_mailbox(
    monkeypatch: pytest.MonkeyPatch, cli_runtime: Any
) -> None:
    def _boom(runtime: Any) -> None:
        raise AssertionError("mailbox must not be opened")

    monkeypatch.setattr("mailbrief.cli.run_briefing", _boom)

    result = runner.invoke(app, ["run-now"])

    assert result.exit_code == 1
    assert "Please set up and start the service first." in result.stdout


@pytest.mark.parametrize(
    "state, exit_code, text",
    [
        (BriefingState.DELIVERED, 0, "Manual trigger successful!"),
        (BriefingState.INBOX_EMPTY, 0, "No unread emails found."),
        (BriefingState.DELIVERY_FAILED, 1, "could not be sent"),
    ],
)
def test_run_now_reports_outcome(
    monkeypatch: pytest.MonkeyPatch, cli_runtime: Any, state: BriefingState, exit_code: int, text: str
) -> None:
    runner.invoke(app, ["start", "-r", "owner@example.com"])
    monkeypatch.setattr("mailbrief.cli.run_briefing", lambda runtime: BriefingOutcome(state, "run-1"))

    result = runner.invoke(app, ["run-now"])

    assert result.exit_code == exit_code
    assert text in result.stdout


def test_fetch_requests_summary(monkeypatch: pytest.MonkeyPatch, cli_runtime: Any) -> None:
    report = FetchReport(run_id="r", processed=2, replied=1, not_found=1)
    monkeypatch.setattr("mailbrief.cli.run_fetch_requests", lambda runtime: report)

    result = runner.invoke(app, ["fetch-requests"])

    assert result.exit_code == 0
    assert "Processed 2 request(s): 1 replied, 1 not found, 0 failed." in result.stdout


def test_watch_single_cycle_then_keyboard_interrupt(
    monkeypatch: pytest.MonkeyPatch, cli_runtime: Any
) -> None:
    """``watch`` exits gracefully on ``KeyboardInterrupt`` after a cycle."""

    cycles: list[int] = []
    monkeypatch.setattr("mailbrief.cli.dispatch_due_jobs", lambda runtime, scheduler: cycles.append(1) or [])

    sleep_calls: list[int] = []

    def _sleep(interval: int) -> None:
        sleep_calls.append(interval)
        raise KeyboardInterrupt

    monkeypatch.setattr("mailbrief.cli.time.sleep", _sleep)

    result = runner.invoke(app, ["watch", "--interval", "1"])

    assert result.exit_code == 0
    assert cycles == [1]
    assert sleep_calls == [1]


def test_watch_backoff_on_exception(monkeypatch: pytest.MonkeyPatch, cli_runtime: Any) -> None:
    """A failing cycle sleeps for the backoff delay before retrying."""

    outcomes = [RuntimeError("imap down"), []]

    def _dispatch(runtime: Any, scheduler: Any) -> list:
        item = outcomes.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    sleep_calls: list[int] = []
    monkeypatch.setattr("mailbrief.cli.dispatch_due_jobs", _dispatch)
    monkeypatch.setattr("mailbrief.cli.time.sleep", sleep_calls.append)

    result = runner.invoke(app, ["watch", "--interval", "7", "--max-cycles", "2"])

    assert result.exit_code == 0
    assert sleep_calls == [5]


def test_watch_exits_nonzero_when_last_cycle_fails(
    monkeypatch: pytest.MonkeyPatch, cli_runtime: Any
) -> None:
    def _dispatch(runtime: Any, scheduler: Any) -> list:
        raise RuntimeError("imap down")

    monkeypatch.setattr("mailbrief.cli.dispatch_due_jobs", _dispatch)
    monkeypatch.setattr("mailbrief.cli.time.sleep", lambda delay: None)

    result = runner.invoke(app, ["watch", "--max-cycles", "1"])

    assert result.exit_code == 1


def test_dispatch_runs_due_jobs_and_records_run(runtime: Any) -> None:
    scheduler = LocalScheduler.in_state_dir(runtime.paths.state_dir)
    created = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
    briefing = scheduler.create(JOB_SPECS[JobKind.BRIEFING].identity, 6, now=created)
    scheduler.create(JOB_SPECS[JobKind.FETCH_REQUEST].identity, 1, now=created)
    scheduler.create("someone.else", 1, now=created)

    calls: list[JobKind] = []
    registry = {
        JobKind.BRIEFING: lambda rt: calls.append(JobKind.BRIEFING),
        JobKind.FETCH_REQUEST: lambda rt: calls.append(JobKind.FETCH_REQUEST),
    }
    now = created + timedelta(hours=1, minutes=5)

    ran = dispatch_due_jobs(runtime, scheduler, now=now, registry=registry)

    assert calls == [JobKind.FETCH_REQUEST]
    assert [record.kind for record in ran] == [JobKind.FETCH_REQUEST]
    assert dispatch_due_jobs(runtime, scheduler, now=now, registry=registry) == []

    later = created + timedelta(hours=6, minutes=1)
    dispatch_due_jobs(runtime, scheduler, now=later, registry=registry)
    assert JobKind.BRIEFING in calls
    assert {record.handle: record.last_run_at for record in scheduler.list()}[briefing] == later


def test_failed_job_stays_due(runtime: Any) -> None:
    scheduler = LocalScheduler.in_state_dir(runtime.paths.state_dir)
    created = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
    scheduler.create(JOB_SPECS[JobKind.FETCH_REQUEST].identity, 1, now=created)
    now = created + timedelta(hours=2)

    def _fail(rt: Any) -> None:
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        dispatch_due_jobs(runtime, scheduler, now=now, registry={JobKind.FETCH_REQUEST: _fail})

    assert len(scheduler.due(now)) == 1


def test_failing_job_does_not_block_later_jobs(runtime: Any) -> None:
    scheduler = LocalScheduler.in_state_dir(runtime.paths.state_dir)
    created = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
    briefing = scheduler.create(JOB_SPECS[JobKind.BRIEFING].identity, 6, now=created)
    fetch = scheduler.create(JOB_SPECS[JobKind.FETCH_REQUEST].identity, 1, now=created + timedelta(minutes=1))
    now = created + timedelta(hours=6, minutes=5)

    def _fail(rt: Any) -> None:
        raise RuntimeError("imap down")

    calls: list[JobKind] = []
    registry = {
        JobKind.BRIEFING: _fail,
        JobKind.FETCH_REQUEST: lambda rt: calls.append(JobKind.FETCH_REQUEST),
    }

    with pytest.raises(RuntimeError, match="imap down"):
        dispatch_due_jobs(runtime, scheduler, now=now, registry=registry)

    assert calls == [JobKind.FETCH_REQUEST]
    assert [record.handle for record in scheduler.due(now)] == [briefing]
    assert {record.handle: record.last_run_at for record in scheduler.list()}[fetch] == now


def test_backoff_and_interval_helpers() -> None:
    assert [exponential_backoff(failures=n) for n in range(8)] == [5, 10, 20, 40, 80, 160, 300, 300]
    assert resolve_interval(None) == 60
    assert resolve_interval(0) == 60
    assert resolve_interval(15) == 15
