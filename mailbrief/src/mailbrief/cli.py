"""MailBrief command-line interface.

What:
  Provide the Typer application operators use to start and stop the service,
  inspect its status, run either job by hand, and drive the local scheduler.

Why:
  The CLI is the service's only front end. Each command maps onto one entry of
  the command variant in :mod:`mailbrief.core.commands`, so wording and
  validation are shared with any other front end, and ``watch`` gives hosts
  without cron a long-running scheduler loop.

How:
  Load the runtime configuration, build collaborators through
  :mod:`mailbrief._wiring`, and print the resulting render instruction.
  ``watch`` polls the scheduler for due jobs and dispatches them through the
  job registry, backing off exponentially after failed cycles.

Interfaces:
  ``app`` (Typer application), ``start``, ``stop``, ``status``, ``run_now``,
  ``fetch_requests``, ``watch``.

Invariants & Safety:
  - Exit codes follow shell expectations (``0`` success, ``1`` failure).
  - ``watch`` logs a failed cycle and retries it with capped backoff instead
    of exiting.
"""
from __future__ import annotations

import time
from typing import Optional

import typer

from ._wiring import (
    build_lifecycle,
    build_scheduler,
    dispatch_due_jobs,
    exponential_backoff,
    resolve_interval,
    run_briefing,
    run_fetch_requests,
)
from .config.loader import load_runtime_config
from .config.schema import DEFAULT_FREQUENCY_HOURS, RuntimeConfig
from .core.commands import (
    FREQUENCY_CHOICES,
    Command,
    RenderInstruction,
    RunNow,
    ShowStatus,
    Start,
    Stop,
    handle_command,
)
from .errors import MailBriefError
from .utils.logging import get_logger

app = typer.Typer(help="MailBrief: AI inbox briefings delivered by email")

LOGGER = get_logger("mailbrief.cli")


def _runtime() -> RuntimeConfig:
    try:
        return load_runtime_config()
    except MailBriefError as exc:
        LOGGER.error("runtime_load_failed", error=str(exc))
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc


def _execute(command: Command) -> None:
    runtime = _runtime()
    service = build_lifecycle(runtime)
    try:
        instruction = handle_command(command, service, run_briefing=lambda: run_briefing(runtime))
    except MailBriefError as exc:
        LOGGER.error("command_failed", command=type(command).__name__, error=str(exc))
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    _render(instruction)
    if not instruction.ok:
        raise typer.Exit(code=1)


def _render(instruction: RenderInstruction) -> None:
    if instruction.notification:
        typer.echo(instruction.notification)
    typer.echo(instruction.status_text)


@app.command("start")
def start(
    recipient: str = typer.Option(..., "--recipient", "-r", help="Address receiving briefings and fetched emails"),
    frequency: int = typer.Option(
        DEFAULT_FREQUENCY_HOURS,
        "--frequency",
        "-f",
        help="Briefing cadence in hours (suggested: " + ", ".join(str(c) for c in FREQUENCY_CHOICES) + ")",
    ),
) -> None:
    """Start or update the service."""

    _execute(Start(recipient=recipient, frequency_hours=frequency))


@app.command("stop")
def stop() -> None:
    """Stop the service and remove every scheduled job."""

    _execute(Stop())


@app.command("status")
def status() -> None:
    """Show whether the service is running."""

    _execute(ShowStatus())


@app.command("run-now")
def run_now() -> None:
    """Build and send a briefing immediately."""

    _execute(RunNow())


@app.command("fetch-requests")
def fetch_requests() -> None:
    """Answer pending "Fetch Email Body" commands once."""

    runtime = _runtime()
    try:
        report = run_fetch_requests(runtime)
    except MailBriefError as exc:
        LOGGER.error("fetch_requests_failed", error=str(exc))
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(
        f"Processed {report.processed} request(s): {report.replied} replied, "
        f"{report.not_found} not found, {report.failed} failed."
    )
    if report.failed:
        raise typer.Exit(code=1)


@app.command("watch")
def watch(
    interval: Optional[int] = typer.Option(None, help="Seconds between scheduler polls"),
    max_cycles: Optional[int] = typer.Option(None, help="Stop after this many cycles"),
) -> None:
    """Run due jobs continuously until interrupted."""

    runtime = _runtime()
    scheduler = build_scheduler(runtime)
    base_interval = resolve_interval(interval)
    failures = 0
    cycles = 0
    try:
        while max_cycles is None or cycles < max_cycles:
            cycles += 1
            try:
                ran = dispatch_due_jobs(runtime, scheduler)
            except Exception as exc:
                failures += 1
                delay = exponential_backoff(failures=failures - 1)
                LOGGER.error("watch_cycle_failed", cycle=cycles, backoff=delay, error=str(exc))
                if max_cycles is not None and cycles >= max_cycles:
                    raise typer.Exit(code=1) from exc
                time.sleep(delay)
                continue
            failures = 0
            LOGGER.info("watch_cycle_completed", cycle=cycles, jobs=len(ran))
            if max_cycles is not None and cycles >= max_cycles:
                break
            time.sleep(base_interval)
    except KeyboardInterrupt:
        LOGGER.info("watch_stopped", cycles=cycles)
        raise typer.Exit(code=0) from None


def main() -> None:
    """Execute the Typer application entry point."""

    app()


if __name__ == "__main__":  # pragma: no cover
    main()
