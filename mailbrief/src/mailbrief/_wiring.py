"""Helpers bridging the CLI with the runtime collaborators.

What:
  Build the store, scheduler, lifecycle manager, gateway, and LLM client from
  a :class:`~mailbrief.config.schema.RuntimeConfig`, run each job once, and
  dispatch the scheduler's due jobs through a registry keyed by job kind.

Why:
  Keeping construction here lets :mod:`mailbrief.cli` stay a thin
  presentation layer and lets tests replace one collaborator at a time by
  monkeypatching a single builder.

How:
  Plain functions taking the runtime configuration. Jobs that need the mailbox
  open an :class:`~mailbrief.imap.gateway.ImapMailGateway` for the duration of
  one run.

Interfaces:
  ``build_store``, ``build_scheduler``, ``build_lifecycle``, ``build_llm``,
  ``build_gateway``, ``run_briefing``, ``run_fetch_requests``,
  ``JOB_REGISTRY``, ``dispatch_due_jobs``, ``exponential_backoff``,
  ``resolve_interval``.

Invariants & Safety:
  - A job that raises is not marked as ran, so it stays due and is retried on
    the next ``watch`` cycle. Other due jobs still run in that cycle.
  - ``exponential_backoff`` clamps values between the configured base and cap.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from .config.schema import RuntimeConfig
from .config.store import FileConfigStore
from .core.fetch_request import FetchReport, FetchRequestJob
from .core.lifecycle import ServiceLifecycleManager
from .core.llm import GeminiClient
from .core.pipeline import BriefingOutcome, TriagePipeline
from .core.ranker import Ranker
from .core.scheduler import JobKind, JobRecord, LocalScheduler
from .core.summarizer import Summarizer
from .errors import StaleHandleError
from .imap.gateway import ImapMailGateway
from .imap.quota import SendQuotaLedger
from .utils.logging import JsonLogger, get_logger

DEFAULT_WATCH_INTERVAL = 60


def build_store(runtime: RuntimeConfig) -> FileConfigStore:
    return FileConfigStore.in_state_dir(runtime.paths.state_dir)


def build_scheduler(runtime: RuntimeConfig) -> LocalScheduler:
    return LocalScheduler.in_state_dir(runtime.paths.state_dir)


def build_lifecycle(runtime: RuntimeConfig) -> ServiceLifecycleManager:
    return ServiceLifecycleManager(
        store=build_store(runtime),
        scheduler=build_scheduler(runtime),
        settle_seconds=runtime.service.settle_seconds,
        request_job_hours=runtime.service.request_job_hours,
    )


def build_llm(runtime: RuntimeConfig) -> GeminiClient:
    settings = runtime.llm
    return GeminiClient(
        endpoint=settings.endpoint,
        model=settings.model,
        api_key=settings.api_key,
        timeout_s=settings.timeout_s,
    )


def build_gateway(runtime: RuntimeConfig) -> ImapMailGateway:
    quota = SendQuotaLedger.in_state_dir(
        runtime.paths.state_dir,
        daily_limit=runtime.briefing.daily_send_quota,
        zone=runtime.briefing.timezone,
    )
    return ImapMailGateway(
        runtime.imap,
        runtime.smtp,
        quota=quota,
        link_template=runtime.briefing.link_template,
    )


def run_briefing(runtime: RuntimeConfig) -> BriefingOutcome:
    """Run one briefing against a freshly opened mailbox session."""

    llm = build_llm(runtime)
    with build_gateway(runtime) as gateway:
        pipeline = TriagePipeline(
            store=build_store(runtime),
            gateway=gateway,
            summarizer=Summarizer(llm, language=runtime.llm.summary_language),
            ranker=Ranker(llm),
            timezone_name=runtime.briefing.timezone,
            fetch_prefix=runtime.briefing.fetch_prefix,
            include_unranked=runtime.briefing.include_unranked,
        )
        return pipeline.run()


def run_fetch_requests(runtime: RuntimeConfig) -> FetchReport:
    """Answer pending fetch commands once."""

    with build_gateway(runtime) as gateway:
        job = FetchRequestJob(
            store=build_store(runtime),
            gateway=gateway,
            fetch_prefix=runtime.briefing.fetch_prefix,
        )
        return job.run()


JOB_REGISTRY: Dict[JobKind, Callable[[RuntimeConfig], Any]] = {
    JobKind.BRIEFING: run_briefing,
    JobKind.FETCH_REQUEST: run_fetch_requests,
}


def dispatch_due_jobs(
    runtime: RuntimeConfig,
    scheduler: LocalScheduler,
    *,
    now: Optional[datetime] = None,
    registry: Optional[Dict[JobKind, Callable[[RuntimeConfig], Any]]] = None,
    logger: Optional[JsonLogger] = None,
) -> List[JobRecord]:
    """Run every due job once and record its run time.

    A failing job is logged and left unmarked; the remaining due jobs still
    run in the same cycle.

    Returns:
      The job records that ran.

    Raises:
      Exception: The first failure of the cycle, re-raised once every due job
        has been attempted so the caller can back off.
    """

    log = logger or get_logger("mailbrief.watch")
    handlers = registry if registry is not None else JOB_REGISTRY
    current = now or datetime.now(timezone.utc)
    ran: List[JobRecord] = []
    failures: List[Exception] = []
    for record in scheduler.due(current):
        kind = record.kind
        handler = handlers.get(kind) if kind is not None else None
        if handler is None:
            log.warning("job_unroutable", handle=record.handle, identity=record.handler_identity)
            continue
        log.info("job_started", handle=record.handle, kind=kind.value)
        try:
            result = handler(runtime)
        except Exception as exc:
            log.error("job_failed", handle=record.handle, kind=kind.value, error=str(exc))
            failures.append(exc)
            continue
        try:
            scheduler.mark_ran(record.handle, current)
        except StaleHandleError as exc:
            log.warning("job_deleted_while_running", error=str(exc))
        log.info("job_finished", handle=record.handle, kind=kind.value, result=_describe(result))
        ran.append(record)
    if failures:
        raise failures[0]
    return ran


def _describe(result: Any) -> Any:
    state = getattr(result, "state", None)
    if state is not None:
        return getattr(state, "value", state)
    if isinstance(result, FetchReport):
        return {
            "processed": result.processed,
            "replied": result.replied,
            "not_found": result.not_found,
            "failed": result.failed,
        }
    return None


def resolve_interval(override: Optional[int], default: int = DEFAULT_WATCH_INTERVAL) -> int:
    """Return ``override`` when positive, otherwise ``default`` (at least 1)."""

    if override is not None and override > 0:
        return override
    return max(default, 1)


def exponential_backoff(
    *,
    base: int = 5,
    factor: float = 2.0,
    cap: int = 300,
    failures: int = 0,
) -> int:
    """Return ``base * factor**failures`` clamped to ``[base, cap]`` seconds."""

    delay = base * (factor ** max(failures, 0))
    if delay < base:
        delay = base
    if delay > cap:
        delay = cap
    return int(delay)
