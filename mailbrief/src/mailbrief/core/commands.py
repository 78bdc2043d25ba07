"""Operator commands and the text shown in response to them.

What:
  Model the four operator actions (start, stop, run now, show status) as an
  explicit command variant and translate each into a
  :class:`RenderInstruction`: a one-line notification plus the service status
  to display.

Why:
  The presentation layer (the CLI today) should only print. Keeping command
  dispatch and all user-facing wording here makes both testable without a
  terminal and keeps the wording identical across front ends.

Interfaces:
  :class:`Start`, :class:`Stop`, :class:`RunNow`, :class:`ShowStatus`,
  :class:`RenderInstruction`, :func:`handle_command`, :func:`describe_status`,
  :data:`FREQUENCY_CHOICES`.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Union

from ..config.schema import DEFAULT_FREQUENCY_HOURS
from ..errors import ConfigError
from .lifecycle import INVALID_RECIPIENT_MESSAGE, ServiceLifecycleManager, ServiceStatus
from .pipeline import BriefingOutcome, BriefingState

FREQUENCY_CHOICES = (1, 3, 6, 12, 24)

STARTED_MESSAGE = "Service started! Briefing and email fetch features are now active."
STOPPED_MESSAGE = "Service has been successfully stopped."
NOT_CONFIGURED_MESSAGE = "Please set up and start the service first."
STATUS_STOPPED = "Service is currently stopped."
STATUS_RUNNING = (
    "Service is running. Briefings are updated approximately every {hours} hours. "
    "The email fetch feature is also active. Will send to: {recipient}"
)

OUTCOME_MESSAGES = {
    BriefingState.NO_RECIPIENT: NOT_CONFIGURED_MESSAGE,
    BriefingState.QUOTA_EXHAUSTED: "Mail quota is insufficient. The briefing was skipped for this run.",
    BriefingState.INBOX_EMPTY: "No unread emails found. No briefing needed.",
    BriefingState.SELF_ONLY: "All unread emails are self-sent. No briefing needed.",
    BriefingState.DELIVERY_FAILED: "The briefing could not be sent. Please check the logs.",
    BriefingState.DELIVERED: "Manual trigger successful! The briefing has been sent to your email.",
}


@dataclass(frozen=True)
class Start:
    recipient: str
    frequency_hours: object = DEFAULT_FREQUENCY_HOURS


@dataclass(frozen=True)
class Stop:
    pass


@dataclass(frozen=True)
class RunNow:
    pass


@dataclass(frozen=True)
class ShowStatus:
    pass


Command = Union[Start, Stop, RunNow, ShowStatus]


@dataclass(frozen=True)
class RenderInstruction:
    """What the front end should show after a command.

    Attributes:
      notification: One-line message, ``None`` for a plain status query.
      status: Service status to display.
      ok: ``False`` when the command was rejected or its run failed.
      outcome: Briefing outcome for :class:`RunNow`.
    """

    notification: Optional[str]
    status: ServiceStatus
    ok: bool = True
    outcome: Optional[BriefingOutcome] = None

    @property
    def status_text(self) -> str:
        return describe_status(self.status)


def describe_status(status: ServiceStatus) -> str:
    if not status.running:
        return STATUS_STOPPED
    return STATUS_RUNNING.format(hours=status.frequency_hours, recipient=status.recipient)


def handle_command(
    command: Command,
    service: ServiceLifecycleManager,
    *,
    run_briefing: Callable[[], BriefingOutcome],
) -> RenderInstruction:
    """Execute ``command`` against ``service`` and describe the result."""

    if isinstance(command, Start):
        try:
            status = service.enable(command.recipient, command.frequency_hours)
        except ConfigError as exc:
            message = str(exc) or INVALID_RECIPIENT_MESSAGE
            return RenderInstruction(message, service.get_status(), ok=False)
        return RenderInstruction(STARTED_MESSAGE, status)

    if isinstance(command, Stop):
        service.disable()
        return RenderInstruction(STOPPED_MESSAGE, ServiceStatus.stopped())

    if isinstance(command, RunNow):
        if service.configured_recipient() is None:
            return RenderInstruction(NOT_CONFIGURED_MESSAGE, ServiceStatus.stopped(), ok=False)
        outcome = run_briefing()
        ok = outcome.state not in (BriefingState.NO_RECIPIENT, BriefingState.DELIVERY_FAILED)
        return RenderInstruction(OUTCOME_MESSAGES[outcome.state], service.get_status(), ok=ok, outcome=outcome)

    if isinstance(command, ShowStatus):
        return RenderInstruction(None, service.get_status())

    raise TypeError(f"unsupported command {command!r}")
