"""
Module: mailbrief.__init__

What:
  Package root for MailBrief, a service that summarises unread mail with a
  language model and delivers a ranked briefing email on a schedule.

Interfaces:
  - config: Runtime settings and persisted service state.
  - core: Lifecycle manager, briefing pipeline, fetch-request job, LLM roles.
  - imap: Gmail IMAP/SMTP gateway and the daily send ledger.
  - utils: Logging, identifiers, address and MIME helpers.
"""

__version__ = "0.1.0"

__all__ = [
    "config",
    "core",
    "imap",
    "utils",
]
