"""Expose the public utility surface for MailBrief.

What:
  Re-export logging, identifier, address, and MIME helpers that other packages
  import without knowing the underlying module layout.

Interfaces:
  ``get_logger``, ``JsonLogger``, ``new_run_id``, ``new_handle``,
  ``bare_address``, ``is_valid_address``, ``parse_message``.

Invariants & Safety:
  - The module only re-exports side-effect-free callables to keep import order
    predictable.
  - Logging defaults emit redacted JSON lines; consumers should avoid bypassing
    these helpers.
"""

from .addresses import bare_address, is_valid_address, same_address
from .ids import new_handle, new_run_id
from .logging import JsonLogger, get_logger
from .mime import ParsedMessage, parse_message

__all__ = [
    "get_logger",
    "JsonLogger",
    "new_run_id",
    "new_handle",
    "bare_address",
    "same_address",
    "is_valid_address",
    "ParsedMessage",
    "parse_message",
]
