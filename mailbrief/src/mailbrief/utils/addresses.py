"""Email address helpers used by the lifecycle manager and the pipeline.

What:
  Extract bare addresses from display-name-qualified ``From`` headers and
  validate the basic shape of operator-supplied recipient addresses.

Why:
  Sender grouping, the self-authored loop guard, and the recipient check in
  :meth:`~mailbrief.core.lifecycle.ServiceLifecycleManager.enable` all need the
  same normalisation; diverging rules would let self-sent briefings leak into
  the next digest.

Interfaces:
  :func:`bare_address`, :func:`same_address`, :func:`is_valid_address`,
  :func:`find_address`.
"""
from __future__ import annotations

import re

_ANGLE_ADDRESS = re.compile(r"<([^<>]*)>")
_ADDRESS_SHAPE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_EMBEDDED_ADDRESS = re.compile(r"[^\s<>()\[\],;:'\"`]+@[^\s<>()\[\],;:'\"`]+\.[^\s<>()\[\],;:'\"`]+")


def bare_address(sender: str) -> str:
    """Return the lower-cased address inside ``sender``.

    ``"Jane Doe <Jane@Example.com>"`` becomes ``"jane@example.com"``; strings
    without angle brackets are returned trimmed and lower-cased.
    """

    match = _ANGLE_ADDRESS.search(sender or "")
    candidate = match.group(1) if match else (sender or "")
    return candidate.strip().lower()


def same_address(left: str, right: str) -> bool:
    """Compare two sender strings by their bare addresses."""

    return bare_address(left) == bare_address(right)


def is_valid_address(value: str | None) -> bool:
    """Return ``True`` when ``value`` looks like ``local@domain.tld``."""

    if not value:
        return False
    return bool(_ADDRESS_SHAPE.match(value.strip()))


def find_address(text: str) -> str | None:
    """Return the first address embedded in ``text``, lower-cased.

    ``"1. Boss@Example.com (urgent)"`` yields ``"boss@example.com"``; text
    without an address yields ``None``.
    """

    match = _EMBEDDED_ADDRESS.search(text or "")
    if match is None:
        return None
    return match.group(0).rstrip(".").lower()
