"""Atomic YAML persistence for MailBrief state files.

What:
  Read and write the small YAML documents that back the config store, the
  local scheduler job table, and the send-quota ledger.

Why:
  The briefing and fetch-request jobs may run concurrently and a run can be
  truncated at any point. Writing to a sibling temporary file and swapping it in
  with :func:`os.replace` guarantees readers observe either the old or the new
  document, never a half-written one.

Interfaces:
  :func:`read_mapping`, :func:`write_mapping`.
"""
from __future__ import annotations

import contextlib
import os
import tempfile
from pathlib import Path
from typing import Any, Dict

import yaml


def read_mapping(path: Path) -> Dict[str, Any]:
    """Return the YAML mapping stored at ``path`` or ``{}`` when absent/empty.

    Raises:
      ValueError: If the file is not valid YAML or holds something other
        than a mapping.
    """

    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    try:
        payload = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ValueError(f"{path} must contain a mapping at the top-level")
    return payload


def write_mapping(path: Path, data: Dict[str, Any]) -> None:
    """Atomically replace ``path`` with the YAML rendering of ``data``."""

    path.parent.mkdir(parents=True, exist_ok=True)
    text = yaml.safe_dump(data, sort_keys=True, allow_unicode=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp_name)
        raise
