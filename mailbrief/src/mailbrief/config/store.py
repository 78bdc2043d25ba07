"""Persisted key/value state for the briefing service.

What:
  Store the configured recipient, briefing cadence, and cached scheduler job
  handles in ``<state_dir>/service.yaml``.

Why:
  The lifecycle manager and both scheduled jobs run as separate activations
  that share this state. Each activation re-reads a fresh snapshot and every
  write replaces the whole file atomically, so an interleaved enable, disable,
  or job run never observes a half-written document.

How:
  Load the YAML mapping through :func:`~mailbrief.utils.files.read_mapping`,
  apply the mutation in memory, and write it back with
  :func:`~mailbrief.utils.files.write_mapping`. Snapshots are validated into
  the frozen :class:`~mailbrief.config.schema.ServiceConfig` model.

Interfaces:
  :class:`ConfigStore` (protocol), :class:`FileConfigStore`, key constants.

Invariants & Safety:
  - Values are always persisted as strings.
  - :meth:`FileConfigStore.delete_all` removes the file so no partial state
    survives a disable.
"""
from __future__ import annotations

import contextlib
from pathlib import Path
from typing import Dict, Optional, Protocol

from pydantic import ValidationError

from ..errors import ConfigError
from ..utils.files import read_mapping, write_mapping
from .schema import ServiceConfig

RECIPIENT_KEY = "recipientEmail"
FREQUENCY_KEY = "frequencyHours"
BRIEFING_HANDLE_KEY = "briefingJobHandle"
REQUEST_HANDLE_KEY = "requestJobHandle"
LEGACY_HANDLE_KEY = "jobHandle"

HANDLE_KEYS = (BRIEFING_HANDLE_KEY, REQUEST_HANDLE_KEY, LEGACY_HANDLE_KEY)


class ConfigStore(Protocol):
    """Key/value persistence consumed by the lifecycle manager and jobs."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def delete_all(self) -> None: ...

    def load_snapshot(self) -> Optional[ServiceConfig]: ...

    def save_snapshot(self, config: ServiceConfig) -> None: ...


class FileConfigStore:
    """YAML-backed :class:`ConfigStore` living under the state directory."""

    FILENAME = "service.yaml"

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @classmethod
    def in_state_dir(cls, state_dir: Path | str) -> "FileConfigStore":
        return cls(Path(state_dir) / cls.FILENAME)

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> Dict[str, str]:
        try:
            payload = read_mapping(self._path)
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc
        return {str(key): str(value) for key, value in payload.items() if value is not None}

    def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = str(value)
        write_mapping(self._path, data)

    def delete(self, key: str) -> None:
        data = self._read()
        if key not in data:
            return
        del data[key]
        write_mapping(self._path, data)

    def delete_all(self) -> None:
        with contextlib.suppress(FileNotFoundError):
            self._path.unlink()

    def keys(self) -> list[str]:
        return sorted(self._read())

    def load_snapshot(self) -> Optional[ServiceConfig]:
        """Return the persisted :class:`ServiceConfig` or ``None`` when unset.

        Raises:
          ConfigError: If a recipient is stored but the document is invalid.
        """

        data = self._read()
        if not data.get(RECIPIENT_KEY):
            return None
        try:
            return ServiceConfig.model_validate(data)
        except ValidationError as exc:
            raise ConfigError(f"Invalid service state in {self._path}: {exc}") from exc

    def save_snapshot(self, config: ServiceConfig) -> None:
        """Replace the whole document with ``config`` in one atomic write."""

        write_mapping(self._path, config.to_store())
