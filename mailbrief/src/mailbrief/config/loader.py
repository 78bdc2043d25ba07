"""Locate, parse, and cache the MailBrief runtime configuration.

What:
  Discover ``config.yaml``, parse it with PyYAML, and validate it into a
  :class:`~mailbrief.config.schema.RuntimeConfig`.

Why:
  Every CLI command and every scheduled job needs the same operator settings.
  Centralising discovery keeps the precedence order (explicit path, environment
  variable, well-known defaults) identical across entry points and converts
  malformed documents into a single typed error.

How:
  Walk the candidate paths in priority order, read the first existing file,
  reject anything that is not a mapping, and validate the payload with the
  strict pydantic schema. The last successful load is memoised until
  :func:`reset_runtime_config` is called or ``reload=True`` is requested.

Interfaces:
  :func:`load_runtime_config`, :func:`get_runtime_config`,
  :func:`reset_runtime_config`, :class:`RuntimeConfigError`.

Invariants:
  - Only documents passing ``extra="forbid"`` validation are returned.
  - Filesystem and YAML failures surface as :class:`RuntimeConfigError` with
    the offending path in the message.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Iterable, Optional, Tuple

import yaml
from pydantic import ValidationError as _PydanticValidationError

from ..errors import ConfigError
from .schema import RuntimeConfig


class RuntimeConfigError(ConfigError):
    """Raised when ``config.yaml`` cannot be located, parsed, or validated."""


CONFIG_ENV = "MAILBRIEF_CONFIG_PATH"
_DEFAULT_LOCATIONS: Tuple[Path, ...] = (
    Path("config.yaml"),
    Path("/etc/mailbrief/config.yaml"),
)
_RUNTIME_CACHE: Optional[Tuple[Path, RuntimeConfig]] = None


def _candidate_paths(path: Optional[Path]) -> Iterable[Path]:
    """Yield configuration file locations from most to least specific."""

    seen: set[Path] = set()
    ordered: list[Path] = []
    if path is not None:
        ordered.append(path)
    env_path = os.environ.get(CONFIG_ENV)
    if env_path:
        ordered.append(Path(env_path))
    ordered.extend(_DEFAULT_LOCATIONS)
    for raw in ordered:
        candidate = raw.expanduser()
        if candidate in seen:
            continue
        seen.add(candidate)
        yield candidate


def _parse_config_payload(text: str, source: Path) -> dict[str, Any]:
    try:
        payload = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise RuntimeConfigError(f"Invalid YAML in {source}: {exc}") from exc
    if not isinstance(payload, dict):
        raise RuntimeConfigError(f"{source} must contain a mapping at the top-level")
    return payload


def _load_runtime_from_path(path: Path) -> RuntimeConfig:
    """Read ``path`` and validate it as a :class:`RuntimeConfig`.

    Raises:
      RuntimeConfigError: If the file is unreadable or fails validation.
    """

    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise RuntimeConfigError(f"Configuration file missing: {path}") from exc
    except OSError as exc:  # pragma: no cover - filesystem surface
        raise RuntimeConfigError(f"Unable to read configuration file {path}: {exc}") from exc
    payload = _parse_config_payload(text, path)
    try:
        return RuntimeConfig.model_validate(payload)
    except _PydanticValidationError as exc:
        raise RuntimeConfigError(f"Invalid config.yaml ({path}): {exc}") from exc


def load_runtime_config(
    path: Optional[Path | str] = None,
    *,
    reload: bool = False,
) -> RuntimeConfig:
    """Resolve, parse, and cache the runtime configuration.

    Args:
      path: Optional explicit location of ``config.yaml``.
      reload: Bypass the cache and read the file again.

    Returns:
      The validated runtime configuration.

    Raises:
      RuntimeConfigError: If no candidate exists or the first existing one is
        invalid.
    """

    global _RUNTIME_CACHE

    requested_path = Path(path).expanduser() if isinstance(path, (str, Path)) else None
    if not reload and _RUNTIME_CACHE is not None:
        cached_path, cached_config = _RUNTIME_CACHE
        if requested_path is None or cached_path == requested_path:
            return cached_config

    searched: list[str] = []
    for candidate in _candidate_paths(requested_path):
        if not candidate.exists():
            searched.append(str(candidate))
            continue
        config = _load_runtime_from_path(candidate)
        _RUNTIME_CACHE = (candidate, config)
        return config

    listing = ", ".join(searched) if searched else "<none>"
    raise RuntimeConfigError(f"Unable to locate config.yaml (searched: {listing})")


def get_runtime_config() -> RuntimeConfig:
    """Return the cached runtime configuration, loading it on demand."""

    return load_runtime_config()


def reset_runtime_config() -> None:
    """Forget the memoised configuration so the next call re-reads disk."""

    global _RUNTIME_CACHE
    _RUNTIME_CACHE = None
