"""MailBrief configuration package.

What:
  Expose operator settings (``config.yaml``) and the persisted service state
  (recipient, cadence, job handles) behind one import surface.

Interfaces:
  - get_runtime_config / load_runtime_config / reset_runtime_config: Resolve
    and cache ``config.yaml``.
  - RuntimeConfig / ServiceConfig: Pydantic models for both documents.
  - ConfigStore / FileConfigStore: Key/value persistence for service state.
"""

from .loader import (
    RuntimeConfigError,
    get_runtime_config,
    load_runtime_config,
    reset_runtime_config,
)
from .schema import RuntimeConfig, ServiceConfig
from .store import ConfigStore, FileConfigStore

__all__ = [
    "get_runtime_config",
    "load_runtime_config",
    "reset_runtime_config",
    "RuntimeConfigError",
    "RuntimeConfig",
    "ServiceConfig",
    "ConfigStore",
    "FileConfigStore",
]
