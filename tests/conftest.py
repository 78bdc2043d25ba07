"""Pytest configuration shared by every suite.

What:
  Put the in-repo source tree on ``sys.path`` and point the runtime
  configuration at the canned ``tests/data/config.yaml``.

Why:
  The tests must exercise the working tree rather than an installed wheel, and
  the loader caches configuration globally, so each test starts from a clean
  cache with a known file.

Interfaces:
  :func:`runtime_config` (autouse fixture), :func:`runtime` (fixture).
"""

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "mailbrief" / "src"
if SRC_DIR.exists():
    sys.path.insert(0, str(SRC_DIR))

import pytest

from mailbrief.config.loader import load_runtime_config, reset_runtime_config
from mailbrief.config.schema import PathsConfig

CONFIG_PATH = Path(__file__).resolve().parent / "data" / "config.yaml"


@pytest.fixture(autouse=True)
def runtime_config(monkeypatch: pytest.MonkeyPatch):
    """Apply the canned configuration file and reset the loader cache."""

    monkeypatch.setenv("MAILBRIEF_CONFIG_PATH", str(CONFIG_PATH))
    monkeypatch.delenv("MAILBRIEF_TEST_GEMINI_KEY", raising=False)
    reset_runtime_config()
    try:
        yield
    finally:
        reset_runtime_config()


@pytest.fixture
def runtime(tmp_path: Path):
    """Return the canned runtime configuration with a private state directory."""

    loaded = load_runtime_config(CONFIG_PATH)
    return loaded.model_copy(update={"paths": PathsConfig(state_dir=str(tmp_path / "state"))})
