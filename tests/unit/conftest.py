"""Pytest fixtures for unit tests.

What:
  Make ``tests/unit`` importable so tests can ``from fakes import ...`` and
  expose fixtures wiring the file-backed store and the in-memory fakes.

Interfaces:
  :func:`store`, :func:`scheduler`, :func:`gateway`, :func:`imap_backend`,
  :func:`smtp`.
"""

import sys
from pathlib import Path

import pytest

UNIT_DIR = Path(__file__).resolve().parent
if str(UNIT_DIR) not in sys.path:
    sys.path.insert(0, str(UNIT_DIR))

from fakes import FakeImapBackend, FakeMailGateway, FakeScheduler, FakeSMTP

from mailbrief.config.store import FileConfigStore


@pytest.fixture
def store(tmp_path: Path) -> FileConfigStore:
    return FileConfigStore.in_state_dir(tmp_path / "state")


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def gateway() -> FakeMailGateway:
    return FakeMailGateway()


@pytest.fixture
def imap_backend() -> FakeImapBackend:
    return FakeImapBackend()


@pytest.fixture
def smtp():
    """Yield the :class:`FakeSMTP` class with its recorders reset."""

    FakeSMTP.instances = []
    FakeSMTP.fail_with = None
    try:
        yield FakeSMTP
    finally:
        FakeSMTP.instances = []
        FakeSMTP.fail_with = None
