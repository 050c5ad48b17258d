"""Shared fixtures for the archiver tests."""

from pathlib import Path

import pytest

from archiver.scheduler import shutdown_event


@pytest.fixture(autouse=True)
def _reset_shutdown_event():
    shutdown_event.clear()
    yield
    shutdown_event.clear()


@pytest.fixture
def data_dir(tmp_path) -> Path:
    """A data directory with the required ``messages/`` and ``channels/``."""
    (tmp_path / "messages").mkdir()
    (tmp_path / "channels").mkdir()
    return tmp_path
