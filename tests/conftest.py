"""
Shared pytest fixtures for the evtq test suite.

Provides an in-memory FakeHost so every source, the processor and the CLI
can be exercised without the Windows Event Log.

Usage in tests:
    def test_something(fake_host):
        fake_host.add_backup("app.evtx", [make_event(record_id=1)])
        # ... run a source against it
"""

import logging

import pytest

from evtq.log import LOGGER_NAME
from tests.factories import FakeHost


@pytest.fixture
def fake_host():
    """An empty FakeHost."""
    return FakeHost()


@pytest.fixture(autouse=True)
def evtq_logging():
    """
    Route evtq log records through pytest's caplog.

    configure_logging() turns propagation off; restore it after each test so
    caplog keeps seeing records.
    """
    logger = logging.getLogger(LOGGER_NAME)
    handlers = list(logger.handlers)
    yield
    for handler in list(logger.handlers):
        if handler not in handlers:
            logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep user config and EVTQ_* variables out of tests."""
    for name in ("EVTQ_OUTPUT_FORMAT", "EVTQ_QUIESCENCE_INTERVAL", "EVTQ_PIPELINE_MODE",
                 "EVTQ_QUEUE_SIZE", "EVTQ_METADATA_CACHE", "EVTQ_COLUMNS", "EVTQ_DATEFMT"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("evtq.config.ConfigManager.USER_CONFIG_DIR", tmp_path / "home-evtq")
