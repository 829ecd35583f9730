"""
Shared fixtures for the metrics history test suite.
"""

import pytest
from loguru import logger

from history.backend import InMemoryBackend
from history.store import SeriesStore


@pytest.fixture
def backend():
    return InMemoryBackend()


@pytest.fixture
def store(backend):
    series_store = SeriesStore(backend)
    yield series_store
    series_store.close()


@pytest.fixture
def log_records():
    """Capture loguru records emitted during a test."""
    records = []
    handler_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
    yield records
    logger.remove(handler_id)
