"""Shared test fixtures for the perpetual exchange indexer."""

import pytest

from perp_indexer.config import AppSettings, IngestSettings, ProjectionSettings, StoreSettings
from perp_indexer.dispatcher import EventDispatcher
from perp_indexer.store.memory import InMemoryEntityStore


@pytest.fixture
def mock_settings() -> AppSettings:
    """Return AppSettings with test defaults (in-memory store, no retry delay)."""
    return AppSettings(
        log_level="DEBUG",
        store=StoreSettings(backend="memory"),
        ingest=IngestSettings(max_retries=3, retry_base_delay=0.0),
        projection=ProjectionSettings(),
    )


@pytest.fixture
def store() -> InMemoryEntityStore:
    return InMemoryEntityStore()


@pytest.fixture
def dispatcher(store: InMemoryEntityStore) -> EventDispatcher:
    return EventDispatcher(store)
