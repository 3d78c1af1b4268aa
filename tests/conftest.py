"""
Shared test fixtures and configuration for entire test suite.

Provides: Memory store services, clients, settings cache isolation
Dependencies: pytest
System role: Test infrastructure and fixture management
"""

import pytest

from entitystore.boundary.store.memory_store import MemoryStoreService
from entitystore.configs import get_settings
from entitystore.core.client import EntityStoreClient


@pytest.fixture(autouse=True)
def clear_settings_cache(monkeypatch):
    """
    Isolate tests from the environment's store settings.

    Yields:
        None: Settings cache is cleared before and after each test
    """
    for name in ("BACKEND", "IGNORE_FIELD_MISMATCH", "MAX_WORKERS", "PUT_LIMIT", "GET_LIMIT", "DELETE_LIMIT"):
        monkeypatch.delenv(f"ENTITYSTORE_{name}", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def memory_store() -> MemoryStoreService:
    """Provide an empty in-memory store."""
    return MemoryStoreService()


@pytest.fixture
def client(memory_store: MemoryStoreService) -> EntityStoreClient:
    """Provide a client over the in-memory store."""
    return EntityStoreClient(memory_store)
