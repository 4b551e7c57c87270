"""
Integration test fixtures — a FileManager over each store backend.
The SQL backend runs on a throwaway SQLite file; no live infrastructure needed.

Run: pytest tests/integration/ -v -m integration
"""

from __future__ import annotations

import pytest

from filebox.engine.logging import init_logging
from filebox.namespace.orchestrator import FileManager
from filebox.namespace.store import (
    MemoryNodeStore,
    MemoryUserDirectory,
    SqlNodeStore,
    SqlUserDirectory,
)


# Custom marker for integration tests
def pytest_configure(config):
    config.addinivalue_line("markers", "integration: cross-module workflows over real backends")


@pytest.fixture(params=["memory", "sql"])
def backend(request, tmp_path):
    """(store, users) for each backend, seeded with u1 and u2."""
    if request.param == "memory":
        store, users = MemoryNodeStore(), MemoryUserDirectory()
    else:
        factory = request.getfixturevalue("sql_factory")
        store, users = SqlNodeStore(factory), SqlUserDirectory(factory)
    users.add_user("u1", "u1@example.com", "alice")
    users.add_user("u2", "u2@example.com", "bob")
    return store, users


@pytest.fixture
def workspace(backend, object_storage):
    store, users = backend
    return FileManager(store, users, object_storage)


@pytest.fixture
def log_dir(tmp_path):
    """Start the structured log queue under tmp_path; stopped by the root conftest."""
    directory = tmp_path / "logs"
    init_logging(log_dir=str(directory), flush_interval_ms=10)
    return directory
