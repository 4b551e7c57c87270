"""
FileBox Test Suite — Shared fixtures and configuration.

Run:  pytest tests/ -v
"""

from __future__ import annotations

from typing import Callable, Optional

import pytest

from filebox.db.session import init_db
from filebox.engine.context import ExecutionContext, clear_execution_context, set_execution_context
from filebox.namespace.models import File, Folder
from filebox.namespace.orchestrator import FileManager
from filebox.namespace.store import MemoryNodeStore, MemoryUserDirectory
from filebox.storage.backends import LocalObjectStorage


# ---------------------------------------------------------------------------
# Isolation: no config or actor leaks between tests
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _isolate_globals():
    """Reset global singletons between tests."""
    import filebox.engine.config as cfg_mod
    import filebox.engine.logging as log_mod

    cfg_mod._config = None
    clear_execution_context()
    yield
    clear_execution_context()
    log_mod.shutdown_logging()


# ---------------------------------------------------------------------------
# Node builders
# ---------------------------------------------------------------------------

def make_folder(
    store,
    name: str,
    parent_id: Optional[str] = None,
    owner: str = "u1",
    is_private: bool = False,
    node_id: Optional[str] = None,
) -> Folder:
    kwargs = {"id": node_id} if node_id else {}
    folder = Folder(
        name=name,
        parent_id=parent_id,
        owner_id=owner,
        creator_id=owner,
        is_private=is_private,
        **kwargs,
    )
    return store.insert(folder)


def make_file(
    store,
    name: str,
    parent_id: Optional[str] = None,
    owner: str = "u1",
    size_bytes: int = 10,
    is_private: bool = False,
    node_id: Optional[str] = None,
) -> File:
    kwargs = {"id": node_id} if node_id else {}
    file = File(
        name=name,
        parent_id=parent_id,
        owner_id=owner,
        creator_id=owner,
        is_private=is_private,
        size_bytes=size_bytes,
        mime_type="text/plain",
        content_ref=f"http://storage.test/files/{owner}/{name}",
        **kwargs,
    )
    return store.insert(file)


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------

@pytest.fixture
def store():
    return MemoryNodeStore()


@pytest.fixture
def users():
    directory = MemoryUserDirectory()
    directory.add_user("u1", "u1@example.com", "alice")
    directory.add_user("u2", "u2@example.com", "bob")
    return directory


@pytest.fixture
def object_storage(tmp_path):
    return LocalObjectStorage(
        root=str(tmp_path / "storage"),
        base_url="http://storage.test",
        bucket="files",
    )


@pytest.fixture
def sql_factory(tmp_path):
    """Session factory over a fresh SQLite database with all tables created."""
    return init_db(f"sqlite:///{tmp_path / 'filebox.db'}", create_tables=True)


@pytest.fixture
def act_as() -> Callable[[Optional[str]], Optional[ExecutionContext]]:
    """Switch the current actor; None logs out."""

    def _act_as(user_id: Optional[str]) -> Optional[ExecutionContext]:
        if user_id is None:
            clear_execution_context()
            return None
        ctx = ExecutionContext(user_id=user_id, email=f"{user_id}@example.com")
        set_execution_context(ctx)
        return ctx

    return _act_as


@pytest.fixture
def manager(store, users, object_storage):
    """FileManager with default (hardened, reject-non-empty) policies."""
    return FileManager(store, users, object_storage)


@pytest.fixture
def new_folder():
    """Builder: new_folder(store, name, parent_id=None, owner="u1", ...)."""
    return make_folder


@pytest.fixture
def new_file():
    """Builder: new_file(store, name, parent_id=None, owner="u1", ...)."""
    return make_file
