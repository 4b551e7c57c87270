"""
FileBox Directory Service — persistence for the folders/files collections and
the user directory.

Two interchangeable backends:
- MemoryNodeStore / MemoryUserDirectory: dict-backed, thread-safe; used for
  tests and single-process deployments.
- SqlNodeStore / SqlUserDirectory: SQLAlchemy over the `folders`, `files` and
  `users` tables.

Contract (both backends):
- Point lookups return None when the row does not exist.
- Children are filtered by parent equality, or IS NULL for the root.
- patch() updates only the given fields (name / is_private / owner_id / parent_id).
- delete_many() removes a batch of nodes all together or not at all.
- Every backend failure surfaces as FileBoxPersistenceError.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from filebox.db.models import FileRow, FolderRow, UserRow
from filebox.db.session import session_scope
from filebox.engine.errors import FileBoxNotFoundError, FileBoxPersistenceError
from filebox.namespace.models import AnyNode, File, Folder, NodeKind, UserInfo

logger = logging.getLogger("filebox.namespace.store")

PATCHABLE_FIELDS = frozenset({"name", "is_private", "owner_id", "parent_id"})

COLLECTIONS: Dict[str, str] = {"folder": "folders", "file": "files"}


class NodeStore(Protocol):
    """The directory/persistence collaborator consumed by the namespace core."""

    def get_folder(self, folder_id: str) -> Optional[Folder]: ...

    def get_file(self, file_id: str) -> Optional[File]: ...

    def get_node(self, node_id: str) -> Optional[AnyNode]: ...

    def list_folders(self, parent_id: Optional[str]) -> List[Folder]: ...

    def list_files(self, parent_id: Optional[str]) -> List[File]: ...

    def insert(self, node: AnyNode) -> AnyNode: ...

    def patch(self, kind: NodeKind, node_id: str, **fields: Any) -> AnyNode: ...

    def delete(self, kind: NodeKind, node_id: str) -> None: ...

    def delete_many(self, nodes: Sequence[Tuple[NodeKind, str]]) -> None: ...

    def count_nodes(self) -> int: ...

    def all_folders(self) -> List[Folder]: ...

    def all_files(self) -> List[File]: ...


class UserDirectory(Protocol):
    """Lookup of a user's public contact identifier."""

    def get_user(self, user_id: str) -> Optional[UserInfo]: ...

    def contact_for(self, user_id: str) -> str: ...


def _check_patch_fields(fields: Dict[str, Any]) -> None:
    unknown = set(fields) - PATCHABLE_FIELDS
    if unknown:
        raise ValueError(f"Fields not patchable: {sorted(unknown)}")


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------

class MemoryNodeStore:
    """
    Dict-backed node store. Returns copies so callers never alias stored state.
    """

    def __init__(self, nodes: Optional[Iterable[AnyNode]] = None):
        self._folders: Dict[str, Folder] = {}
        self._files: Dict[str, File] = {}
        self._lock = threading.RLock()
        for node in nodes or []:
            self.insert(node)

    def _table(self, kind: NodeKind) -> Dict[str, Any]:
        return self._folders if kind == "folder" else self._files

    def get_folder(self, folder_id: str) -> Optional[Folder]:
        with self._lock:
            folder = self._folders.get(folder_id)
            return folder.model_copy(deep=True) if folder else None

    def get_file(self, file_id: str) -> Optional[File]:
        with self._lock:
            file = self._files.get(file_id)
            return file.model_copy(deep=True) if file else None

    def get_node(self, node_id: str) -> Optional[AnyNode]:
        return self.get_folder(node_id) or self.get_file(node_id)

    def list_folders(self, parent_id: Optional[str]) -> List[Folder]:
        with self._lock:
            rows = [f for f in self._folders.values() if f.parent_id == parent_id]
            return [f.model_copy(deep=True) for f in sorted(rows, key=lambda n: (n.name, n.id))]

    def list_files(self, parent_id: Optional[str]) -> List[File]:
        with self._lock:
            rows = [f for f in self._files.values() if f.parent_id == parent_id]
            return [f.model_copy(deep=True) for f in sorted(rows, key=lambda n: (n.name, n.id))]

    def insert(self, node: AnyNode) -> AnyNode:
        with self._lock:
            if node.id in self._folders or node.id in self._files:
                raise FileBoxPersistenceError(
                    f"Duplicate node id '{node.id}'",
                    node_id=node.id,
                    collection=COLLECTIONS[node.kind],
                )
            self._table(node.kind)[node.id] = node.model_copy(deep=True)
            return node.model_copy(deep=True)

    def patch(self, kind: NodeKind, node_id: str, **fields: Any) -> AnyNode:
        _check_patch_fields(fields)
        with self._lock:
            table = self._table(kind)
            current = table.get(node_id)
            if current is None:
                raise FileBoxNotFoundError(
                    f"{kind.capitalize()} '{node_id}' not found",
                    node_id=node_id,
                    collection=COLLECTIONS[kind],
                )
            updated = current.model_copy(update=fields, deep=True)
            table[node_id] = updated
            return updated.model_copy(deep=True)

    def delete(self, kind: NodeKind, node_id: str) -> None:
        with self._lock:
            table = self._table(kind)
            if table.pop(node_id, None) is None:
                raise FileBoxNotFoundError(
                    f"{kind.capitalize()} '{node_id}' not found",
                    node_id=node_id,
                    collection=COLLECTIONS[kind],
                )

    def delete_many(self, nodes: Sequence[Tuple[NodeKind, str]]) -> None:
        with self._lock:
            for kind, node_id in nodes:
                if node_id not in self._table(kind):
                    raise FileBoxNotFoundError(
                        f"{kind.capitalize()} '{node_id}' not found",
                        node_id=node_id,
                        collection=COLLECTIONS[kind],
                    )
            for kind, node_id in nodes:
                self._table(kind).pop(node_id, None)

    def count_nodes(self) -> int:
        with self._lock:
            return len(self._folders) + len(self._files)

    def all_folders(self) -> List[Folder]:
        with self._lock:
            return [f.model_copy(deep=True) for f in self._folders.values()]

    def all_files(self) -> List[File]:
        with self._lock:
            return [f.model_copy(deep=True) for f in self._files.values()]

    def __repr__(self) -> str:
        return f"<MemoryNodeStore folders={len(self._folders)} files={len(self._files)}>"


class MemoryUserDirectory:
    """Dict-backed user directory."""

    def __init__(self, users: Optional[Iterable[UserInfo]] = None):
        self._users: Dict[str, UserInfo] = {u.id: u for u in users or []}

    def add_user(self, user_id: str, email: str, username: Optional[str] = None) -> UserInfo:
        user = UserInfo(id=user_id, email=email, username=username)
        self._users[user_id] = user
        return user

    def get_user(self, user_id: str) -> Optional[UserInfo]:
        return self._users.get(user_id)

    def contact_for(self, user_id: str) -> str:
        user = self.get_user(user_id)
        if user is None:
            raise FileBoxNotFoundError(
                f"User '{user_id}' not found", user_id=user_id, collection="users"
            )
        return user.email


# ---------------------------------------------------------------------------
# SQLAlchemy backend
# ---------------------------------------------------------------------------

def _folder_from_row(row: FolderRow) -> Folder:
    return Folder(
        id=row.id,
        name=row.name,
        parent_id=row.parent_id,
        is_private=row.is_private,
        owner_id=row.owner_id,
        creator_id=row.user_id,
        created_at=row.created_at,
    )


def _file_from_row(row: FileRow) -> File:
    return File(
        id=row.id,
        name=row.name,
        parent_id=row.folder_id,
        is_private=row.is_private,
        owner_id=row.owner_id,
        creator_id=row.user_id,
        created_at=row.created_at,
        size_bytes=row.size,
        mime_type=row.type,
        content_ref=row.url,
    )


def _row_from_node(node: AnyNode) -> Any:
    if isinstance(node, File):
        return FileRow(
            id=node.id,
            name=node.name,
            size=node.size_bytes,
            type=node.mime_type,
            url=node.content_ref,
            folder_id=node.parent_id,
            is_private=node.is_private,
            user_id=node.creator_id,
            owner_id=node.owner_id,
            created_at=node.created_at,
        )
    return FolderRow(
        id=node.id,
        name=node.name,
        parent_id=node.parent_id,
        is_private=node.is_private,
        user_id=node.creator_id,
        owner_id=node.owner_id,
        created_at=node.created_at,
    )


class SqlNodeStore:
    """
    Node store over the `folders` and `files` tables.

    Each call runs in its own transaction; there is no read cache, so every
    listing reflects the latest committed state.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def _fail(self, action: str, kind: str, exc: Exception, node_id: Optional[str] = None) -> FileBoxPersistenceError:
        logger.error(f"Store {action} on {kind} failed: {exc}")
        return FileBoxPersistenceError(
            f"Could not {action} {kind}",
            node_id=node_id,
            collection=COLLECTIONS.get(kind, kind),
            cause=repr(exc),
        )

    def get_folder(self, folder_id: str) -> Optional[Folder]:
        try:
            with session_scope(self._session_factory) as session:
                row = session.get(FolderRow, folder_id)
                return _folder_from_row(row) if row else None
        except SQLAlchemyError as e:
            raise self._fail("read", "folder", e, folder_id) from e

    def get_file(self, file_id: str) -> Optional[File]:
        try:
            with session_scope(self._session_factory) as session:
                row = session.get(FileRow, file_id)
                return _file_from_row(row) if row else None
        except SQLAlchemyError as e:
            raise self._fail("read", "file", e, file_id) from e

    def get_node(self, node_id: str) -> Optional[AnyNode]:
        return self.get_folder(node_id) or self.get_file(node_id)

    def list_folders(self, parent_id: Optional[str]) -> List[Folder]:
        stmt = select(FolderRow)
        if parent_id is None:
            stmt = stmt.where(FolderRow.parent_id.is_(None))
        else:
            stmt = stmt.where(FolderRow.parent_id == parent_id)
        stmt = stmt.order_by(FolderRow.name, FolderRow.id)
        try:
            with session_scope(self._session_factory) as session:
                return [_folder_from_row(r) for r in session.scalars(stmt)]
        except SQLAlchemyError as e:
            raise self._fail("list", "folder", e, parent_id) from e

    def list_files(self, parent_id: Optional[str]) -> List[File]:
        stmt = select(FileRow)
        if parent_id is None:
            stmt = stmt.where(FileRow.folder_id.is_(None))
        else:
            stmt = stmt.where(FileRow.folder_id == parent_id)
        stmt = stmt.order_by(FileRow.name, FileRow.id)
        try:
            with session_scope(self._session_factory) as session:
                return [_file_from_row(r) for r in session.scalars(stmt)]
        except SQLAlchemyError as e:
            raise self._fail("list", "file", e, parent_id) from e

    def insert(self, node: AnyNode) -> AnyNode:
        try:
            with session_scope(self._session_factory) as session:
                row = _row_from_node(node)
                session.add(row)
                session.flush()
                return _file_from_row(row) if node.kind == "file" else _folder_from_row(row)
        except SQLAlchemyError as e:
            raise self._fail("insert", node.kind, e, node.id) from e

    def patch(self, kind: NodeKind, node_id: str, **fields: Any) -> AnyNode:
        _check_patch_fields(fields)
        model = FolderRow if kind == "folder" else FileRow
        columns = dict(fields)
        if kind == "file" and "parent_id" in columns:
            columns["folder_id"] = columns.pop("parent_id")
        try:
            with session_scope(self._session_factory) as session:
                row = session.get(model, node_id)
                if row is None:
                    raise FileBoxNotFoundError(
                        f"{kind.capitalize()} '{node_id}' not found",
                        node_id=node_id,
                        collection=COLLECTIONS[kind],
                    )
                for column, value in columns.items():
                    setattr(row, column, value)
                session.flush()
                return _file_from_row(row) if kind == "file" else _folder_from_row(row)
        except SQLAlchemyError as e:
            raise self._fail("update", kind, e, node_id) from e

    def delete(self, kind: NodeKind, node_id: str) -> None:
        model = FolderRow if kind == "folder" else FileRow
        try:
            with session_scope(self._session_factory) as session:
                row = session.get(model, node_id)
                if row is None:
                    raise FileBoxNotFoundError(
                        f"{kind.capitalize()} '{node_id}' not found",
                        node_id=node_id,
                        collection=COLLECTIONS[kind],
                    )
                session.delete(row)
        except SQLAlchemyError as e:
            raise self._fail("delete", kind, e, node_id) from e

    def delete_many(self, nodes: Sequence[Tuple[NodeKind, str]]) -> None:
        """Delete every node in one transaction; a missing row rolls all of it back."""
        try:
            with session_scope(self._session_factory) as session:
                for kind, node_id in nodes:
                    row = session.get(FolderRow if kind == "folder" else FileRow, node_id)
                    if row is None:
                        raise FileBoxNotFoundError(
                            f"{kind.capitalize()} '{node_id}' not found",
                            node_id=node_id,
                            collection=COLLECTIONS[kind],
                        )
                    session.delete(row)
        except SQLAlchemyError as e:
            raise self._fail("delete", "node", e) from e

    def count_nodes(self) -> int:
        try:
            with session_scope(self._session_factory) as session:
                folders = session.scalar(select(func.count()).select_from(FolderRow)) or 0
                files = session.scalar(select(func.count()).select_from(FileRow)) or 0
                return folders + files
        except SQLAlchemyError as e:
            raise self._fail("count", "node", e) from e

    def all_folders(self) -> List[Folder]:
        try:
            with session_scope(self._session_factory) as session:
                return [_folder_from_row(r) for r in session.scalars(select(FolderRow))]
        except SQLAlchemyError as e:
            raise self._fail("list", "folder", e) from e

    def all_files(self) -> List[File]:
        try:
            with session_scope(self._session_factory) as session:
                return [_file_from_row(r) for r in session.scalars(select(FileRow))]
        except SQLAlchemyError as e:
            raise self._fail("list", "file", e) from e


class SqlUserDirectory:
    """User directory over the `users` table."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def add_user(self, user_id: str, email: str, username: Optional[str] = None) -> UserInfo:
        try:
            with session_scope(self._session_factory) as session:
                session.add(UserRow(id=user_id, email=email, username=username))
        except SQLAlchemyError as e:
            raise FileBoxPersistenceError(
                f"Could not add user '{user_id}'", user_id=user_id, collection="users", cause=repr(e)
            ) from e
        return UserInfo(id=user_id, email=email, username=username)

    def get_user(self, user_id: str) -> Optional[UserInfo]:
        try:
            with session_scope(self._session_factory) as session:
                row = session.get(UserRow, user_id)
                if row is None:
                    return None
                return UserInfo(id=row.id, email=row.email, username=row.username)
        except SQLAlchemyError as e:
            raise FileBoxPersistenceError(
                f"Could not read user '{user_id}'", user_id=user_id, collection="users", cause=repr(e)
            ) from e

    def contact_for(self, user_id: str) -> str:
        user = self.get_user(user_id)
        if user is None:
            raise FileBoxNotFoundError(
                f"User '{user_id}' not found", user_id=user_id, collection="users"
            )
        return user.email
