"""
FileBox File Manager — applies namespace mutations as single state transitions.

Every mutating operation runs the same pipeline:

    actor required → input validated → in-flight guard held → node loaded
    → lock guard consulted → store write → guard released
    → current folder re-listed (listing + breadcrumb) → OperationResult

Failures never escape an operation: they are logged with detail and returned
in the OperationResult with a user-facing message. The re-listing only runs
after a confirmed write, so a failed operation leaves nothing half-applied.
The folder being displayed is always an explicit argument.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field
from typing import (
    Any,
    BinaryIO,
    Callable,
    Iterator,
    List,
    Optional,
    Sequence,
    Set,
    Tuple,
)

from filebox.engine.context import ExecutionContext, get_execution_context
from filebox.engine.errors import (
    FileBoxAuthRequired,
    FileBoxAuthorizationDenied,
    FileBoxBusyError,
    FileBoxConfigError,
    FileBoxError,
    FileBoxNotFoundError,
    FileBoxPersistenceError,
    FileBoxValidationError,
)
from filebox.engine.logging import log, log_lock_event, log_node_operation, log_storage_write
from filebox.namespace.guard import LockGuard
from filebox.namespace.listing import ListingProvider
from filebox.namespace.models import ROOT, AnyNode, File, Folder, FolderView
from filebox.namespace.paths import PathResolver
from filebox.namespace.store import COLLECTIONS as COLLECTION_KINDS
from filebox.namespace.store import NodeStore, UserDirectory
from filebox.storage.backends import ObjectStorage, make_object_key
from filebox.utilities.utils import (
    detect_mime_type,
    mime_type_allowed,
    with_extension,
)

logger = logging.getLogger("filebox.namespace.orchestrator")

SessionProvider = Callable[[], Optional[ExecutionContext]]

# User-facing notifications (success, generic failure) per operation
MESSAGES = {
    "open_folder": ("", "Error loading folder contents"),
    "create_folder": ("Folder created successfully!", "Error creating folder"),
    "register_file": ("File registered successfully!", "Error registering file"),
    "upload": ("File(s) uploaded successfully!", "Error uploading file(s)"),
    "rename": ("Item renamed successfully!", "Error renaming item"),
    "delete": ("Item deleted successfully!", "Error deleting item"),
    "toggle_lock": ("", "Error changing item privacy"),
    "download": ("Download started!", "Error downloading file"),
}

# Errors whose own message is shown to the user instead of the generic one
SPECIFIC_MESSAGE_ERRORS = (
    FileBoxValidationError,
    FileBoxAuthRequired,
    FileBoxAuthorizationDenied,
    FileBoxBusyError,
)

NON_EMPTY_POLICIES = ("reject", "cascade")


@dataclass
class OperationResult:
    """What the presentation layer receives from every operation."""

    operation: str
    success: bool
    message: str
    node: Optional[AnyNode] = None
    nodes: List[AnyNode] = field(default_factory=list)
    view: Optional[FolderView] = None
    error: Optional[FileBoxError] = None
    refresh_error: Optional[FileBoxError] = None

    @property
    def denied_by(self) -> Optional[str]:
        """Contact of the lock owner that blocked the operation, if any."""
        if isinstance(self.error, FileBoxAuthorizationDenied):
            return self.error.owner_contact
        return None

    @property
    def download_url(self) -> Optional[str]:
        if self.success and isinstance(self.node, File):
            return self.node.content_ref
        return None


@dataclass
class UploadItem:
    filename: str
    data: BinaryIO
    mime_type: Optional[str] = None


@dataclass
class _Outcome:
    node: Optional[AnyNode] = None
    nodes: List[AnyNode] = field(default_factory=list)
    message: Optional[str] = None
    error: Optional[FileBoxError] = None


class InFlightGuard:
    """
    Tracks keys (node ids, parent folder ids, per-user upload slots) with a
    mutation in flight. A second holder of the same key fails fast with FileBoxBusyError.
    """

    def __init__(self):
        self._keys: Set[str] = set()
        self._lock = threading.Lock()

    @contextmanager
    def hold(self, *keys: str) -> Iterator[None]:
        with self._lock:
            busy = sorted(k for k in keys if k in self._keys)
            if busy:
                raise FileBoxBusyError(
                    "Another operation on this item is still in progress",
                    keys=busy,
                )
            self._keys.update(keys)
        try:
            yield
        finally:
            with self._lock:
                self._keys.difference_update(keys)

    def is_busy(self, key: str) -> bool:
        with self._lock:
            return key in self._keys


def _parent_keys(parent_id: Optional[str]) -> Tuple[str, ...]:
    # Root inserts hold no key
    return (parent_id,) if parent_id is not None else ()


class FileManager:
    """
    Mutation orchestrator for the folder/file namespace.

    Owns writes to the store; the ListingProvider and PathResolver only read.
    """

    def __init__(
        self,
        store: NodeStore,
        users: UserDirectory,
        storage: Optional[ObjectStorage] = None,
        *,
        session_provider: SessionProvider = get_execution_context,
        collation: str = "binary",
        protect_rename_delete: bool = True,
        non_empty_folder: str = "reject",
        max_name_length: int = 255,
        allowed_mime_types: Optional[Sequence[str]] = None,
    ):
        if non_empty_folder not in NON_EMPTY_POLICIES:
            raise FileBoxConfigError(
                f"non_empty_folder must be one of {NON_EMPTY_POLICIES}, got '{non_empty_folder}'"
            )
        self._store = store
        self._users = users
        self._storage = storage
        self._session_provider = session_provider
        self._listing = ListingProvider(store, collation=collation)
        self._paths = PathResolver(store)
        self._guard = LockGuard(users, protect_rename_delete=protect_rename_delete)
        self._in_flight = InFlightGuard()
        self._non_empty_folder = non_empty_folder
        self._max_name_length = max_name_length
        self._allowed_mime_types = list(allowed_mime_types or ["*/*"])

    @classmethod
    def from_config(
        cls,
        config: Any,
        store: NodeStore,
        users: UserDirectory,
        storage: Optional[ObjectStorage] = None,
        session_provider: SessionProvider = get_execution_context,
    ) -> "FileManager":
        """Build from a FileBoxConfig."""
        return cls(
            store,
            users,
            storage,
            session_provider=session_provider,
            collation=config.namespace.collation,
            protect_rename_delete=config.locks.protect_rename_delete,
            non_empty_folder=config.deletion.non_empty_folder,
            max_name_length=config.namespace.max_name_length,
            allowed_mime_types=config.allowed_mime_types,
        )

    @property
    def listing(self) -> ListingProvider:
        return self._listing

    @property
    def paths(self) -> PathResolver:
        return self._paths

    @property
    def guard(self) -> LockGuard:
        return self._guard

    @property
    def in_flight(self) -> InFlightGuard:
        return self._in_flight

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------

    def view(self, folder_id: Optional[str]) -> FolderView:
        """Listing + breadcrumb for a folder. Raises on store failure."""
        return FolderView(
            listing=self._listing.list_children(folder_id),
            breadcrumb=self._paths.breadcrumb(folder_id),
        )

    def open_folder(self, folder_id: Optional[str] = ROOT) -> OperationResult:
        try:
            view = self.view(folder_id)
        except FileBoxError as e:
            return self._failure("open_folder", e, None, time.monotonic(), folder_id)
        return OperationResult(operation="open_folder", success=True, message="", view=view)

    def download_link(self, file_id: str) -> OperationResult:
        """Resolve the stored content URL of a file so the caller can fetch it."""
        start = time.monotonic()
        try:
            file = self._store.get_file(file_id)
            if file is None:
                raise FileBoxNotFoundError(
                    f"File '{file_id}' not found", operation="download", node_id=file_id, collection="files"
                )
        except FileBoxError as e:
            return self._failure("download", e, None, start, None)
        return OperationResult(
            operation="download", success=True, message=MESSAGES["download"][0], node=file
        )

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------

    def create_folder(self, name: str, parent_id: Optional[str] = ROOT) -> OperationResult:
        def action(actor: ExecutionContext) -> _Outcome:
            clean = self._validate_name(name, "create_folder")
            folder = Folder(
                name=clean,
                parent_id=parent_id,
                owner_id=actor.user_id,
                creator_id=actor.user_id,
            )
            with self._in_flight.hold(*_parent_keys(parent_id)):
                self._require_parent(parent_id, "create_folder")
                return _Outcome(node=self._store.insert(folder))

        return self._execute("create_folder", parent_id, action)

    def register_uploaded_file(
        self,
        name: str,
        size_bytes: int,
        mime_type: str,
        content_ref: str,
        parent_id: Optional[str] = ROOT,
    ) -> OperationResult:
        """Record a file whose bytes the storage service has already accepted."""

        def action(actor: ExecutionContext) -> _Outcome:
            file = self._prepare_file(actor, name, size_bytes, mime_type, content_ref, parent_id)
            with self._in_flight.hold(*_parent_keys(parent_id)):
                self._require_parent(parent_id, "register_file")
                return _Outcome(node=self._store.insert(file))

        return self._execute("register_file", parent_id, action)

    def upload_file(
        self,
        filename: str,
        data: BinaryIO,
        parent_id: Optional[str] = ROOT,
        mime_type: Optional[str] = None,
    ) -> OperationResult:
        return self.upload_files([UploadItem(filename, data, mime_type)], parent_id)

    def upload_files(
        self,
        items: Sequence[UploadItem],
        parent_id: Optional[str] = ROOT,
    ) -> OperationResult:
        """
        Store each item's bytes, then register it. Stops at the first failure;
        files registered before it stay, and the folder is re-listed once.
        """

        def action(actor: ExecutionContext) -> _Outcome:
            if not items:
                raise FileBoxValidationError("No files selected", operation="upload", field="items")
            if self._storage is None:
                raise FileBoxConfigError("No object storage configured", operation="upload")
            with self._in_flight.hold(f"upload:{actor.user_id}", *_parent_keys(parent_id)):
                self._require_parent(parent_id, "upload")
                outcome = _Outcome()
                for item in items:
                    try:
                        outcome.nodes.append(self._upload_one(actor, item, parent_id))
                    except FileBoxError as e:
                        outcome.error = e
                        break
                outcome.node = outcome.nodes[-1] if outcome.nodes else None
                return outcome

        return self._execute("upload", parent_id, action)

    def rename(self, node_id: str, proposed_name: str, current_folder_id: Optional[str]) -> OperationResult:
        """
        Folders take the new name verbatim; files always keep their original
        extension appended, whatever the user typed.
        """

        def action(actor: ExecutionContext) -> _Outcome:
            clean = self._validate_name(proposed_name, "rename", check_length=False)
            with self._in_flight.hold(node_id):
                node = self._load_node(node_id, "rename")
                self._enforce_mutation(node, actor, "rename")
                final_name = clean
                if isinstance(node, File):
                    final_name = with_extension(clean, node.extension)
                self._check_length(final_name, "rename")
                updated = self._store.patch(node.kind, node.id, name=final_name)
            return _Outcome(node=updated)

        return self._execute("rename", current_folder_id, action)

    def delete(self, node_id: str, current_folder_id: Optional[str]) -> OperationResult:
        def action(actor: ExecutionContext) -> _Outcome:
            with ExitStack() as held:
                held.enter_context(self._in_flight.hold(node_id))
                node = self._load_node(node_id, "delete")
                self._enforce_mutation(node, actor, "delete")
                removed: List[AnyNode] = []
                if isinstance(node, Folder):
                    removed.extend(self._descendants_to_delete(node, actor, held))
                removed.append(node)
                self._store.delete_many([(n.kind, n.id) for n in removed])
            return _Outcome(node=node, nodes=removed)

        return self._execute("delete", current_folder_id, action)

    def toggle_lock(self, node_id: str, current_folder_id: Optional[str]) -> OperationResult:
        def action(actor: ExecutionContext) -> _Outcome:
            with self._in_flight.hold(node_id):
                node = self._load_node(node_id, "toggle_lock")
                decision = self._guard.check_toggle(node, actor.user_id)
                if not decision.allowed:
                    self._log_denial(node, actor, "toggle_lock")
                    decision.raise_if_denied(actor.user_id)
                updated = self._store.patch(node.kind, node.id, **(decision.changes or {}))
            message = "Item locked!" if updated.is_private else "Item unlocked!"
            log(log_lock_event(
                "lock_acquired" if updated.is_private else "lock_released",
                node_kind=COLLECTION_KINDS[node.kind],
                node_id=node.id,
                user_id=actor.user_id,
                owner_id=updated.owner_id,
                operation="toggle_lock",
                execution_id=actor.execution_id,
                level="INFO",
            ))
            return _Outcome(node=updated, message=message)

        return self._execute("toggle_lock", current_folder_id, action)

    # -------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------

    def _execute(
        self,
        operation: str,
        current_folder_id: Optional[str],
        action: Callable[[ExecutionContext], _Outcome],
    ) -> OperationResult:
        start = time.monotonic()
        actor: Optional[ExecutionContext] = None
        try:
            actor = self._require_actor(operation)
            outcome = action(actor)
        except FileBoxError as e:
            return self._failure(operation, e, actor, start, current_folder_id)
        except Exception as e:
            logger.exception(f"Unexpected failure in {operation}")
            wrapped = FileBoxPersistenceError(
                f"Unexpected failure in {operation}: {e}", operation=operation, cause=repr(e)
            )
            return self._failure(operation, wrapped, actor, start, current_folder_id)

        if outcome.error is not None:
            result = self._failure(operation, outcome.error, actor, start, current_folder_id)
            result.nodes = outcome.nodes
            result.node = outcome.node
            if outcome.nodes:
                result.view, result.refresh_error = self._refresh(current_folder_id)
            return result

        self._log_success(operation, outcome, actor, start)
        view, refresh_error = self._refresh(current_folder_id)
        return OperationResult(
            operation=operation,
            success=True,
            message=outcome.message or MESSAGES[operation][0],
            node=outcome.node,
            nodes=outcome.nodes,
            view=view,
            refresh_error=refresh_error,
        )

    def _refresh(self, folder_id: Optional[str]) -> Tuple[Optional[FolderView], Optional[FileBoxError]]:
        try:
            return self.view(folder_id), None
        except FileBoxError as e:
            logger.error(f"Re-listing folder {folder_id!r} failed: {e.message}")
            return None, e

    def _failure(
        self,
        operation: str,
        error: FileBoxError,
        actor: Optional[ExecutionContext],
        start: float,
        current_folder_id: Optional[str],
    ) -> OperationResult:
        if error.operation is None:
            error.operation = operation
        duration_ms = (time.monotonic() - start) * 1000
        if isinstance(error, SPECIFIC_MESSAGE_ERRORS):
            message = error.message
            logger.info(f"{operation} rejected: {error!r}")
        else:
            message = MESSAGES[operation][1]
            logger.error(f"{operation} failed: {error!r}")
        log(log_node_operation(
            operation=operation,
            node_kind="system",
            node_id=error.node_id,
            user_id=actor.user_id if actor else None,
            success=False,
            execution_id=actor.execution_id if actor else None,
            parent_id=current_folder_id,
            duration_ms=duration_ms,
            error=error.to_dict(),
        ))
        return OperationResult(operation=operation, success=False, message=message, error=error)

    def _log_success(
        self,
        operation: str,
        outcome: _Outcome,
        actor: Optional[ExecutionContext],
        start: float,
    ) -> None:
        duration_ms = (time.monotonic() - start) * 1000
        touched = outcome.nodes or ([outcome.node] if outcome.node else [])
        for node in touched:
            log(log_node_operation(
                operation=operation,
                node_kind=COLLECTION_KINDS[node.kind],
                node_id=node.id,
                user_id=actor.user_id if actor else None,
                success=True,
                execution_id=actor.execution_id if actor else None,
                parent_id=node.parent_id,
                duration_ms=duration_ms,
            ))
        logger.info(f"{operation} ok ({len(touched)} node(s), {duration_ms:.1f}ms)")

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------

    def _require_actor(self, operation: str) -> ExecutionContext:
        actor = self._session_provider()
        if actor is None or not actor.user_id:
            raise FileBoxAuthRequired("User not authenticated", operation=operation)
        return actor

    def _validate_name(self, name: Optional[str], operation: str, check_length: bool = True) -> str:
        clean = (name or "").strip()
        if not clean:
            raise FileBoxValidationError("Name cannot be empty", operation=operation, field="name")
        if check_length:
            self._check_length(clean, operation)
        return clean

    def _check_length(self, name: str, operation: str) -> None:
        if len(name) > self._max_name_length:
            raise FileBoxValidationError(
                f"Name is longer than {self._max_name_length} characters",
                operation=operation,
                field="name",
            )

    def _require_parent(self, parent_id: Optional[str], operation: str) -> None:
        if parent_id is None:
            return
        if self._store.get_folder(parent_id) is not None:
            return
        if self._store.get_file(parent_id) is not None:
            raise FileBoxValidationError(
                "Items can only be placed inside folders",
                operation=operation,
                node_id=parent_id,
                field="parent_id",
            )
        raise FileBoxNotFoundError(
            f"Folder '{parent_id}' not found", operation=operation, node_id=parent_id, collection="folders"
        )

    def _load_node(self, node_id: str, operation: str) -> AnyNode:
        node = self._store.get_node(node_id)
        if node is None:
            raise FileBoxNotFoundError(f"Item '{node_id}' not found", operation=operation, node_id=node_id)
        return node

    def _enforce_mutation(self, node: AnyNode, actor: ExecutionContext, operation: str) -> None:
        decision = self._guard.check_mutation(node, actor.user_id, operation)
        if not decision.allowed:
            self._log_denial(node, actor, operation)
            decision.raise_if_denied(actor.user_id)

    def _log_denial(self, node: AnyNode, actor: ExecutionContext, operation: str) -> None:
        log(log_lock_event(
            "lock_denied",
            node_kind=COLLECTION_KINDS[node.kind],
            node_id=node.id,
            user_id=actor.user_id,
            owner_id=node.owner_id,
            operation=operation,
            execution_id=actor.execution_id,
        ))

    def _prepare_file(
        self,
        actor: ExecutionContext,
        name: str,
        size_bytes: int,
        mime_type: Optional[str],
        content_ref: str,
        parent_id: Optional[str],
        operation: str = "register_file",
    ) -> File:
        clean = self._validate_name(name, operation)
        if size_bytes < 0:
            raise FileBoxValidationError("File size cannot be negative", operation=operation, field="size_bytes")
        mime_type = mime_type or detect_mime_type(clean)
        if not mime_type_allowed(mime_type, self._allowed_mime_types):
            raise FileBoxValidationError(
                f"File type '{mime_type}' is not allowed",
                operation=operation,
                field="mime_type",
                mime_type=mime_type,
            )
        if not content_ref:
            raise FileBoxValidationError("Missing content reference", operation=operation, field="content_ref")
        return File(
            name=clean,
            parent_id=parent_id,
            owner_id=actor.user_id,
            creator_id=actor.user_id,
            size_bytes=size_bytes,
            mime_type=mime_type,
            content_ref=content_ref,
        )

    def _upload_one(self, actor: ExecutionContext, item: UploadItem, parent_id: Optional[str]) -> File:
        name = (item.filename or "").strip()
        mime_type = item.mime_type or detect_mime_type(name)
        # Validate before the bytes leave the process
        self._prepare_file(actor, name, 0, mime_type, "pending", parent_id, "upload")

        key = make_object_key(actor.user_id, name)
        stored = self._storage.put(key, item.data, mime_type=mime_type)
        log(log_storage_write(
            key=stored.key,
            user_id=actor.user_id,
            size_bytes=stored.size_bytes,
            backend=self._storage.backend,
            sha256=stored.sha256,
        ))
        file = self._prepare_file(actor, name, stored.size_bytes, mime_type, stored.url, parent_id, "upload")
        return self._store.insert(file)

    def _descendants_to_delete(self, folder: Folder, actor: ExecutionContext, held: ExitStack) -> List[AnyNode]:
        """
        Apply the non-empty folder policy. Returns the descendants to remove
        with the folder (files, then folders deepest first). Every descendant
        folder stays held in `held` until the caller's batch delete is done.
        """
        if self._non_empty_folder == "reject":
            child_count = len(self._store.list_folders(folder.id)) + len(self._store.list_files(folder.id))
            if child_count:
                raise FileBoxValidationError(
                    "Folder is not empty",
                    operation="delete",
                    node_id=folder.id,
                    child_count=child_count,
                )
            return []

        folders, files = self._collect_descendants(folder, held)

        for node in [*folders, *files]:
            self._enforce_mutation(node, actor, "delete")

        return [*files, *reversed(folders)]

    def _collect_descendants(self, root: Folder, held: ExitStack) -> Tuple[List[Folder], List[File]]:
        """Breadth-first descendants; folders in discovery order (shallowest first)."""
        folders: List[Folder] = []
        files: List[File] = []
        seen = {root.id}
        queue = [root.id]
        while queue:
            current = queue.pop(0)
            files.extend(self._store.list_files(current))
            for sub in self._store.list_folders(current):
                if sub.id in seen:
                    continue
                held.enter_context(self._in_flight.hold(sub.id))
                seen.add(sub.id)
                folders.append(sub)
                queue.append(sub.id)
        return folders, files
