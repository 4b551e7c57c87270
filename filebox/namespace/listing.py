"""
FileBox Listing Provider — the direct children of one folder or of the root.

Pure read against the store on every call. Ordering is ascending by name under
the configured collation, ties broken by id so the order is deterministic.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Tuple, TypeVar

from filebox.namespace.models import Listing, Node
from filebox.namespace.store import NodeStore

logger = logging.getLogger("filebox.namespace.listing")

N = TypeVar("N", bound=Node)

COLLATIONS: Dict[str, Callable[[str], str]] = {
    "binary": lambda name: name,
    "casefold": lambda name: name.casefold(),
}


class ListingProvider:
    """Lists child folders and files for a folder id, or None for the root."""

    def __init__(self, store: NodeStore, collation: str = "binary"):
        if collation not in COLLATIONS:
            raise ValueError(f"Unknown collation '{collation}'. Available: {sorted(COLLATIONS)}")
        self._store = store
        self._collate = COLLATIONS[collation]
        self._collation = collation

    @property
    def collation(self) -> str:
        return self._collation

    def sort_key(self, node: Node) -> Tuple[str, str]:
        return self._collate(node.name), node.id

    def _ordered(self, nodes: List[N], parent_id: Optional[str]) -> List[N]:
        # Drop anything the backend returned under another parent.
        children = [n for n in nodes if n.parent_id == parent_id]
        if len(children) != len(nodes):
            logger.warning(
                f"Store returned {len(nodes) - len(children)} node(s) outside parent {parent_id!r}"
            )
        return sorted(children, key=self.sort_key)

    def list_children(self, folder_id: Optional[str]) -> Listing:
        folders = self._store.list_folders(folder_id)
        files = self._store.list_files(folder_id)
        return Listing(
            folder_id=folder_id,
            folders=self._ordered(folders, folder_id),
            files=self._ordered(files, folder_id),
        )
