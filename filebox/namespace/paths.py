"""
FileBox Path Resolver — ancestor chains for breadcrumb navigation.

The walk follows parent_id links one point lookup at a time and never fails:
- a missing ancestor (e.g. deleted by another session) ends the walk and the
  chain resolved so far is returned;
- a repeated folder id or more hops than there are nodes ends the walk too,
  so a corrupted parent chain can never loop forever.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Set

from filebox.namespace.models import Folder
from filebox.namespace.store import NodeStore

logger = logging.getLogger("filebox.namespace.paths")


class PathResolver:
    """Resolves root-to-parent ancestor chains against a NodeStore."""

    def __init__(self, store: NodeStore):
        self._store = store

    def resolve_path(self, node_id: str) -> List[Folder]:
        """
        Return the ancestors of ``node_id`` ordered root-most first, ending at
        its immediate parent. The node itself is not included; an unknown node
        yields an empty list.
        """
        node = self._store.get_node(node_id)
        if node is None:
            return []
        return self._walk(node.parent_id, exclude={node.id})

    def breadcrumb(self, folder_id: Optional[str]) -> List[Folder]:
        """
        Navigation trail for the folder being displayed: its ancestors followed
        by the folder itself. The root has an empty trail.
        """
        if folder_id is None:
            return []
        folder = self._store.get_folder(folder_id)
        if folder is None:
            return []
        return self._walk(folder.parent_id, exclude={folder.id}) + [folder]

    def _walk(self, start_id: Optional[str], exclude: Set[str]) -> List[Folder]:
        max_hops = self._store.count_nodes()
        chain: List[Folder] = []
        seen = set(exclude)
        current_id = start_id

        while current_id is not None:
            if current_id in seen:
                logger.warning(f"Parent cycle detected at folder '{current_id}'; returning partial path")
                break
            if len(chain) >= max_hops:
                logger.warning(f"Path walk exceeded {max_hops} hops; returning partial path")
                break
            folder = self._store.get_folder(current_id)
            if folder is None:
                logger.warning(f"Ancestor '{current_id}' not found; returning partial path")
                break
            seen.add(folder.id)
            chain.append(folder)
            current_id = folder.parent_id

        chain.reverse()
        return chain
