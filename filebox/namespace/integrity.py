"""
FileBox Namespace Auditor — NetworkX view of the parent links.

Edges point child → parent. A healthy namespace is a forest whose roots are
the top-level nodes; the auditor reports every way the stored data departs
from that:
- cycles in the parent chain (a folder that is its own ancestor),
- dangling parents (parent_id that matches no node),
- nodes parented under a file instead of a folder.

Read-only; repairs are left to an operator.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List

import networkx as nx

from filebox.namespace.store import NodeStore

logger = logging.getLogger("filebox.namespace.integrity")


@dataclass
class IntegrityReport:
    node_count: int = 0
    cycles: List[List[str]] = field(default_factory=list)
    dangling: Dict[str, str] = field(default_factory=dict)
    file_parented: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not (self.cycles or self.dangling or self.file_parented)

    def to_dict(self) -> Dict[str, object]:
        return {
            "ok": self.ok,
            "node_count": self.node_count,
            "cycles": self.cycles,
            "dangling": self.dangling,
            "file_parented": self.file_parented,
        }


class NamespaceAuditor:
    def __init__(self, store: NodeStore):
        self._store = store

    def build_graph(self) -> nx.DiGraph:
        graph = nx.DiGraph()
        for folder in self._store.all_folders():
            graph.add_node(folder.id, kind="folder", name=folder.name, parent_id=folder.parent_id)
        for file in self._store.all_files():
            graph.add_node(file.id, kind="file", name=file.name, parent_id=file.parent_id)
        for node_id, attrs in list(graph.nodes(data=True)):
            parent_id = attrs.get("parent_id")
            if parent_id is not None and graph.has_node(parent_id):
                graph.add_edge(node_id, parent_id)
        return graph

    def audit(self) -> IntegrityReport:
        graph = self.build_graph()
        report = IntegrityReport(node_count=graph.number_of_nodes())

        for node_id, attrs in graph.nodes(data=True):
            parent_id = attrs.get("parent_id")
            if parent_id is None:
                continue
            if not graph.has_node(parent_id):
                report.dangling[node_id] = parent_id
            elif graph.nodes[parent_id].get("kind") == "file":
                report.file_parented[node_id] = parent_id

        report.cycles = sorted(sorted(cycle) for cycle in nx.simple_cycles(graph))

        if report.ok:
            logger.info(f"Namespace audit clean ({report.node_count} nodes)")
        else:
            logger.warning(
                f"Namespace audit: {len(report.cycles)} cycle(s), {len(report.dangling)} dangling, "
                f"{len(report.file_parented)} under files"
            )
        return report
