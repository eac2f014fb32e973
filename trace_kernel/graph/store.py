"""
Graph Store: the knowledge graph the approval workflow edits.

Updated by: approved proposals and direct node edits
Queried by: the approval workflow, commit snapshots and the API
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from trace_kernel.errors import InvalidArgument
from trace_kernel.models.graph import (
    GraphMetadata,
    KnowledgeEdge,
    KnowledgeGraph,
    KnowledgeNode,
    NodeType,
)

logger = logging.getLogger(__name__)


class GraphStore:
    """
    In-memory knowledge graph store.
    Rendering and layout live in the front end.
    """

    def __init__(self, project_name: str = "untitled"):
        self._graph = KnowledgeGraph(
            metadata=GraphMetadata(
                project_name=project_name,
                last_updated=datetime.now(timezone.utc),
            ),
        )

    @property
    def graph(self) -> KnowledgeGraph:
        """Get the current graph."""
        return self._graph

    def _touch(self) -> None:
        self._graph.metadata.last_updated = datetime.now(timezone.utc)

    def add_node(self, node: KnowledgeNode) -> None:
        """Insert or replace a node."""
        self._graph.nodes[node.id] = node
        self._touch()

    def get_node(self, node_id: str) -> Optional[KnowledgeNode]:
        return self._graph.nodes.get(node_id)

    def update_node(self, node_id: str, **changes) -> Optional[KnowledgeNode]:
        """Apply field changes to a node. Returns None if the node is unknown."""
        node = self._graph.nodes.get(node_id)
        if not node:
            return None
        if changes.get("id", node_id) != node_id:
            raise InvalidArgument("Node ids are immutable")
        updated = KnowledgeNode.model_validate({**node.model_dump(), **changes})
        self._graph.nodes[node_id] = updated
        self._touch()
        return updated

    def remove_node(self, node_id: str) -> bool:
        """Remove a node and every edge touching it."""
        if node_id not in self._graph.nodes:
            return False
        del self._graph.nodes[node_id]
        self._graph.edges = {
            edge_id: e for edge_id, e in self._graph.edges.items()
            if e.source != node_id and e.target != node_id
        }
        self._touch()
        return True

    def add_edge(self, edge: KnowledgeEdge) -> None:
        """Add an edge between two existing nodes."""
        missing = [n for n in (edge.source, edge.target) if n not in self._graph.nodes]
        if missing:
            raise InvalidArgument(f"Edge {edge.id} references unknown node(s): {', '.join(missing)}")
        if edge.id in self._graph.edges:
            raise InvalidArgument(f"Edge {edge.id} already exists")
        self._graph.edges[edge.id] = edge
        self._touch()

    def get_edge(self, edge_id: str) -> Optional[KnowledgeEdge]:
        return self._graph.edges.get(edge_id)

    def remove_edge(self, edge_id: str) -> bool:
        if edge_id in self._graph.edges:
            del self._graph.edges[edge_id]
            self._touch()
            return True
        return False

    def get_nodes_by_type(self, node_type: NodeType) -> List[KnowledgeNode]:
        """Get all nodes of a specific type."""
        return [n for n in self._graph.nodes.values() if n.type == node_type]

    def get_connected_nodes(self, node_id: str) -> List[KnowledgeNode]:
        """Nodes linked to node_id by an edge in either direction."""
        connected = set()
        for edge in self._graph.edges.values():
            if edge.source == node_id:
                connected.add(edge.target)
            if edge.target == node_id:
                connected.add(edge.source)
        return [n for n_id, n in self._graph.nodes.items() if n_id in connected]

    def snapshot(self) -> KnowledgeGraph:
        """A deep copy of the current graph, safe to keep in a commit."""
        return self._graph.model_copy(deep=True)

    def restore(self, snapshot: KnowledgeGraph) -> None:
        """Replace the graph with a previously taken snapshot."""
        self._graph = snapshot.model_copy(deep=True)
        self._touch()
        logger.info(
            "Graph restored: %d nodes, %d edges",
            len(self._graph.nodes), len(self._graph.edges),
        )

    def clear(self) -> None:
        self._graph.nodes = {}
        self._graph.edges = {}
        self._touch()
