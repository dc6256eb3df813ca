# src/dataconductor/core/dag.py
"""PipelineGraph: the node/edge model a run executes.

Wraps a NetworkX MultiDiGraph with the operations the orchestrator needs.
Graphs arrive as plain dicts (from YAML/JSON or the visual editor), so
construction validates the structural invariants up front:

- at least one node, node ids unique
- exactly one node of type "source"
- every edge endpoint names an existing node

Cycles are NOT rejected. The orchestrator's traversal simply never reaches
nodes whose predecessors cannot all complete.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import networkx as nx
from networkx import MultiDiGraph

from dataconductor.contracts.errors import ConfigurationError

SOURCE_NODE_TYPE = "source"


@dataclass(frozen=True)
class NodeInfo:
    """One pipeline node.

    Attributes:
        node_id: Unique identifier within the graph
        node_type: Handler type tag (e.g. "source", "transform_json")
        config: Handler configuration, opaque to the graph
    """

    node_id: str
    node_type: str
    config: Mapping[str, Any] = field(default_factory=dict)

    @property
    def label(self) -> str:
        """Display name from config, falling back to the node id."""
        label = self.config.get("label")
        return str(label) if label else self.node_id


class PipelineGraph:
    """Directed pipeline graph with edge-ordered inputs.

    Incoming edges are returned in the order they were declared, which is
    the order a node receives its inputs.
    """

    def __init__(self) -> None:
        self._graph: MultiDiGraph[str] = nx.MultiDiGraph()
        self._edge_seq = 0

    @property
    def node_count(self) -> int:
        return self._graph.number_of_nodes()

    @property
    def edge_count(self) -> int:
        return self._graph.number_of_edges()

    def has_node(self, node_id: str) -> bool:
        return self._graph.has_node(node_id)

    def add_node(self, node_id: str, *, node_type: str, config: Mapping[str, Any] | None = None) -> None:
        """Add a node.

        Raises:
            ConfigurationError: If the node id is already used
        """
        if self._graph.has_node(node_id):
            raise ConfigurationError(f"Duplicate node id: {node_id!r}")
        self._graph.add_node(node_id, info=NodeInfo(node_id=node_id, node_type=node_type, config=dict(config or {})))

    def add_edge(self, source: str, target: str) -> None:
        """Add a directed edge between two existing nodes.

        Raises:
            ConfigurationError: If either endpoint does not exist
        """
        for endpoint in (source, target):
            if not self._graph.has_node(endpoint):
                raise ConfigurationError(f"Edge {source!r} -> {target!r} references unknown node {endpoint!r}")
        self._graph.add_edge(source, target, seq=self._edge_seq)
        self._edge_seq += 1

    def get_node(self, node_id: str) -> NodeInfo:
        """Get node info by id.

        Raises:
            ConfigurationError: If the node does not exist
        """
        if not self._graph.has_node(node_id):
            raise ConfigurationError(f"Unknown node id: {node_id!r}")
        info: NodeInfo = self._graph.nodes[node_id]["info"]
        return info

    def get_nodes(self) -> list[NodeInfo]:
        return [data["info"] for _, data in self._graph.nodes(data=True)]

    def get_source(self) -> NodeInfo:
        """Return the single source node.

        Raises:
            ConfigurationError: If there is no source node, or more than one
        """
        sources = [info for info in self.get_nodes() if info.node_type == SOURCE_NODE_TYPE]
        if not sources:
            raise ConfigurationError("Pipeline has no source node")
        if len(sources) > 1:
            ids = ", ".join(s.node_id for s in sources)
            raise ConfigurationError(f"Pipeline must have exactly one source node, found {len(sources)}: {ids}")
        return sources[0]

    def get_predecessors(self, node_id: str) -> list[str]:
        """Upstream node ids, one per incoming edge, in declaration order."""
        edges = sorted(self._graph.in_edges(node_id, data="seq"), key=lambda e: e[2])
        return [src for src, _, _ in edges]

    def get_successors(self, node_id: str) -> list[str]:
        """Downstream node ids in edge declaration order, without duplicates."""
        edges = sorted(self._graph.out_edges(node_id, data="seq"), key=lambda e: e[2])
        return list(dict.fromkeys(dst for _, dst, _ in edges))

    def reachable_from(self, node_id: str) -> set[str]:
        """Node ids reachable from node_id, including itself."""
        return {node_id} | nx.descendants(self._graph, node_id)

    def validate(self) -> None:
        """Check the structural invariants a run depends on.

        Raises:
            ConfigurationError: If the graph is empty or lacks a unique source
        """
        if self.node_count == 0:
            raise ConfigurationError("Pipeline graph has no nodes")
        self.get_source()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PipelineGraph:
        """Build and validate a graph from its dict form.

        Accepts both the config-file shape and the visual editor's shape:

            nodes:
              - id: src
                type: source
                config: {label: "Upload"}     # or "data:" (editor format)
            edges:
              - {source: src, target: out}

        Raises:
            ConfigurationError: If the structure is malformed or invalid
        """
        if not isinstance(data, Mapping):
            raise ConfigurationError(f"Pipeline graph must be a mapping, got {type(data).__name__}")
        nodes = data.get("nodes") or []
        edges = data.get("edges") or []
        if not isinstance(nodes, list) or not isinstance(edges, list):
            raise ConfigurationError("Pipeline graph 'nodes' and 'edges' must be lists")

        graph = cls()
        for index, node in enumerate(nodes):
            if not isinstance(node, Mapping) or "id" not in node or "type" not in node:
                raise ConfigurationError(f"Node #{index} must be a mapping with 'id' and 'type'")
            config = node.get("config", node.get("data")) or {}
            if not isinstance(config, Mapping):
                raise ConfigurationError(f"Node {node['id']!r} config must be a mapping, got {type(config).__name__}")
            graph.add_node(str(node["id"]), node_type=str(node["type"]), config=config)

        for index, edge in enumerate(edges):
            if not isinstance(edge, Mapping) or "source" not in edge or "target" not in edge:
                raise ConfigurationError(f"Edge #{index} must be a mapping with 'source' and 'target'")
            graph.add_edge(str(edge["source"]), str(edge["target"]))

        graph.validate()
        return graph
