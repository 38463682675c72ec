"""
Graph Model - validated, read-only representation of a workflow graph.

Nodes carry a type tag and a type-specific data payload; edges link two
existing nodes and may be qualified by a source handle ("true"/"false" for
condition branches, free-form labels otherwise).
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional

from core.errors import StructuralError


class ValueType(Enum):
    """Value type tags for node outputs and runtime variables."""
    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


VALUE_TYPE_TAGS = frozenset(t.value for t in ValueType)


class EdgeKind(Enum):
    """Edge kinds as drawn in the editor."""
    DEFAULT = "default"
    SUCCESS = "success"
    FAILURE = "failure"
    DATA = "data"


@dataclass(frozen=True)
class NodeOutput:
    """A named result slot declared by a node."""
    type: ValueType
    value: Any = None


@dataclass(frozen=True)
class Node:
    """A single automation step."""
    id: str
    type: str
    data: Mapping[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self):
        # Identity and payload are fixed once the graph is built
        object.__setattr__(self, "data", MappingProxyType(dict(self.data)))

    @property
    def label(self) -> str:
        return self.data.get("label") or self.id

    @property
    def outputs(self) -> dict[str, NodeOutput]:
        """Declared output schema, if any."""
        declared = self.data.get("outputs") or {}
        schema = {}
        for key, declared_output in declared.items():
            if isinstance(declared_output, dict):
                schema[key] = NodeOutput(
                    type=ValueType(declared_output.get("type", "text")),
                    value=declared_output.get("value"),
                )
        return schema


@dataclass(frozen=True)
class Edge:
    """Directed link between two nodes."""
    id: str
    source: str
    target: str
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None
    kind: EdgeKind = EdgeKind.DEFAULT


class Graph:
    """
    Workflow graph with adjacency indexes.

    Built once per run via Graph.build() and never mutated afterwards.
    """

    def __init__(self, nodes: list[Node], edges: list[Edge]):
        self._nodes: dict[str, Node] = {n.id: n for n in nodes}
        self._order: list[str] = [n.id for n in nodes]
        self._edges: tuple[Edge, ...] = tuple(edges)
        self._outgoing: dict[str, list[Edge]] = {n.id: [] for n in nodes}
        self._incoming: dict[str, list[Edge]] = {n.id: [] for n in nodes}
        for edge in self._edges:
            self._outgoing[edge.source].append(edge)
            self._incoming[edge.target].append(edge)

    @classmethod
    def build(cls, nodes: list[Node], edges: list[Edge]) -> "Graph":
        """
        Validate nodes and edges and build a graph.

        Raises:
            StructuralError: duplicate node id or an edge referencing a
                node that does not exist
        """
        seen: set[str] = set()
        for node in nodes:
            if node.id in seen:
                raise StructuralError(f"Duplicate node id: {node.id}", node_id=node.id)
            seen.add(node.id)
            cls._check_outputs(node)

        for edge in edges:
            for end in (edge.source, edge.target):
                if end not in seen:
                    raise StructuralError(
                        f"Edge {edge.id} references unknown node: {end}",
                        node_id=end,
                        edge_id=edge.id,
                    )

        return cls(nodes, edges)

    @staticmethod
    def _check_outputs(node: Node) -> None:
        declared = node.data.get("outputs") or {}
        if not isinstance(declared, Mapping):
            raise StructuralError(f"Node {node.id} outputs must be a mapping", node_id=node.id)
        for key, declared_output in declared.items():
            if not isinstance(declared_output, Mapping):
                continue
            type_tag = declared_output.get("type", "text")
            if type_tag not in VALUE_TYPE_TAGS:
                raise StructuralError(
                    f"Node {node.id} output '{key}' has unknown type: {type_tag}",
                    node_id=node.id,
                )

    @classmethod
    def from_definition(cls, definition: dict[str, Any]) -> "Graph":
        """Build a graph from the editor's JSON shape."""
        try:
            nodes = [
                Node(id=n["id"], type=n["type"], data=n.get("data") or {})
                for n in definition.get("nodes", [])
            ]
        except KeyError as e:
            raise StructuralError(f"Node definition missing field: {e}")

        edges = []
        for e in definition.get("edges", []):
            if "source" not in e or "target" not in e:
                raise StructuralError(
                    "Edge definition needs both source and target",
                    edge_id=e.get("id"),
                )
            try:
                kind = EdgeKind(e.get("kind", "default"))
            except ValueError:
                raise StructuralError(
                    f"Unknown edge kind: {e.get('kind')}",
                    edge_id=e.get("id"),
                )
            edges.append(Edge(
                id=e.get("id") or f"e-{e['source']}-{e['target']}",
                source=e["source"],
                target=e["target"],
                source_handle=e.get("sourceHandle"),
                target_handle=e.get("targetHandle"),
                kind=kind,
            ))

        return cls.build(nodes, edges)

    @property
    def nodes(self) -> list[Node]:
        return [self._nodes[node_id] for node_id in self._order]

    @property
    def edges(self) -> tuple[Edge, ...]:
        return self._edges

    def get_node(self, node_id: str) -> Optional[Node]:
        return self._nodes.get(node_id)

    def start_nodes(self) -> list[Node]:
        """Nodes with zero incoming edges, in definition order."""
        return [
            self._nodes[node_id] for node_id in self._order
            if not self._incoming[node_id]
        ]

    def outgoing_edges(self, node_id: str) -> list[Edge]:
        return list(self._outgoing.get(node_id, []))

    def incoming_edges(self, node_id: str) -> list[Edge]:
        return list(self._incoming.get(node_id, []))

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes
