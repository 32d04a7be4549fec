"""
tsgraph/graph.py
================

The mutable output structure of a run: an append-only, attributed,
directed graph.

* ``Graph``     – owns the node table and the edge table
* ``GraphNode`` – one node: its handle and attribute mapping
* ``Edge``      – one directed ``(source, sink)`` edge with attributes
* ``DuplicatePolicy`` – strict vs. permissive duplicate handling

Nodes and edges refer to each other purely by integer handle; nothing in the
graph holds a pointer to another element.  Handles are assigned
monotonically from zero and never reused.  There is no deletion.

The canonical JSON shape is::

    {"nodes": [{"id": 0, "attrs": {"name": "x"}}],
     "edges": [{"source": 0, "sink": 1, "attrs": {}}]}
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

from tsgraph.errors import (
    DuplicateAttributeError,
    DuplicateEdgeError,
    ExecutionError,
    ReservedAttributeError,
    TypeMismatchError,
    UndefinedEdgeError,
)
from tsgraph.values import (
    GraphNodeRef,
    Unbound,
    Value,
    from_json,
    to_json,
)

logger = logging.getLogger(__name__)

#: Attribute names starting with this prefix are reserved for the engine.
RESERVED_PREFIX = "__"


class DuplicatePolicy(enum.Enum):
    """How the graph treats a second write to the same attribute or edge."""

    STRICT = "strict"
    PERMISSIVE = "permissive"


# ===================================================================== #
#  Elements                                                              #
# ===================================================================== #

@dataclass
class GraphNode:
    handle: int
    attributes: Dict[str, Value] = field(default_factory=dict)

    @property
    def ref(self) -> GraphNodeRef:
        return GraphNodeRef(self.handle)


@dataclass
class Edge:
    source: int
    sink: int
    attributes: Dict[str, Value] = field(default_factory=dict)
    #: Identity of the statement that created the edge, when known.
    origin: Optional[str] = None

    @property
    def key(self) -> Tuple[int, int]:
        return (self.source, self.sink)


def _set_attribute(
    attributes: Dict[str, Value],
    element: str,
    name: str,
    value: Value,
    policy: DuplicatePolicy,
) -> None:
    if name.startswith(RESERVED_PREFIX):
        raise ReservedAttributeError(f"Attribute name {name!r} on {element} is reserved")
    if isinstance(value, Unbound):
        raise TypeMismatchError("a bound value", value.kind.value, f"attribute {name} on {element}")
    existing = attributes.get(name)
    if existing is None:
        attributes[name] = value
        return
    if existing == value:
        return
    if policy is DuplicatePolicy.PERMISSIVE:
        logger.warning(
            "Keeping %s = %s on %s; ignoring new value %s",
            name, existing.display(), element, value.display(),
        )
        return
    raise DuplicateAttributeError(element, name, existing.display(), value.display())


# ===================================================================== #
#  Graph                                                                 #
# ===================================================================== #

class Graph:
    """
    Attributed directed graph built by one run.

    Usage::

        graph = Graph()
        a = graph.add_node()
        b = graph.add_node()
        graph.add_edge(a.index, b.index)
        graph.set_node_attribute(a.index, "name", String("x"))
    """

    def __init__(self, policy: DuplicatePolicy = DuplicatePolicy.STRICT) -> None:
        self._policy = policy
        self._nodes: List[GraphNode] = []
        self._edges: Dict[Tuple[int, int], Edge] = {}
        self._frozen = False

    # -- Properties ------------------------------------------------------
    @property
    def policy(self) -> DuplicatePolicy:
        return self._policy

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def nodes(self) -> List[GraphNode]:
        return list(self._nodes)

    @property
    def edges(self) -> List[Edge]:
        return list(self._edges.values())

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[GraphNode]:
        return iter(self._nodes)

    # -- Mutation ---------------------------------------------------------
    def freeze(self) -> None:
        """Forbid further mutation; called when a run completes."""
        self._frozen = True

    def _check_mutable(self) -> None:
        if self._frozen:
            raise RuntimeError("Cannot modify a graph after its run has completed")

    def add_node(self) -> GraphNodeRef:
        """Create a node and return its fresh handle."""
        self._check_mutable()
        node = GraphNode(handle=len(self._nodes))
        self._nodes.append(node)
        return node.ref

    def add_edge(self, source: int, sink: int, origin: Optional[str] = None) -> Edge:
        """
        Create the edge ``source -> sink``.

        Under ``STRICT`` any existing edge between the pair is a
        :class:`DuplicateEdgeError`.  Under ``PERMISSIVE`` an edge created by
        a different statement is reused; the same statement creating the
        same edge again is still a duplicate.
        """
        self._check_mutable()
        self.node(source)
        self.node(sink)
        key = (source, sink)
        existing = self._edges.get(key)
        if existing is not None:
            if self._policy is DuplicatePolicy.STRICT or existing.origin == origin:
                raise DuplicateEdgeError(source, sink)
            logger.warning(
                "Reusing edge %d -> %d created at %s for %s",
                source, sink, existing.origin, origin,
            )
            return existing
        edge = Edge(source=source, sink=sink, origin=origin)
        self._edges[key] = edge
        return edge

    def set_node_attribute(self, handle: int, name: str, value: Value) -> None:
        self._check_mutable()
        node = self.node(handle)
        _set_attribute(node.attributes, f"[graph node {handle}]", name, value, self._policy)

    def set_edge_attribute(self, source: int, sink: int, name: str, value: Value) -> None:
        self._check_mutable()
        edge = self.edge(source, sink)
        _set_attribute(
            edge.attributes,
            f"edge [graph node {source}] -> [graph node {sink}]",
            name,
            value,
            self._policy,
        )

    # -- Queries -----------------------------------------------------------
    def node_exists(self, handle: int) -> bool:
        return 0 <= handle < len(self._nodes)

    def edge_exists(self, source: int, sink: int) -> bool:
        return (source, sink) in self._edges

    def node(self, handle: int) -> GraphNode:
        if not self.node_exists(handle):
            raise ExecutionError(f"No graph node with handle {handle}")
        return self._nodes[handle]

    def edge(self, source: int, sink: int) -> Edge:
        try:
            return self._edges[(source, sink)]
        except KeyError:
            raise UndefinedEdgeError(
                f"No edge [graph node {source}] -> [graph node {sink}]"
            ) from None

    def outgoing(self, handle: int) -> List[Edge]:
        return [edge for edge in self._edges.values() if edge.source == handle]

    # -- Serialisation -----------------------------------------------------
    def to_json(self) -> Dict[str, Any]:
        """The canonical JSON shape of the graph."""
        return {
            "nodes": [
                {
                    "id": node.handle,
                    "attrs": {name: to_json(value) for name, value in node.attributes.items()},
                }
                for node in self._nodes
            ],
            "edges": [
                {
                    "source": edge.source,
                    "sink": edge.sink,
                    "attrs": {name: to_json(value) for name, value in edge.attributes.items()},
                }
                for edge in self._edges.values()
            ],
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "Graph":
        """Rebuild a frozen graph from :meth:`to_json` output."""
        graph = cls()
        for position, entry in enumerate(data.get("nodes", [])):
            if entry["id"] != position:
                raise ValueError(f"Node ids must be dense and ordered; got {entry['id']} at {position}")
            ref = graph.add_node()
            for name, raw in entry.get("attrs", {}).items():
                graph.set_node_attribute(ref.index, name, from_json(raw))
        for entry in data.get("edges", []):
            graph.add_edge(entry["source"], entry["sink"])
            for name, raw in entry.get("attrs", {}).items():
                graph.set_edge_attribute(entry["source"], entry["sink"], name, from_json(raw))
        graph.freeze()
        return graph

    def pretty(self) -> str:
        """Human-readable listing of nodes, edges and attributes."""
        lines: List[str] = []
        for node in self._nodes:
            lines.append(f"node {node.handle}")
            for name, value in node.attributes.items():
                lines.append(f"  {name}: {value.display()}")
            for edge in self.outgoing(node.handle):
                lines.append(f"edge {edge.source} -> {edge.sink}")
                for name, value in edge.attributes.items():
                    lines.append(f"  {name}: {value.display()}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"Graph(nodes={len(self._nodes)}, edges={len(self._edges)})"


__all__ = [
    "RESERVED_PREFIX",
    "DuplicatePolicy",
    "GraphNode",
    "Edge",
    "Graph",
]
