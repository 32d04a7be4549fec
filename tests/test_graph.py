# tests/test_graph.py
"""Tests for the append-only output graph."""

import logging

import pytest

from tsgraph.errors import (
    DuplicateAttributeError,
    DuplicateEdgeError,
    ExecutionError,
    ReservedAttributeError,
    TypeMismatchError,
    UndefinedEdgeError,
)
from tsgraph.graph import DuplicatePolicy, Graph
from tsgraph.values import UNBOUND, GraphNodeRef, Integer, String, make_set


@pytest.fixture
def graph():
    return Graph()


class TestNodes:

    def test_handles_are_monotonic(self, graph):
        refs = [graph.add_node() for _ in range(3)]
        assert refs == [GraphNodeRef(0), GraphNodeRef(1), GraphNodeRef(2)]
        assert len(graph) == 3

    def test_node_exists(self, graph):
        graph.add_node()
        assert graph.node_exists(0)
        assert not graph.node_exists(1)
        assert not graph.node_exists(-1)

    def test_unknown_node(self, graph):
        with pytest.raises(ExecutionError):
            graph.node(5)


class TestAttributes:

    def test_set_and_read(self, graph):
        ref = graph.add_node()
        graph.set_node_attribute(ref.index, "name", String("x"))
        assert graph.node(ref.index).attributes == {"name": String("x")}

    def test_equal_rewrite_is_idempotent(self, graph):
        ref = graph.add_node()
        graph.set_node_attribute(ref.index, "name", String("x"))
        graph.set_node_attribute(ref.index, "name", String("x"))
        assert graph.node(ref.index).attributes["name"] == String("x")

    def test_conflicting_rewrite_fails(self, graph):
        ref = graph.add_node()
        graph.set_node_attribute(ref.index, "name", String("x"))
        with pytest.raises(DuplicateAttributeError) as info:
            graph.set_node_attribute(ref.index, "name", String("y"))
        assert "name" in str(info.value)

    def test_permissive_keeps_first(self, caplog):
        graph = Graph(DuplicatePolicy.PERMISSIVE)
        ref = graph.add_node()
        graph.set_node_attribute(ref.index, "name", String("x"))
        with caplog.at_level(logging.WARNING, logger="tsgraph.graph"):
            graph.set_node_attribute(ref.index, "name", String("y"))
        assert graph.node(ref.index).attributes["name"] == String("x")
        assert "Keeping name" in caplog.text

    def test_reserved_prefix(self, graph):
        ref = graph.add_node()
        with pytest.raises(ReservedAttributeError):
            graph.set_node_attribute(ref.index, "__type", String("x"))

    def test_unbound_rejected(self, graph):
        ref = graph.add_node()
        with pytest.raises(TypeMismatchError):
            graph.set_node_attribute(ref.index, "maybe", UNBOUND)


class TestEdges:

    def test_add_edge(self, graph):
        a, b = graph.add_node(), graph.add_node()
        graph.add_edge(a.index, b.index)
        assert graph.edge_exists(0, 1)
        assert not graph.edge_exists(1, 0)

    def test_dangling_edge_rejected(self, graph):
        a = graph.add_node()
        with pytest.raises(ExecutionError):
            graph.add_edge(a.index, 9)

    def test_strict_duplicate(self, graph):
        a, b = graph.add_node(), graph.add_node()
        graph.add_edge(a.index, b.index, origin="r.tsg:1:1")
        with pytest.raises(DuplicateEdgeError):
            graph.add_edge(a.index, b.index, origin="r.tsg:2:1")

    def test_permissive_reuses_edge_of_other_statement(self):
        graph = Graph(DuplicatePolicy.PERMISSIVE)
        a, b = graph.add_node(), graph.add_node()
        first = graph.add_edge(a.index, b.index, origin="r.tsg:1:1")
        assert graph.add_edge(a.index, b.index, origin="r.tsg:2:1") is first
        assert len(graph.edges) == 1

    def test_permissive_same_statement_is_duplicate(self):
        graph = Graph(DuplicatePolicy.PERMISSIVE)
        a, b = graph.add_node(), graph.add_node()
        graph.add_edge(a.index, b.index, origin="r.tsg:1:1")
        with pytest.raises(DuplicateEdgeError):
            graph.add_edge(a.index, b.index, origin="r.tsg:1:1")

    def test_edge_attributes(self, graph):
        a, b = graph.add_node(), graph.add_node()
        graph.add_edge(a.index, b.index)
        graph.set_edge_attribute(a.index, b.index, "precedence", Integer(1))
        assert graph.edge(a.index, b.index).attributes == {"precedence": Integer(1)}
        with pytest.raises(DuplicateAttributeError):
            graph.set_edge_attribute(a.index, b.index, "precedence", Integer(2))

    def test_attribute_on_missing_edge(self, graph):
        a, b = graph.add_node(), graph.add_node()
        with pytest.raises(UndefinedEdgeError):
            graph.set_edge_attribute(a.index, b.index, "x", Integer(1))


class TestFreezeAndSerialise:

    def _sample(self):
        graph = Graph()
        a, b = graph.add_node(), graph.add_node()
        graph.set_node_attribute(a.index, "name", String("x"))
        graph.set_node_attribute(b.index, "refs", make_set([a]))
        graph.add_edge(a.index, b.index)
        graph.set_edge_attribute(a.index, b.index, "kind", String("def"))
        return graph

    def test_frozen_graph_rejects_mutation(self):
        graph = self._sample()
        graph.freeze()
        assert graph.frozen
        with pytest.raises(RuntimeError):
            graph.add_node()

    def test_json_shape(self):
        assert self._sample().to_json() == {
            "nodes": [
                {"id": 0, "attrs": {"name": "x"}},
                {"id": 1, "attrs": {"refs": {"type": "set", "values": [{"type": "graph_node", "id": 0}]}}},
            ],
            "edges": [{"source": 0, "sink": 1, "attrs": {"kind": "def"}}],
        }

    def test_json_round_trip(self):
        data = self._sample().to_json()
        rebuilt = Graph.from_json(data)
        assert rebuilt.frozen
        assert rebuilt.to_json() == data

    def test_from_json_requires_dense_ids(self):
        with pytest.raises(ValueError):
            Graph.from_json({"nodes": [{"id": 1, "attrs": {}}], "edges": []})

    def test_pretty(self):
        text = self._sample().pretty()
        assert text.splitlines() == [
            "node 0",
            '  name: "x"',
            "edge 0 -> 1",
            '  kind: "def"',
            "node 1",
            "  refs: {[graph node 0]}",
        ]
