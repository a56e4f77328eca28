"""
Character Topology Tests
========================

Structure only: one-sided links, isolates, components, reciprocity.
"""

import pytest

from narrative_consistency.graph import GraphTopology, KnowledgeGraph

from .fixtures import make_character, make_novel, protagonist_novel, relationship


def topology_of(novel):
    graph = KnowledgeGraph()
    graph.initialize_graph(novel)
    return GraphTopology(graph)


def triangle_novel():
    """Lin <-> Mei mutual, Lin -> Wu one-sided, Hermit isolated."""
    return make_novel([
        make_character("c_lin", "Lin Feng", relationships=[
            relationship("c_mei", "Ally"), relationship("c_wu", "Enemy"),
        ]),
        make_character("c_mei", "Mei Ling", relationships=[relationship("c_lin", "Ally")]),
        make_character("c_wu", "Elder Wu"),
        make_character("c_hermit", "Old Hermit"),
    ])


class TestGraphTopology:

    def test_labels_and_types(self):
        topology = topology_of(triangle_novel())
        assert topology.label("c_wu") == "Elder Wu"
        assert topology.label("c_ghost") is None
        assert topology.relationship_type("c_lin", "c_wu") == "Enemy"
        assert topology.relationship_type("c_wu", "c_lin") is None

    def test_missing_reverse_edges(self):
        assert topology_of(triangle_novel()).missing_reverse_edges() == [("c_lin", "c_wu")]
        assert topology_of(protagonist_novel()).missing_reverse_edges() == []

    def test_isolated_characters(self):
        assert topology_of(triangle_novel()).isolated_characters() == ["c_hermit"]

    def test_connected_components(self):
        components = topology_of(triangle_novel()).connected_components()
        assert sorted(sorted(c) for c in components) == [
            ["c_hermit"], ["c_lin", "c_mei", "c_wu"],
        ]

    def test_metrics(self):
        metrics = topology_of(triangle_novel()).compute_metrics()
        assert metrics.character_count == 4
        assert metrics.relationship_count == 3
        assert metrics.component_count == 2
        assert metrics.isolated_count == 1
        assert metrics.reciprocity == pytest.approx(2 / 3)
        assert metrics.density == pytest.approx(3 / 12)

    def test_empty_graph(self):
        topology = topology_of(make_novel([]))
        assert topology.connected_components() == []
        assert topology.compute_metrics().character_count == 0

    def test_self_link_is_not_one_sided(self):
        topology = topology_of(make_novel([
            make_character("c_lin", "Lin Feng", relationships=[relationship("c_lin", "Rival")]),
        ]))
        assert topology.missing_reverse_edges() == []
        assert topology.compute_metrics().reciprocity == 0.0
