"""
Tests for gtg.graph.

Covers vertex ID assignment, edge deduplication, event clustering and the
vertex/edge list output.
"""

import numpy as np

from gtg import MCCGraph, build_graph


class TestBuildGraph:
    """Tests for build_graph."""

    def test_duplicate_edges_collapse(self):
        candidates = [((0, 1), (1, 1))] * 5
        graph = build_graph(candidates)
        assert graph.n_vertices == 2
        assert graph.n_edges == 1
        assert graph.edge_keys() == [((0, 1), (1, 1))]

    def test_dense_sorted_vertex_ids(self):
        candidates = [((1, 2), (2, 1)), ((0, 3), (1, 2)), ((0, 1), (1, 1))]
        graph = build_graph(candidates)
        assert graph.vertices == {(0, 1): 0, (0, 3): 1, (1, 1): 2, (1, 2): 3, (2, 1): 4}
        assert graph.sorted_edges() == [(0, 2), (1, 3), (3, 4)]
        assert graph.key(3) == (1, 2)

    def test_only_edge_endpoints_become_vertices(self):
        graph = build_graph([((4, 2), (5, 7))])
        assert graph.vertex_keys() == [(4, 2), (5, 7)]

    def test_numpy_keys_are_normalised(self):
        graph = build_graph([((np.int64(0), np.int32(1)), (np.int64(1), np.float64(1.0)))])
        assert graph == build_graph([((0, 1), (1, 1))])

    def test_empty(self):
        graph = build_graph([])
        assert graph.n_vertices == 0
        assert graph.n_edges == 0
        assert graph.events() == {}
        assert repr(graph) == 'MCCGraph(n_vertices=0, n_edges=0)'

    def test_accepts_any_iterable(self):
        candidates = {((0, 1), (1, 1)), ((1, 1), (2, 1))}
        graph = build_graph(iter(candidates))
        assert graph.n_edges == 2


class TestEvents:
    """Tests for MCCGraph.events."""

    def test_two_chains(self):
        candidates = [
            ((0, 2), (1, 1)), ((1, 1), (2, 3)),
            ((0, 1), (1, 2)),
        ]
        events = build_graph(candidates).events()
        assert events == {(0, 1): 1, (1, 2): 1, (0, 2): 2, (1, 1): 2, (2, 3): 2}

    def test_merge_joins_events(self):
        candidates = [((0, 1), (1, 1)), ((0, 2), (1, 1))]
        events = build_graph(candidates).events()
        assert set(events.values()) == {1}


class TestOutput:
    """Tests for to_dataset & write."""

    def test_to_dataset(self):
        graph = build_graph([((0, 1), (1, 1)), ((1, 1), (2, 1)), ((0, 2), (1, 3))])
        ds = graph.to_dataset()

        assert ds.sizes['vertex'] == 5
        assert ds.sizes['edge'] == 3
        np.testing.assert_array_equal(ds.frame.values, [0, 0, 1, 1, 2])
        np.testing.assert_array_equal(ds.label.values, [1, 2, 1, 3, 1])
        np.testing.assert_array_equal(ds.event.values, [1, 2, 1, 2, 1])
        assert sorted(zip(ds.source.values.tolist(), ds.target.values.tolist())) == graph.sorted_edges()

    def test_empty_dataset(self):
        ds = build_graph([]).to_dataset()
        assert ds.sizes['vertex'] == 0
        assert ds.sizes['edge'] == 0

    def test_write(self, tmp_path):
        graph = build_graph([((1, 1), (2, 1)), ((0, 1), (1, 1))])
        vertex_path, edge_path = graph.write(tmp_path / 'VertexList.txt', tmp_path / 'EdgeList.txt')

        assert vertex_path.read_text().splitlines() == ['0 1 0', '1 1 1', '2 1 2']
        assert edge_path.read_text().splitlines() == ['0 1 1 1', '1 1 2 1']

    def test_equality(self):
        a = build_graph([((0, 1), (1, 1))])
        b = MCCGraph({(0, 1): 0, (1, 1): 1}, {(0, 1)})
        assert a == b
        assert a != build_graph([((0, 1), (1, 2))])
