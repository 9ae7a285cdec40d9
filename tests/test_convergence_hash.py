from __future__ import annotations

from dvsim.core.convergence import all_pairs_costs, hash_tables, shortest_distances
from dvsim.core.topology import Topology


def test_tables_hash_stable_against_dict_order():
    a = {
        0: [[0, 1], [9, 1]],
        1: [[1, 9], [1, 0]],
    }
    b = {
        1: [[1, 9], [1, 0]],
        0: [[0, 1], [9, 1]],
    }
    assert hash_tables(a) == hash_tables(b)
    assert hash_tables(a) != hash_tables({0: [[0, 2], [9, 1]], 1: [[1, 9], [1, 0]]})


def test_shortest_distances_prefers_multi_hop():
    graph = {0: {1: 1, 2: 3, 3: 7}, 1: {0: 1, 2: 1}, 2: {0: 3, 1: 1, 3: 2}, 3: {0: 7, 2: 2}}
    assert shortest_distances(graph, 0) == {0: 0, 1: 1, 2: 2, 3: 4}


def test_all_pairs_uses_sentinel_for_unreachable():
    topo = Topology.from_edges([(0, 1, 2)], n_nodes=3)
    costs = all_pairs_costs(topo)
    inf = topo.infinity()
    assert costs[0] == [0, 2, inf]
    assert costs[2] == [inf, inf, 0]
