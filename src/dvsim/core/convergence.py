from __future__ import annotations

import hashlib
import heapq
import json
from typing import Dict, List, Mapping, Sequence

from dvsim.core.topology import Topology
from dvsim.core.types import Cost, NodeId


def hash_tables(tables: Mapping[NodeId, Sequence[Sequence[Cost]]]) -> str:
    normalized: dict[str, list[list[int]]] = {}
    for node, rows in sorted(tables.items()):
        normalized[str(node)] = [[int(c) for c in row] for row in rows]
    payload = json.dumps(normalized, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def shortest_distances(graph: Mapping[int, Mapping[int, Cost]], start: int) -> Dict[int, Cost]:
    dist: Dict[int, Cost] = {start: 0}
    pq = [(0, start)]
    while pq:
        d, u = heapq.heappop(pq)
        if d > dist.get(u, d):
            continue
        for v, w in graph.get(u, {}).items():
            nd = d + w
            if v not in dist or nd < dist[v]:
                dist[v] = nd
                heapq.heappush(pq, (nd, v))
    return dist


def all_pairs_costs(topology: Topology) -> Dict[NodeId, List[Cost]]:
    """Centralized reference: one Dijkstra run per node, sentinel when unreachable."""
    graph = topology.snapshot()
    infinity = topology.infinity()
    nodes = topology.nodes()
    out: Dict[NodeId, List[Cost]] = {}
    for src in nodes:
        dist = shortest_distances(graph, src)
        out[src] = [dist.get(dst, infinity) for dst in nodes]
    return out
