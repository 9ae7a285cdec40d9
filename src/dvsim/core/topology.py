from __future__ import annotations

import itertools
import random
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Tuple

from dvsim.core.types import Cost, NodeId


class TopologyError(ValueError):
    """Raised when a topology cannot be turned into a valid set of routers."""


@dataclass
class Edge:
    u: NodeId
    v: NodeId
    metric: Cost


def _check_cost(u: Any, v: Any, metric: Any) -> Cost:
    if isinstance(metric, bool) or not isinstance(metric, int):
        raise TopologyError(f"Edge {u}-{v} cost must be an integer, got {metric!r}")
    if metric <= 0:
        raise TopologyError(f"Edge {u}-{v} cost must be positive, got {metric}")
    return metric


class Topology:
    """Static adjacency of a routed network, labels ``0..N-1``.

    Only the coordinator holds a topology. Routers receive a copy of their own
    neighbor map at build time and nothing else.
    """

    def __init__(self) -> None:
        self._adj: Dict[NodeId, Dict[NodeId, Cost]] = {}

    def add_node(self, node: NodeId) -> None:
        self._adj.setdefault(node, {})

    def nodes(self) -> List[NodeId]:
        return sorted(self._adj.keys())

    def __len__(self) -> int:
        return len(self._adj)

    def neighbors(self, node: NodeId) -> Dict[NodeId, Cost]:
        return dict(self._adj.get(node, {}))

    def metric(self, u: NodeId, v: NodeId) -> Cost | None:
        return self._adj.get(u, {}).get(v)

    def add_link(self, u: NodeId, v: NodeId, metric: Cost = 1) -> None:
        metric = _check_cost(u, v, metric)
        if u == v:
            raise TopologyError(f"Self loop on node {u}")
        self.add_node(u)
        self.add_node(v)
        self._adj[u][v] = metric
        self._adj[v][u] = metric

    def edge_list(self) -> List[Edge]:
        """Undirected links, lower label first; its cost wins on asymmetric links."""
        links: Dict[Tuple[NodeId, NodeId], Cost] = {}
        for u in self.nodes():
            for v, cost in self._adj[u].items():
                links.setdefault((min(u, v), max(u, v)), cost)
        return [Edge(u=u, v=v, metric=cost) for (u, v), cost in sorted(links.items())]

    def snapshot(self) -> Dict[NodeId, Dict[NodeId, Cost]]:
        """Deep copy of the directed adjacency."""
        return {node: dict(costs) for node, costs in self._adj.items()}

    def infinity(self) -> Cost:
        """Sentinel cost strictly above every simple path cost.

        A simple path uses each directed edge at most once, so the sum of all
        directed edge costs bounds it even for asymmetric adjacency.
        """
        return sum(sum(nei.values()) for nei in self._adj.values()) + 1

    def validate(self) -> None:
        labels = self.nodes()
        if not labels:
            raise TopologyError("Topology has no nodes")
        expected = list(range(len(labels)))
        if labels != expected:
            raise TopologyError(f"Node labels must be exactly 0..{len(labels) - 1}, got {labels}")
        for u, nei in self._adj.items():
            for v, metric in nei.items():
                if v not in self._adj:
                    raise TopologyError(f"Node {u} references unknown neighbor {v}")
                if v == u:
                    raise TopologyError(f"Self loop on node {u}")
                _check_cost(u, v, metric)

    @classmethod
    def from_adjacency(cls, adjacency: Mapping[Any, Mapping[Any, Any]]) -> "Topology":
        """Build from ``label -> {neighbor: cost}`` without forcing symmetry."""
        if not isinstance(adjacency, Mapping):
            raise TopologyError(f"Adjacency must map labels to neighbor costs, got {type(adjacency).__name__}")
        t = cls()
        seen: set[int] = set()
        for raw_node, raw_neighbors in adjacency.items():
            node = _label(raw_node)
            if node in seen:
                raise TopologyError(f"Duplicate node label {node}")
            seen.add(node)
            t.add_node(node)
            if raw_neighbors is None:
                continue
            if not isinstance(raw_neighbors, Mapping):
                raise TopologyError(f"Neighbors of node {node} must be a mapping")
            for raw_nbr, raw_cost in raw_neighbors.items():
                nbr = _label(raw_nbr)
                if nbr == node:
                    raise TopologyError(f"Self loop on node {node}")
                t._adj[node][nbr] = _check_cost(node, nbr, raw_cost)
        for node, nei in t._adj.items():
            for nbr in nei:
                if nbr not in seen:
                    raise TopologyError(f"Node {node} references unknown neighbor {nbr}")
        t.validate()
        return t

    @classmethod
    def from_edges(cls, edges: Iterable[Tuple[Any, Any, Any]], n_nodes: int | None = None) -> "Topology":
        """Symmetric links from ``(u, v, cost)``; each pair may appear once."""
        t = cls()
        for i in range(n_nodes or 0):
            t.add_node(i)
        seen: set[Tuple[NodeId, NodeId]] = set()
        for raw_u, raw_v, cost in edges:
            u, v = _label(raw_u), _label(raw_v)
            pair = (min(u, v), max(u, v))
            if pair in seen:
                raise TopologyError(f"Duplicate edge {pair[0]}-{pair[1]}")
            seen.add(pair)
            t.add_link(u, v, cost)
        t.validate()
        return t

    @classmethod
    def _from_pairs(cls, n_nodes: int, pairs: Iterable[Tuple[NodeId, NodeId]], metric: Cost) -> "Topology":
        t = cls()
        for n in range(n_nodes):
            t.add_node(n)
        for u, v in pairs:
            t.add_link(u, v, metric)
        return t

    @classmethod
    def line(cls, n_nodes: int, metric: Cost = 1) -> "Topology":
        return cls._from_pairs(n_nodes, ((i, i + 1) for i in range(n_nodes - 1)), metric)

    @classmethod
    def ring(cls, n_nodes: int, metric: Cost = 1) -> "Topology":
        if n_nodes < 3:
            return cls.line(n_nodes, metric)
        return cls._from_pairs(n_nodes, ((i, (i + 1) % n_nodes) for i in range(n_nodes)), metric)

    @classmethod
    def star(cls, n_nodes: int, metric: Cost = 1, center: int = 0) -> "Topology":
        hub = max(0, min(center, n_nodes - 1))
        return cls._from_pairs(n_nodes, ((hub, i) for i in range(n_nodes) if i != hub), metric)

    @classmethod
    def fullmesh(cls, n_nodes: int, metric: Cost = 1) -> "Topology":
        return cls._from_pairs(n_nodes, itertools.combinations(range(n_nodes), 2), metric)

    @classmethod
    def grid(cls, rows: int, cols: int, metric: Cost = 1) -> "Topology":
        """``rows x cols`` lattice, labels row-major."""

        def links() -> Iterator[Tuple[NodeId, NodeId]]:
            for r in range(rows):
                for c in range(cols):
                    u = r * cols + c
                    if c + 1 < cols:
                        yield u, u + 1
                    if r + 1 < rows:
                        yield u, u + cols

        return cls._from_pairs(max(0, rows) * max(0, cols), links(), metric)

    @classmethod
    def er(
        cls,
        n_nodes: int,
        p: float,
        metric: Cost = 1,
        seed: int = 0,
        max_metric: int | None = None,
    ) -> "Topology":
        """Erdos-Renyi graph where every node past 0 keeps at least one link.

        ``max_metric`` draws link costs uniformly from ``1..max_metric``.
        """
        rng = random.Random(seed)

        def draw() -> Cost:
            if max_metric is None:
                return metric
            return rng.randint(1, max(1, int(max_metric)))

        t = cls()
        for n in range(n_nodes):
            t.add_node(n)
        for u in range(n_nodes):
            for v in range(u + 1, n_nodes):
                if rng.random() <= p:
                    t.add_link(u, v, draw())
        for u in range(1, n_nodes):
            if len(t.neighbors(u)) == 0:
                v = rng.randrange(0, u)
                t.add_link(u, v, draw())
        return t

    @classmethod
    def from_config(cls, cfg: Mapping[str, Any], seed: int = 0) -> "Topology":
        if not isinstance(cfg, Mapping):
            raise TopologyError(f"Topology config must be a mapping, got {type(cfg).__name__}")
        if "adjacency" in cfg:
            return cls.from_adjacency(cfg["adjacency"] or {})
        if "edges" in cfg:
            rows = cfg["edges"] or []
            if not isinstance(rows, (list, tuple)):
                raise TopologyError(f"edges must be a list of [u, v, cost], got {type(rows).__name__}")
            edges = []
            for row in rows:
                if not isinstance(row, (list, tuple)) or len(row) != 3:
                    raise TopologyError(f"Edge entries must be [u, v, cost], got {row!r}")
                edges.append((row[0], row[1], row[2]))
            n_nodes = _param(cfg, "n_nodes", None, int)
            return cls.from_edges(edges, n_nodes=n_nodes)

        tp = cfg.get("type", "ring")
        metric = cfg.get("default_metric", 1)
        if tp == "line":
            t = cls.line(_param(cfg, "n_nodes", 8, int), metric)
        elif tp == "ring":
            t = cls.ring(_param(cfg, "n_nodes", 8, int), metric)
        elif tp == "star":
            t = cls.star(_param(cfg, "n_nodes", 8, int), metric, _param(cfg, "center", 0, int))
        elif tp == "fullmesh":
            t = cls.fullmesh(_param(cfg, "n_nodes", 8, int), metric)
        elif tp == "grid":
            t = cls.grid(_param(cfg, "rows", 4, int), _param(cfg, "cols", 4, int), metric)
        elif tp == "er":
            p = _param(cfg, "p", 0.2, float)
            if not 0.0 <= p <= 1.0:
                raise TopologyError(f"topology p must be within [0, 1], got {p}")
            t = cls.er(
                _param(cfg, "n_nodes", 20, int),
                p,
                metric,
                seed=seed,
                max_metric=_param(cfg, "max_metric", None, int),
            )
        else:
            raise TopologyError(f"Unsupported topology type: {tp}")
        t.validate()
        return t


def _label(raw: Any) -> NodeId:
    if isinstance(raw, bool):
        raise TopologyError(f"Invalid node label {raw!r}")
    try:
        return int(raw)
    except (TypeError, ValueError, OverflowError) as exc:
        raise TopologyError(f"Invalid node label {raw!r}") from exc


def _param(cfg: Mapping[str, Any], key: str, default: Any, kind: Callable[[Any], Any]) -> Any:
    value = cfg.get(key)
    if value is None:
        return default
    if isinstance(value, bool):
        raise TopologyError(f"topology {key} must be a number, got {value!r}")
    try:
        return kind(value)
    except (TypeError, ValueError, OverflowError) as exc:
        raise TopologyError(f"topology {key} must be a number, got {value!r}") from exc
