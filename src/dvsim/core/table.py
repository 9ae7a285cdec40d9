from __future__ import annotations

import threading
from typing import List, Mapping, Optional, Sequence, Tuple

from dvsim.core.types import Cost, CostVector, NodeId


class DistanceTable:
    """Transposed distance table of one router.

    Cell ``[via][dst]`` is the best known cost to ``dst`` when the first hop is
    ``via``. Row ``[label]`` holds the router's own best costs and is the
    vector advertised to neighbors. Unknown cells hold ``infinity``.

    Relaxation and snapshots share one lock so a sender thread never observes
    a half-applied update.
    """

    def __init__(
        self,
        label: NodeId,
        neighbor_costs: Mapping[NodeId, Cost],
        n_nodes: int,
        infinity: Cost,
    ) -> None:
        self.label = label
        self.n_nodes = n_nodes
        self.infinity = infinity
        self._lock = threading.Lock()
        self._rows: List[List[Cost]] = [[infinity] * n_nodes for _ in range(n_nodes)]
        self._rows[label][label] = 0
        for nbr, cost in neighbor_costs.items():
            self._rows[nbr][nbr] = cost
            self._rows[label][nbr] = cost

    def relax(self, origin: NodeId, origin_vector: Sequence[Cost], link_cost: Optional[Cost]) -> bool:
        if link_cost is None:
            return False
        changed = False
        with self._lock:
            own = self._rows[self.label]
            via = self._rows[origin]
            for dst, advertised in enumerate(origin_vector):
                if dst == self.label or advertised >= self.infinity:
                    continue
                candidate = advertised + link_cost
                if candidate < via[dst]:
                    via[dst] = candidate
                    changed = True
                if candidate < own[dst]:
                    own[dst] = candidate
                    changed = True
        return changed

    def snapshot_self_row(self) -> CostVector:
        with self._lock:
            return tuple(self._rows[self.label])

    def rows(self) -> Tuple[CostVector, ...]:
        with self._lock:
            return tuple(tuple(row) for row in self._rows)

    def cost(self, via: NodeId, dst: NodeId) -> Cost:
        with self._lock:
            return self._rows[via][dst]

    def best(self, dst: NodeId) -> Optional[Cost]:
        value = self.cost(self.label, dst)
        if value >= self.infinity:
            return None
        return value
