from __future__ import annotations

import threading
from types import MappingProxyType
from typing import List, Mapping

from dvsim.core.clock import TraceClock
from dvsim.core.table import DistanceTable
from dvsim.core.trace import TRACE_RECEIVE, Tracer
from dvsim.core.types import Cost, NodeId, Packet


class NodeState:
    """One router: its label, direct link weights and distance table.

    ``weights`` doubles as the adjacency. A router starts dirty so that its
    first broadcast seeds the exchange.
    """

    def __init__(
        self,
        label: NodeId,
        weights: Mapping[NodeId, Cost],
        n_nodes: int,
        infinity: Cost,
        tracer: Tracer | None = None,
    ) -> None:
        self.label = int(label)
        self.weights: Mapping[NodeId, Cost] = MappingProxyType(dict(weights))
        self.neighbors: List[NodeId] = sorted(self.weights)
        self.table = DistanceTable(self.label, self.weights, n_nodes, infinity)
        self._tracer = tracer or Tracer()
        self._dirty = threading.Event()
        self._dirty.set()
        self.received = 0
        self.dropped = 0
        self.updates = 0

    @property
    def dirty(self) -> bool:
        return self._dirty.is_set()

    def wait_dirty(self, timeout: float) -> bool:
        return self._dirty.wait(timeout)

    def on_receive(self, packet: Packet) -> bool:
        self.received += 1
        link_cost = self.weights.get(packet.src)
        if link_cost is None:
            return self._drop(packet, "sender is not a neighbor")
        if packet.dst != self.label:
            return self._drop(packet, "addressed to another node")
        if len(packet.costs) != self.table.n_nodes:
            return self._drop(packet, "cost vector length mismatch")

        changed = self.table.relax(packet.src, packet.costs, link_cost)
        if changed:
            self.updates += 1
            self._dirty.set()
        if self._tracer.enabled(TRACE_RECEIVE):
            self._tracer.emit(
                TRACE_RECEIVE,
                "receive",
                node=self.label,
                src=packet.src,
                ts=round(packet.timestamp, 3),
                changed=changed,
                table=[list(row) for row in self.table.rows()],
            )
        return changed

    def broadcast(self, clock: TraceClock) -> List[Packet]:
        # Clear before the snapshot: an update landing in between sets the
        # flag again and is picked up by the next broadcast.
        self._dirty.clear()
        costs = self.table.snapshot_self_row()
        return [Packet(src=self.label, dst=nbr, costs=costs, timestamp=clock.tick()) for nbr in self.neighbors]

    def _drop(self, packet: Packet, reason: str) -> bool:
        self.dropped += 1
        self._tracer.emit(
            TRACE_RECEIVE,
            "drop",
            node=self.label,
            src=packet.src,
            dst=packet.dst,
            reason=reason,
        )
        return False
