from __future__ import annotations

import heapq
from typing import Iterable, List, Optional, Tuple

from dvsim.core.context import SimulationContext
from dvsim.core.trace import TRACE_DELIVERY, TRACE_LAYER2
from dvsim.core.types import Packet
from dvsim.transport.base import Transport


class EventQueueTransport(Transport):
    """Single-threaded discrete-event medium.

    Pending packets sit in a heap keyed by ``(timestamp, insertion seq)``.
    Each step delivers the earliest packet synchronously; a router that
    changed broadcasts right away with fresh timestamps. An empty queue means
    no router has anything left to propagate.
    """

    mode = "deterministic"

    def __init__(self, context: SimulationContext, max_steps: int | None = None) -> None:
        super().__init__()
        self._ctx = context
        self.max_steps = int(max_steps) if max_steps else None
        self._queue: List[Tuple[float, int, Packet]] = []
        self._seq = 0
        self.steps = 0

    @property
    def pending(self) -> int:
        return len(self._queue)

    def start(self) -> None:
        for label in sorted(self.nodes):
            self._enqueue(self.nodes[label].broadcast(self._ctx.clock))

    def step(self) -> Optional[Packet]:
        if not self._queue:
            return None
        _, _, packet = heapq.heappop(self._queue)
        self.steps += 1
        tracer = self._ctx.tracer
        tracer.emit(
            TRACE_DELIVERY,
            "deliver",
            t=round(packet.timestamp, 3),
            src=packet.src,
            dst=packet.dst,
            costs=list(packet.costs),
        )

        node = self.nodes.get(packet.dst)
        if node is None:
            self.dropped_messages += 1
            return packet
        tracer.emit(TRACE_LAYER2, "to_layer2", src=packet.src, dst=packet.dst, costs=list(packet.costs))
        self.delivered_messages += 1
        if node.on_receive(packet):
            self._enqueue(node.broadcast(self._ctx.clock))
        return packet

    def drain(self, max_steps: int | None = None) -> bool:
        limit = max_steps if max_steps is not None else self.max_steps
        while self._queue:
            if self._stop_requested.is_set():
                return False
            if limit is not None and self.steps >= limit:
                return False
            self.step()
        return True

    def run(self) -> bool:
        return self.drain()

    def stop(self) -> None:
        self._stop_requested.set()

    def _enqueue(self, packets: Iterable[Packet]) -> None:
        for packet in packets:
            heapq.heappush(self._queue, (packet.timestamp, self._seq, packet))
            self._seq += 1
