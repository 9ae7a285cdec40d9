from __future__ import annotations

import logging
import threading
import time
from typing import Dict, List, Optional

from dvsim.core.context import SimulationContext
from dvsim.core.node import NodeState
from dvsim.core.trace import TRACE_DELIVERY, TRACE_LAYER2
from dvsim.model.messages import PacketDecodeError, decode_packet, encode_packet
from dvsim.transport.base import Transport
from dvsim.transport.channels import Endpoint, TransportClosed

LOG = logging.getLogger("dvsim.transport")


class ActivityMonitor:
    """Tracks when any router last changed its table."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last = time.monotonic()
        self.changes = 0

    def touch(self) -> None:
        with self._lock:
            self._last = time.monotonic()
            self.changes += 1

    def idle_for(self) -> float:
        with self._lock:
            return time.monotonic() - self._last


class LiveRouter:
    """Receive and send threads of one router.

    The receive thread is the only writer of the router's table. The send
    thread sleeps on the router's dirty event and broadcasts whenever it is
    set. Both wait with ``recv_timeout`` so a stop request is seen promptly.
    """

    def __init__(
        self,
        node: NodeState,
        endpoint: Endpoint,
        context: SimulationContext,
        monitor: ActivityMonitor,
        recv_timeout: float = 0.2,
    ) -> None:
        self.node = node
        self._endpoint = endpoint
        self._ctx = context
        self._monitor = monitor
        self._recv_timeout = recv_timeout
        self._stop = threading.Event()
        self.sent = 0
        self.decode_errors = 0
        self._recv_thread = threading.Thread(
            target=self._receive_loop, name=f"dv-recv-{node.label}", daemon=True
        )
        self._send_thread = threading.Thread(
            target=self._send_loop, name=f"dv-send-{node.label}", daemon=True
        )

    @property
    def running(self) -> bool:
        return not self._stop.is_set()

    def start(self) -> None:
        self._recv_thread.start()
        self._send_thread.start()

    def stop(self) -> None:
        self._stop.set()

    def join(self, timeout: Optional[float] = None) -> None:
        for thread in (self._recv_thread, self._send_thread):
            if thread.is_alive():
                thread.join(timeout)

    def _receive_loop(self) -> None:
        tracer = self._ctx.tracer
        try:
            while not self._stop.is_set():
                try:
                    data = self._endpoint.recv(self._recv_timeout)
                except TransportClosed as exc:
                    if not self._stop.is_set():
                        LOG.warning("router %s receive stopped: %s", self.node.label, exc)
                    return
                if data is None:
                    continue
                try:
                    packet = decode_packet(data)
                except PacketDecodeError as exc:
                    self.decode_errors += 1
                    LOG.debug("router %s dropped malformed packet: %s", self.node.label, exc)
                    continue
                tracer.emit(
                    TRACE_DELIVERY,
                    "deliver",
                    t=round(packet.timestamp, 3),
                    src=packet.src,
                    dst=packet.dst,
                    costs=list(packet.costs),
                )
                tracer.emit(TRACE_LAYER2, "to_layer2", src=packet.src, dst=packet.dst, costs=list(packet.costs))
                if self.node.on_receive(packet):
                    self._monitor.touch()
        finally:
            self._stop.set()

    def _send_loop(self) -> None:
        while not self._stop.is_set():
            if not self.node.wait_dirty(self._recv_timeout):
                continue
            if self._stop.is_set():
                break
            for packet in self.node.broadcast(self._ctx.clock):
                try:
                    self._endpoint.send(packet.dst, encode_packet(packet))
                except TransportClosed as exc:
                    LOG.warning("router %s send stopped: %s", self.node.label, exc)
                    self._stop.set()
                    return
                self.sent += 1


class ThreadedTransport(Transport):
    """Live exchange with one send/receive thread pair per router.

    There is no global termination detection. ``run`` returns once no table
    changed for ``quiet_period`` seconds, when ``max_runtime`` elapses, or when
    :meth:`stop` is called from elsewhere.
    """

    mode = "live"

    def __init__(
        self,
        context: SimulationContext,
        hub,
        recv_timeout: float = 0.2,
        quiet_period: float | None = 1.0,
        max_runtime: float | None = None,
    ) -> None:
        super().__init__()
        self._ctx = context
        self._hub = hub
        self.recv_timeout = float(recv_timeout)
        self.quiet_period = quiet_period
        self.max_runtime = max_runtime
        self.monitor = ActivityMonitor()
        self.routers: Dict[int, LiveRouter] = {}
        self._started = False

    def start(self) -> None:
        self.routers = {
            label: LiveRouter(
                node,
                self._hub.endpoint(label),
                self._ctx,
                self.monitor,
                recv_timeout=self.recv_timeout,
            )
            for label, node in sorted(self.nodes.items())
        }
        self.monitor.touch()
        for router in self.routers.values():
            router.start()
        self._started = True
        LOG.info("started %d live routers", len(self.routers))

    def run(self) -> bool:
        deadline = time.monotonic() + self.max_runtime if self.max_runtime else None
        while not self._stop_requested.is_set():
            waits: List[float] = []
            if self.quiet_period is not None:
                idle = self.monitor.idle_for()
                if idle >= self.quiet_period:
                    LOG.info("no table changes for %.2fs, treating as converged", idle)
                    return True
                waits.append(self.quiet_period - idle)
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    LOG.info("live run reached max runtime")
                    return False
                waits.append(remaining)
            if not any(r.running for r in self.routers.values()):
                LOG.warning("all live routers stopped")
                return False
            self._stop_requested.wait(min(waits) if waits else self.recv_timeout)
        return False

    def stop(self) -> None:
        self._stop_requested.set()
        if self._started:
            for router in self.routers.values():
                router.stop()
            for router in self.routers.values():
                router.join(timeout=self.recv_timeout * 5)
            self._started = False
            self.delivered_messages = sum(r.node.received for r in self.routers.values())
            self.dropped_messages = sum(r.decode_errors for r in self.routers.values())
        # the hub owns bound sockets whether or not routers ran
        self._hub.close()
