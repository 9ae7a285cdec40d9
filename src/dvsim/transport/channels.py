from __future__ import annotations

import logging
import queue
import select
import socket
import threading
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional, Tuple

from dvsim.core.types import NodeId

LOG = logging.getLogger("dvsim.transport")


class TransportClosed(ConnectionError):
    """The endpoint can no longer send or receive."""


class Endpoint(ABC):
    def __init__(self, label: NodeId) -> None:
        self.label = label

    @abstractmethod
    def recv(self, timeout_s: float) -> Optional[bytes]:
        raise NotImplementedError

    @abstractmethod
    def send(self, dst: NodeId, payload: bytes) -> None:
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        raise NotImplementedError


class InProcessEndpoint(Endpoint):
    def __init__(self, hub: "InProcessHub", label: NodeId) -> None:
        super().__init__(label)
        self._hub = hub
        self._inbox: "queue.Queue[bytes]" = queue.Queue()
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def recv(self, timeout_s: float) -> Optional[bytes]:
        if self._closed.is_set():
            raise TransportClosed(f"endpoint {self.label} closed")
        try:
            return self._inbox.get(timeout=max(0.0, timeout_s))
        except queue.Empty:
            return None

    def send(self, dst: NodeId, payload: bytes) -> None:
        if self._closed.is_set():
            raise TransportClosed(f"endpoint {self.label} closed")
        self._hub.deliver(dst, payload)

    def put(self, payload: bytes) -> bool:
        if self._closed.is_set():
            return False
        self._inbox.put(payload)
        return True

    def close(self) -> None:
        self._closed.set()


class InProcessHub:
    """Thread-safe in-memory channel, one inbox queue per router."""

    def __init__(self, labels: Iterable[NodeId]) -> None:
        self._endpoints: Dict[NodeId, InProcessEndpoint] = {
            int(label): InProcessEndpoint(self, int(label)) for label in labels
        }
        self.undeliverable = 0
        self._lock = threading.Lock()

    def endpoint(self, label: NodeId) -> InProcessEndpoint:
        return self._endpoints[label]

    def deliver(self, dst: NodeId, payload: bytes) -> None:
        target = self._endpoints.get(dst)
        if target is None or not target.put(payload):
            with self._lock:
                self.undeliverable += 1

    def close(self) -> None:
        for ep in self._endpoints.values():
            ep.close()


class UdpEndpoint(Endpoint):
    def __init__(
        self,
        hub: "UdpHub",
        label: NodeId,
        bind_address: str,
        bind_port: int,
        recv_buf_size: int = 65535,
    ) -> None:
        super().__init__(label)
        self._hub = hub
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self._sock.bind((bind_address, bind_port))
        self._recv_buf_size = recv_buf_size
        host, port = self._sock.getsockname()[:2]
        self.address: Tuple[str, int] = (str(host), int(port))

    def recv(self, timeout_s: float) -> Optional[bytes]:
        try:
            readable, _, _ = select.select([self._sock], [], [], max(0.0, timeout_s))
            if not readable:
                return None
            data, _ = self._sock.recvfrom(self._recv_buf_size)
        except (OSError, ValueError) as exc:
            raise TransportClosed(f"endpoint {self.label}: {exc}") from exc
        return data

    def send(self, dst: NodeId, payload: bytes) -> None:
        address = self._hub.address_of(dst)
        if address is None:
            LOG.debug("no address for router %s, dropping datagram", dst)
            return
        try:
            self._sock.sendto(payload, address)
        except OSError as exc:
            raise TransportClosed(f"endpoint {self.label}: {exc}") from exc

    def close(self) -> None:
        self._sock.close()


class UdpHub:
    """One UDP socket per router at ``(bind_address, base_port + label)``.

    With ``base_port=0`` every socket binds an ephemeral port and the
    resulting label-to-address map is used for delivery.
    """

    def __init__(self, labels: Iterable[NodeId], bind_address: str = "127.0.0.1", base_port: int = 0) -> None:
        self._endpoints: Dict[NodeId, UdpEndpoint] = {}
        try:
            for label in labels:
                label = int(label)
                port = base_port + label if base_port else 0
                self._endpoints[label] = UdpEndpoint(self, label, bind_address, port)
        except OSError:
            self.close()
            raise
        self._addresses = {label: ep.address for label, ep in self._endpoints.items()}

    def endpoint(self, label: NodeId) -> UdpEndpoint:
        return self._endpoints[label]

    def address_of(self, label: NodeId) -> Optional[Tuple[str, int]]:
        return self._addresses.get(label)

    def close(self) -> None:
        for ep in self._endpoints.values():
            ep.close()


def build_hub(kind: str, labels: Iterable[NodeId], bind_address: str = "127.0.0.1", base_port: int = 0):
    kind = kind.lower()
    if kind in {"inprocess", "queue", "memory"}:
        return InProcessHub(labels)
    if kind == "udp":
        return UdpHub(labels, bind_address=bind_address, base_port=base_port)
    raise ValueError(f"Unsupported channel: {kind}")
