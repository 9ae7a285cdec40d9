from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Dict, Mapping

from dvsim.core.node import NodeState
from dvsim.core.types import NodeId


class Transport(ABC):
    mode: str = ""

    def __init__(self) -> None:
        self.nodes: Dict[NodeId, NodeState] = {}
        self.delivered_messages = 0
        self.dropped_messages = 0
        self._stop_requested = threading.Event()

    def attach(self, nodes: Mapping[NodeId, NodeState]) -> None:
        self.nodes = dict(nodes)

    def request_stop(self) -> None:
        """Ask :meth:`run` to return; safe from signal handlers and other threads."""
        self._stop_requested.set()

    @abstractmethod
    def start(self) -> None:
        """Seed the exchange with one broadcast from every node."""
        raise NotImplementedError

    @abstractmethod
    def run(self) -> bool:
        """Drive the exchange; True when it went quiet on its own."""
        raise NotImplementedError

    @abstractmethod
    def stop(self) -> None:
        raise NotImplementedError
