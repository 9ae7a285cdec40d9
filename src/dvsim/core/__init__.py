"""Relaxation core: routers, distance tables and packets."""

from dvsim.core.context import SimulationContext
from dvsim.core.node import NodeState
from dvsim.core.table import DistanceTable
from dvsim.core.topology import Topology, TopologyError
from dvsim.core.types import Packet, RunResult

__all__ = [
    "DistanceTable",
    "NodeState",
    "Packet",
    "RunResult",
    "SimulationContext",
    "Topology",
    "TopologyError",
]
