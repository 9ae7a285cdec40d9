"""Packet transports: deterministic event queue and threaded live exchange."""

from dvsim.transport.base import Transport
from dvsim.transport.channels import InProcessHub, TransportClosed, UdpHub, build_hub
from dvsim.transport.event_queue import EventQueueTransport
from dvsim.transport.threaded import ThreadedTransport

__all__ = [
    "EventQueueTransport",
    "InProcessHub",
    "ThreadedTransport",
    "Transport",
    "TransportClosed",
    "UdpHub",
    "build_hub",
]
