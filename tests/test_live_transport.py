from __future__ import annotations

import threading
import time

import pytest

from dvsim.core.context import SimulationContext
from dvsim.core.convergence import all_pairs_costs
from dvsim.core.topology import Topology
from dvsim.runtime.coordinator import Coordinator
from dvsim.transport.channels import InProcessHub, TransportClosed, UdpHub
from dvsim.transport.threaded import ThreadedTransport

SQUARE = {
    0: {1: 1, 2: 3, 3: 7},
    1: {0: 1, 2: 1},
    2: {0: 3, 1: 1, 3: 2},
    3: {0: 7, 2: 2},
}


def _live(topology: Topology, hub, **kwargs) -> Coordinator:
    ctx = SimulationContext(seed=1)
    coordinator = Coordinator(topology, ctx)
    params = {"recv_timeout": 0.05, "quiet_period": 0.5, "max_runtime": 15.0}
    params.update(kwargs)
    coordinator.attach(ThreadedTransport(ctx, hub, **params))
    return coordinator


def test_square_scenario_over_in_process_channel() -> None:
    topo = Topology.from_adjacency(SQUARE)
    result = _live(topo, InProcessHub(topo.nodes())).run()

    assert result.mode == "live"
    assert result.converged is True
    assert result.self_rows[0] == [0, 1, 2, 4]
    assert result.self_rows[2] == [2, 1, 0, 2]
    assert result.delivered_messages > 0


def test_square_scenario_over_udp() -> None:
    topo = Topology.from_adjacency(SQUARE)
    hub = UdpHub(topo.nodes(), bind_address="127.0.0.1", base_port=0)
    result = _live(topo, hub).run()

    assert result.converged is True
    assert result.self_rows[0] == [0, 1, 2, 4]
    assert result.self_rows[2] == [2, 1, 0, 2]


def test_live_matches_reference_on_random_topology() -> None:
    topo = Topology.er(12, 0.25, seed=4, max_metric=10)
    result = _live(topo, InProcessHub(topo.nodes())).run()

    assert result.self_rows == all_pairs_costs(topo)


@pytest.mark.parametrize("hub_factory", [InProcessHub, UdpHub], ids=["inprocess", "udp"])
def test_external_stop_ends_run_within_bounded_wait(hub_factory) -> None:
    topo = Topology.ring(5)
    coordinator = _live(topo, hub_factory(topo.nodes()), quiet_period=None, max_runtime=None)
    transport = coordinator.transport

    timer = threading.Timer(0.3, coordinator.request_stop)
    timer.start()
    started = time.monotonic()
    result = coordinator.run()
    elapsed = time.monotonic() - started
    timer.join()

    assert result.converged is False
    assert elapsed < 3.0
    assert not any(router.running for router in transport.routers.values())
    assert result.self_rows[0] == [0, 1, 2, 2, 1]


def test_closed_endpoint_stops_only_that_router() -> None:
    topo = Topology.line(3)
    hub = InProcessHub(topo.nodes())
    coordinator = _live(topo, hub, quiet_period=0.3)
    transport = coordinator.transport
    transport.start()

    hub.endpoint(2).close()
    deadline = time.monotonic() + 3.0
    while transport.routers[2].running and time.monotonic() < deadline:
        time.sleep(0.05)

    assert transport.routers[2].running is False
    assert transport.routers[0].running is True
    transport.run()
    transport.stop()
    assert coordinator.nodes[0].table.best(1) == 1


def test_malformed_datagram_is_dropped() -> None:
    topo = Topology.line(2)
    hub = InProcessHub(topo.nodes())
    coordinator = _live(topo, hub, quiet_period=0.3)
    hub.deliver(1, b"\x00not json")
    hub.deliver(1, b'{"v": 1, "src": 0, "dst": 1, "costs": [-5, 0], "ts": 0}')

    result = coordinator.run()

    assert coordinator.transport.routers[1].decode_errors == 2
    assert result.self_rows[1] == [1, 0]
    assert result.dropped_messages >= 2


def test_in_process_endpoint_raises_after_close() -> None:
    hub = InProcessHub([0, 1])
    ep = hub.endpoint(0)
    ep.close()
    with pytest.raises(TransportClosed):
        ep.recv(0.01)
    with pytest.raises(TransportClosed):
        ep.send(1, b"x")
    hub.endpoint(1).send(0, b"y")
    assert hub.undeliverable == 1


def test_udp_hub_maps_labels_to_distinct_ports() -> None:
    hub = UdpHub([0, 1, 2])
    try:
        ports = {hub.address_of(label)[1] for label in (0, 1, 2)}
        assert len(ports) == 3
        assert hub.address_of(7) is None
        hub.endpoint(0).send(2, b"hello")
        assert hub.endpoint(2).recv(2.0) == b"hello"
        assert hub.endpoint(1).recv(0.05) is None
    finally:
        hub.close()


def test_closed_udp_endpoint_stops_only_that_router() -> None:
    topo = Topology.line(3)
    hub = UdpHub(topo.nodes())
    coordinator = _live(topo, hub, quiet_period=0.3)
    transport = coordinator.transport
    transport.start()
    try:
        hub.endpoint(2).close()
        deadline = time.monotonic() + 3.0
        while transport.routers[2].running and time.monotonic() < deadline:
            time.sleep(0.05)

        assert transport.routers[2].running is False
        assert transport.routers[0].running is True
        assert transport.routers[1].running is True
        transport.run()
    finally:
        transport.stop()
    assert coordinator.nodes[0].table.best(1) == 1


def test_stop_without_start_closes_hub() -> None:
    topo = Topology.line(2)
    hub = UdpHub(topo.nodes())
    coordinator = _live(topo, hub)

    coordinator.close()

    with pytest.raises(TransportClosed):
        hub.endpoint(0).recv(0.01)
    assert coordinator.transport.delivered_messages == 0
