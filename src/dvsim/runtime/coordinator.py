from __future__ import annotations

import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from dvsim.core.context import SimulationContext
from dvsim.core.convergence import hash_tables
from dvsim.core.node import NodeState
from dvsim.core.topology import Topology, TopologyError
from dvsim.core.trace import JsonlLogger, Tracer
from dvsim.core.types import NodeId, RunResult
from dvsim.runtime.config import SimConfig
from dvsim.transport.base import Transport
from dvsim.transport.channels import build_hub
from dvsim.transport.event_queue import EventQueueTransport
from dvsim.transport.threaded import ThreadedTransport
from dvsim.utils.io import make_run_dir, write_json

LOG = logging.getLogger("dvsim.coordinator")


class Coordinator:
    """Builds routers from a topology and drives them over one transport.

    The topology stays here. Each router gets only its own neighbor map, the
    node count and the sentinel cost.
    """

    def __init__(self, topology: Topology, context: SimulationContext | None = None) -> None:
        topology.validate()
        self.topology = topology
        self.context = context or SimulationContext()
        self.infinity = topology.infinity()
        n_nodes = len(topology)
        self.nodes: Dict[NodeId, NodeState] = {
            label: NodeState(
                label=label,
                weights=topology.neighbors(label),
                n_nodes=n_nodes,
                infinity=self.infinity,
                tracer=self.context.tracer,
            )
            for label in topology.nodes()
        }
        self.transport: Optional[Transport] = None

    def attach(self, transport: Transport) -> Transport:
        if self.transport is not None:
            raise RuntimeError("transport already attached")
        transport.attach(self.nodes)
        self.transport = transport
        return transport

    def run(self) -> RunResult:
        if self.transport is None:
            raise RuntimeError("no transport attached")
        transport = self.transport
        LOG.info("starting %s run over %d nodes (infinity=%d)", transport.mode, len(self.nodes), self.infinity)
        try:
            transport.start()
            converged = transport.run()
        finally:
            transport.stop()
        result = self.result(converged)
        LOG.info(
            "%s run finished: converged=%s delivered=%d dropped=%d",
            transport.mode,
            result.converged,
            result.delivered_messages,
            result.dropped_messages,
        )
        return result

    def request_stop(self) -> None:
        if self.transport is not None:
            self.transport.request_stop()

    def close(self) -> None:
        """Release the transport and trace outputs; safe after :meth:`run`."""
        if self.transport is not None:
            self.transport.stop()
        self.context.tracer.close()

    def tables(self) -> Dict[NodeId, list]:
        return {label: [list(row) for row in node.table.rows()] for label, node in self.nodes.items()}

    def self_rows(self) -> Dict[NodeId, list]:
        return {label: list(node.table.snapshot_self_row()) for label, node in self.nodes.items()}

    def result(self, converged: bool) -> RunResult:
        transport = self.transport
        tables = self.tables()
        protocol_drops = sum(node.dropped for node in self.nodes.values())
        steps = transport.steps if isinstance(transport, EventQueueTransport) else None
        return RunResult(
            mode=transport.mode if transport else "",
            seed=self.context.seed,
            converged=bool(converged),
            delivered_messages=transport.delivered_messages if transport else 0,
            dropped_messages=(transport.dropped_messages if transport else 0) + protocol_drops,
            final_time=self.context.clock.now,
            infinity=self.infinity,
            self_rows=self.self_rows(),
            tables=tables,
            tables_hash=hash_tables(tables),
            steps=steps,
            extra={"table_updates": sum(node.updates for node in self.nodes.values())},
        )


def build_transport(cfg: SimConfig, context: SimulationContext, labels) -> Transport:
    if cfg.mode == "deterministic":
        return EventQueueTransport(context, max_steps=cfg.max_steps)
    live = cfg.live
    hub = build_hub(live.channel, labels, bind_address=live.bind_address, base_port=live.base_port)
    return ThreadedTransport(
        context,
        hub,
        recv_timeout=live.recv_timeout,
        quiet_period=live.quiet_period,
        max_runtime=live.max_runtime,
    )


def prepare(cfg: SimConfig, run_dir: Path | None = None) -> Coordinator:
    """Validate the topology and wire a coordinator, before any router runs."""
    try:
        topology = Topology.from_config(cfg.topology, seed=cfg.seed)
    except TopologyError:
        LOG.error("rejected topology for run %s", cfg.name)
        raise
    jsonl = JsonlLogger(run_dir / "events.jsonl") if run_dir is not None and cfg.trace > 0 else None
    context = SimulationContext(seed=cfg.seed, tracer=Tracer(level=cfg.trace, jsonl=jsonl))
    coordinator = Coordinator(topology, context)
    coordinator.attach(build_transport(cfg, context, topology.nodes()))
    return coordinator


def run_simulation(
    cfg: SimConfig,
    on_ready: Callable[[Coordinator], None] | None = None,
) -> Dict[str, Any]:
    """Run one configured simulation; ``on_ready`` sees the coordinator before it starts."""
    run_dir = None
    if cfg.output_dir:
        run_dir = make_run_dir(cfg.output_dir, cfg.name)
    coordinator = prepare(cfg, run_dir)
    try:
        if on_ready is not None:
            on_ready(coordinator)
        result = coordinator.run()
    finally:
        coordinator.close()

    payload = {"name": cfg.name, **result.to_dict()}
    if run_dir is not None:
        payload["run_dir"] = str(run_dir)
        write_json(run_dir / "result.json", payload)
        write_json(run_dir / "config.effective.json", asdict(cfg))
    return payload
