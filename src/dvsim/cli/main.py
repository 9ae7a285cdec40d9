from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
from typing import Any, Dict

from dvsim.core.convergence import all_pairs_costs
from dvsim.core.topology import Topology, TopologyError
from dvsim.runtime.config import (
    ConfigError,
    load_effective_config,
    load_sim_config,
    topology_errors,
    validate_config,
)
from dvsim.runtime.coordinator import Coordinator, run_simulation

LOG = logging.getLogger("dvsim.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dvsim", description="Distance-vector routing simulator")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity.",
    )
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_run = sub.add_parser("run", help="Run a simulation until quiescence or stop")
    p_run.add_argument("--config", required=True)
    p_run.add_argument("--mode", choices=["deterministic", "live"], default=None)
    p_run.add_argument("--trace", type=int, default=None, help="Trace level, 0 is silent.")
    p_run.add_argument("--seed", type=int, default=None)

    p_validate = sub.add_parser("validate", help="Validate a config file")
    p_validate.add_argument("--config", required=True)

    p_ref = sub.add_parser("reference", help="Print centralized shortest-path costs")
    p_ref.add_argument("--config", required=True)

    return parser


def _install_signal_handlers(coordinator: Coordinator) -> Dict[int, Any]:
    def _handle_signal(signum, _frame) -> None:  # type: ignore[no-untyped-def]
        LOG.info("received signal %s, stopping", signum)
        coordinator.request_stop()

    previous = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.signal(signum, _handle_signal)
    return previous


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.cmd == "validate":
        try:
            raw = load_effective_config(args.config)
        except ConfigError as exc:
            errors = [str(exc)]
        else:
            errors = validate_config(raw) or topology_errors(raw)
        if errors:
            print(json.dumps({"ok": False, "errors": errors}, ensure_ascii=False, indent=2))
            return 1
        print(json.dumps({"ok": True}, ensure_ascii=False, indent=2))
        return 0

    overrides = {}
    previous: Dict[int, Any] = {}
    if args.cmd == "run":
        overrides = {"mode": args.mode, "trace": args.trace, "seed": args.seed}
    try:
        cfg = load_sim_config(args.config, overrides)
        if args.cmd == "reference":
            topology = Topology.from_config(cfg.topology, seed=cfg.seed)
            costs = all_pairs_costs(topology)
            payload = {
                "infinity": topology.infinity(),
                "links": [[e.u, e.v, e.metric] for e in topology.edge_list()],
                "costs": {str(k): v for k, v in costs.items()},
            }
            print(json.dumps(payload, indent=2, sort_keys=True))
            return 0
        result = run_simulation(cfg, on_ready=lambda c: previous.update(_install_signal_handlers(c)))
    except (ConfigError, TopologyError) as exc:
        LOG.error("%s", exc)
        print(json.dumps({"ok": False, "errors": [str(exc)]}, ensure_ascii=False, indent=2), file=sys.stderr)
        return 2
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)

    print(json.dumps(result, indent=2, ensure_ascii=False, sort_keys=True))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
