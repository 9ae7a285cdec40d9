"""Run wiring: configuration and the coordinator."""

from dvsim.runtime.config import ConfigError, LiveConfig, SimConfig, load_sim_config, parse_config
from dvsim.runtime.coordinator import Coordinator, prepare, run_simulation

__all__ = [
    "ConfigError",
    "Coordinator",
    "LiveConfig",
    "SimConfig",
    "load_sim_config",
    "parse_config",
    "prepare",
    "run_simulation",
]
