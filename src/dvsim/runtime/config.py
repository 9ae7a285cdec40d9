from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from dvsim.core.topology import Topology, TopologyError
from dvsim.utils.io import deep_merge, read_yaml

MODES = ("deterministic", "live")
CHANNELS = ("inprocess", "udp")


class ConfigError(ValueError):
    """Configuration is rejected before any router starts."""


@dataclass(frozen=True)
class LiveConfig:
    channel: str = "inprocess"
    bind_address: str = "127.0.0.1"
    base_port: int = 0
    recv_timeout: float = 0.2
    quiet_period: Optional[float] = 1.0
    max_runtime: Optional[float] = 30.0


@dataclass(frozen=True)
class SimConfig:
    name: str = "run"
    mode: str = "deterministic"
    seed: int = 0
    trace: int = 0
    max_steps: Optional[int] = None
    output_dir: Optional[str] = None
    topology: Dict[str, Any] = field(default_factory=dict)
    live: LiveConfig = field(default_factory=LiveConfig)


def validate_config(cfg: Dict[str, Any]) -> List[str]:
    errors: List[str] = []

    topo = cfg.get("topology")
    if topo is None:
        errors.append("Missing 'topology' config")
    elif not isinstance(topo, dict):
        errors.append("'topology' must be a dict")
    elif not any(k in topo for k in ("adjacency", "edges", "type")):
        errors.append("topology needs one of 'adjacency', 'edges' or 'type'")

    seed = cfg.get("seed", 0)
    if isinstance(seed, bool) or not isinstance(seed, int):
        errors.append(f"seed must be an integer, got {seed!r}")

    name = cfg.get("name", "run")
    if not isinstance(name, str) or not name:
        errors.append(f"name must be a non-empty string, got {name!r}")

    mode = str(cfg.get("mode", "deterministic")).lower()
    if mode not in MODES:
        errors.append(f"mode must be one of {list(MODES)}, got {mode!r}")

    try:
        if int(cfg.get("trace", 0)) < 0:
            errors.append("trace must be >= 0")
    except (TypeError, ValueError, OverflowError):
        errors.append("trace must be an integer")

    max_steps = cfg.get("max_steps")
    if max_steps is not None:
        try:
            if int(max_steps) <= 0:
                errors.append("max_steps must be > 0")
        except (TypeError, ValueError, OverflowError):
            errors.append("max_steps must be an integer")

    live = cfg.get("live", {})
    if not isinstance(live, dict):
        errors.append("'live' must be a dict")
    else:
        channel = str(live.get("channel", "inprocess")).lower()
        if channel not in CHANNELS:
            errors.append(f"live.channel must be one of {list(CHANNELS)}, got {channel!r}")
        for key in ("recv_timeout", "quiet_period", "max_runtime"):
            value = live.get(key)
            if value is None:
                continue
            try:
                if not float(value) > 0:
                    errors.append(f"live.{key} must be > 0")
            except (TypeError, ValueError, OverflowError):
                errors.append(f"live.{key} must be a number")
        try:
            if not 0 <= int(live.get("base_port", 0)) <= 65535:
                errors.append("live.base_port must be within 0..65535")
        except (TypeError, ValueError, OverflowError):
            errors.append("live.base_port must be an integer")
    return errors


def topology_errors(cfg: Dict[str, Any]) -> List[str]:
    """Build the configured topology and report why it is rejected, if it is."""
    try:
        Topology.from_config(cfg["topology"], seed=int(cfg.get("seed", 0)))
    except TopologyError as exc:
        return [str(exc)]
    return []


def parse_config(raw: Dict[str, Any]) -> SimConfig:
    errors = validate_config(raw)
    if errors:
        raise ConfigError("Invalid config: " + "; ".join(errors))

    live_raw = dict(raw.get("live", {}))
    live = LiveConfig(
        channel=str(live_raw.get("channel", "inprocess")).lower(),
        bind_address=str(live_raw.get("bind_address", "127.0.0.1")),
        base_port=int(live_raw.get("base_port", 0)),
        recv_timeout=float(live_raw.get("recv_timeout", 0.2)),
        quiet_period=_opt_float(live_raw.get("quiet_period", 1.0)),
        max_runtime=_opt_float(live_raw.get("max_runtime", 30.0)),
    )
    max_steps = raw.get("max_steps")
    output_dir = raw.get("output_dir")
    return SimConfig(
        name=str(raw.get("name", "run")),
        mode=str(raw.get("mode", "deterministic")).lower(),
        seed=int(raw.get("seed", 0)),
        trace=int(raw.get("trace", 0)),
        max_steps=int(max_steps) if max_steps is not None else None,
        output_dir=str(output_dir) if output_dir else None,
        topology=dict(raw["topology"]),
        live=live,
    )


def load_effective_config(config_path: str | Path) -> Dict[str, Any]:
    """Experiment YAML deep-merged over ``configs/defaults.yaml`` when present."""
    cfg_path = Path(config_path).resolve()
    parts = cfg_path.parts
    if "configs" in parts:
        cfg_idx = parts.index("configs")
        root = Path(*parts[:cfg_idx]) if cfg_idx > 0 else Path("/")
    else:
        root = cfg_path.parent
    defaults_path = root / "configs" / "defaults.yaml"

    cfg: Dict[str, Any] = {}
    if defaults_path.exists() and defaults_path != cfg_path:
        cfg = load_config_file(defaults_path)
    return deep_merge(cfg, load_config_file(cfg_path))


def load_config_file(path: str | Path) -> Dict[str, Any]:
    """One YAML config file as a mapping; an empty file is ``{}``."""
    try:
        raw = read_yaml(path)
    except OSError as exc:
        raise ConfigError(f"Cannot read config {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config {path} must be a mapping, got {type(raw).__name__}")
    return raw


def load_sim_config(config_path: str | Path, overrides: Dict[str, Any] | None = None) -> SimConfig:
    raw = load_effective_config(config_path)
    if overrides:
        raw = deep_merge(raw, {k: v for k, v in overrides.items() if v is not None})
    return parse_config(raw)


def _opt_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    return float(value)
