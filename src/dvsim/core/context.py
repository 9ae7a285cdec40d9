from __future__ import annotations

from dvsim.core.clock import TraceClock
from dvsim.core.trace import Tracer


class SimulationContext:
    """Per-run state shared by the coordinator, routers and transport."""

    def __init__(self, seed: int = 0, tracer: Tracer | None = None, jitter: bool = True) -> None:
        self.seed = int(seed)
        self.clock = TraceClock(seed=self.seed, jitter=jitter)
        self.tracer = tracer or Tracer()
