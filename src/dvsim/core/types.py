from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

NodeId = int
Cost = int
CostVector = Tuple[Cost, ...]


@dataclass(frozen=True)
class Packet:
    src: NodeId
    dst: NodeId
    costs: CostVector
    timestamp: float = 0.0


@dataclass
class RunResult:
    mode: str
    seed: int
    converged: bool
    delivered_messages: int
    dropped_messages: int
    final_time: float
    infinity: Cost
    self_rows: Dict[NodeId, List[Cost]]
    tables: Dict[NodeId, List[List[Cost]]]
    tables_hash: str
    steps: Optional[int] = None
    extra: Dict[str, object] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {
            "mode": self.mode,
            "seed": self.seed,
            "converged": self.converged,
            "delivered_messages": self.delivered_messages,
            "dropped_messages": self.dropped_messages,
            "final_time": self.final_time,
            "infinity": self.infinity,
            "self_rows": {str(k): list(v) for k, v in sorted(self.self_rows.items())},
            "tables": {str(k): [list(r) for r in v] for k, v in sorted(self.tables.items())},
            "tables_hash": self.tables_hash,
            "steps": self.steps,
            **self.extra,
        }
