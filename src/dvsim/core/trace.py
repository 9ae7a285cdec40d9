from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable, List

TRACE_SILENT = 0
TRACE_DELIVERY = 1
TRACE_LAYER2 = 2
TRACE_RECEIVE = 3

TraceCallback = Callable[[str, dict], None]


class JsonlLogger:
    def __init__(self, path: str | Path | None = None) -> None:
        self._path = Path(path) if path else None
        self._fh = None
        self._lock = threading.Lock()
        if self._path:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = self._path.open("w", encoding="utf-8")

    def log(self, event: str, **kwargs: Any) -> None:
        with self._lock:
            if not self._fh:
                return
            row = {"event": event, **kwargs}
            self._fh.write(json.dumps(row, sort_keys=True) + "\n")
            self._fh.flush()

    def close(self) -> None:
        with self._lock:
            if self._fh:
                self._fh.close()
                self._fh = None


class Tracer:
    """Diagnostic hooks gated by an integer trace level.

    Level 1 reports packet delivery, level 2 the hand-over of a packet to its
    router, level 3 per-receive detail (drop reasons, table dumps). Events go
    to the ``dvsim.trace`` logger, to an optional JSONL file and to any
    subscribed callbacks. Nothing here feeds back into routing decisions.
    """

    def __init__(
        self,
        level: int = TRACE_SILENT,
        jsonl: JsonlLogger | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.level = max(TRACE_SILENT, int(level))
        self._jsonl = jsonl or JsonlLogger(path=None)
        self._log = logger or logging.getLogger("dvsim.trace")
        self._callbacks: List[TraceCallback] = []

    def enabled(self, level: int) -> bool:
        return self.level >= level

    def subscribe(self, callback: TraceCallback) -> None:
        self._callbacks.append(callback)

    def emit(self, level: int, event: str, **fields: Any) -> None:
        if not self.enabled(level):
            return
        self._log.info("%s %s", event, " ".join(f"{k}={v}" for k, v in sorted(fields.items())))
        self._jsonl.log(event, **fields)
        for callback in self._callbacks:
            callback(event, dict(fields))

    def close(self) -> None:
        self._jsonl.close()
