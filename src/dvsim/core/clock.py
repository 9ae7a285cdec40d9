from __future__ import annotations

import random
import threading


class TraceClock:
    """Monotonic timestamp source for packets.

    Each tick advances the clock by a random fraction drawn from a seeded RNG,
    which spreads packets of one broadcast apart in the deterministic queue.
    Timestamps only order and label packets; relaxation never reads them.
    """

    def __init__(self, seed: int = 0, jitter: bool = True) -> None:
        self._rng = random.Random(seed)
        self._jitter = jitter
        self._now = 0.0
        self._lock = threading.Lock()

    def tick(self) -> float:
        with self._lock:
            step = self._rng.random() if self._jitter else 1.0
            self._now += step
            return self._now

    @property
    def now(self) -> float:
        with self._lock:
            return self._now
