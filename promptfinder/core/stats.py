from __future__ import annotations

import threading
from dataclasses import dataclass, field, fields
from typing import Any


@dataclass(slots=True)
class OptimizationStats:
    llm_calls: int = 0
    llm_calls_failed: int = 0

    evaluations: int = 0
    heuristic_fallbacks: int = 0
    evaluation_failures: int = 0

    variations_requested: int = 0
    variations_received: int = 0
    variations_rejected: int = 0
    variations_duplicate: int = 0

    _lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )

    def incr(self, name: str, amount: int = 1) -> None:
        # Sibling evaluations may run on worker threads.
        with self._lock:
            setattr(self, name, getattr(self, name) + amount)

    def as_dict(self) -> dict[str, Any]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if not f.name.startswith("_")
        }
