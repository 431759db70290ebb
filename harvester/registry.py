from __future__ import annotations

import threading
from collections import OrderedDict
from typing import Optional

from .types import RunResult


class RunRegistry:
    """Bounded, process-scoped map of run id to result. Oldest runs are evicted."""

    def __init__(self, max_runs: int = 20):
        if max_runs < 1:
            raise ValueError("max_runs must be >= 1")
        self.max_runs = max_runs
        self._runs: "OrderedDict[str, RunResult]" = OrderedDict()
        self._lock = threading.Lock()

    def put(self, result: RunResult) -> None:
        with self._lock:
            self._runs[result.run_id] = result
            self._runs.move_to_end(result.run_id)
            while len(self._runs) > self.max_runs:
                self._runs.popitem(last=False)

    def get(self, run_id: str) -> Optional[RunResult]:
        with self._lock:
            return self._runs.get(run_id)

    def latest(self) -> Optional[RunResult]:
        with self._lock:
            if not self._runs:
                return None
            return next(reversed(self._runs.values()))

    def list_ids(self) -> list[str]:
        """Run ids, newest first."""
        with self._lock:
            return list(reversed(self._runs))

    def __len__(self) -> int:
        with self._lock:
            return len(self._runs)
