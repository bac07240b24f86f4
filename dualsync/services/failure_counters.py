"""
Thread-safe failure counters for live dual-write.

Keys have the form ``"{entity_type}:{operation}"``, e.g. ``"User:save"``.
Each dispatcher owns its own instance.
"""

import threading
from collections import defaultdict
from typing import Dict


class FailureCounters:

    def __init__(self):
        self._lock = threading.Lock()
        self._counts: Dict[str, int] = defaultdict(int)

    @staticmethod
    def key(entity_type: str, operation: str) -> str:
        return f"{entity_type}:{operation}"

    def increment(self, entity_type: str, operation: str, amount: int = 1) -> int:
        key = self.key(entity_type, operation)
        with self._lock:
            self._counts[key] += amount
            return self._counts[key]

    def get(self, entity_type: str, operation: str) -> int:
        with self._lock:
            return self._counts.get(self.key(entity_type, operation), 0)

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counts)

    def total(self) -> int:
        with self._lock:
            return sum(self._counts.values())

    def reset(self) -> None:
        with self._lock:
            self._counts.clear()
