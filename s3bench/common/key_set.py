"""
Thread-safe collection of keys written during a benchmark round.
"""

import threading
from typing import Iterator, List, Set


class KeySet:
    """Set of object keys built by concurrent writers and read back once."""

    def __init__(self):
        self._keys: Set[str] = set()
        self._lock = threading.Lock()

    def add(self, key: str) -> None:
        with self._lock:
            self._keys.add(key)

    def snapshot(self) -> List[str]:
        """Return a copy of the keys, safe to iterate while writers continue."""
        with self._lock:
            return list(self._keys)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._keys

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)

    def __iter__(self) -> Iterator[str]:
        return iter(self.snapshot())
