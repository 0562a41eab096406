"""
In-flight registry for per-record work deduplication.

Maps record id to the pending operation (a Future, or any marker). A record
id can be claimed by at most one caller at a time; claims are released when
the work settles, whatever its outcome. The registry only prevents
*concurrent* work on an id, never *repeated* work.
"""

import threading
from typing import Any


class InFlightRegistry:
    """Thread-safe set of claimed record ids with their pending markers."""

    def __init__(self):
        self._pending: dict[str, Any] = {}
        self._lock = threading.Lock()

    def claim(self, record_id: str, marker: Any = True) -> bool:
        """
        Claim an id for work.

        Returns:
            True if the id was free and is now claimed, False if already in flight
        """
        with self._lock:
            if record_id in self._pending:
                return False
            self._pending[record_id] = marker
            return True

    def attach(self, record_id: str, marker: Any) -> None:
        """Replace the marker of a claimed id (e.g. with the submitted Future)."""
        with self._lock:
            if record_id in self._pending:
                self._pending[record_id] = marker

    def release(self, record_id: str) -> None:
        """Release a claim. Releasing an unclaimed id is a no-op."""
        with self._lock:
            self._pending.pop(record_id, None)

    def get(self, record_id: str) -> Any:
        with self._lock:
            return self._pending.get(record_id)

    def snapshot(self) -> frozenset[str]:
        """Ids currently in flight."""
        with self._lock:
            return frozenset(self._pending)

    def __contains__(self, record_id: str) -> bool:
        with self._lock:
            return record_id in self._pending

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)
