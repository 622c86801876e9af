import itertools
import threading
import time
from collections.abc import Callable

from docproc.queue.base import BaseJobQueue


class InMemoryJobQueue(BaseJobQueue):
    """Process-local queue with the same ordering as the database queue.

    ``clock`` returns seconds and may be replaced in tests to move time forward.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._seq = itertools.count()
        self._entries: dict[int, tuple[int, float, int]] = {}

    def enqueue(self, job_id: int, priority: int, delay_seconds: float = 0.0) -> None:
        available_at = self._clock() + max(0.0, delay_seconds)
        with self._lock:
            self._entries[job_id] = (priority, available_at, next(self._seq))

    def claim_next(self) -> int | None:
        now = self._clock()
        with self._lock:
            ready = [
                (-priority, available_at, seq, job_id)
                for job_id, (priority, available_at, seq) in self._entries.items()
                if available_at <= now
            ]
            if not ready:
                return None
            job_id = min(ready)[3]
            del self._entries[job_id]
            return job_id

    def remove(self, job_id: int) -> bool:
        with self._lock:
            return self._entries.pop(job_id, None) is not None

    def size(self) -> int:
        with self._lock:
            return len(self._entries)
