from abc import ABC, abstractmethod


class BaseJobQueue(ABC):
    """Priority + delay aware queue of job ids.

    Higher priority is served first; within a priority band the entry that
    became available earliest wins, then enqueue order. An entry is only
    claimable once its delay has elapsed. Enqueuing an id that is already
    queued replaces its entry.
    """

    @abstractmethod
    def enqueue(self, job_id: int, priority: int, delay_seconds: float = 0.0) -> None: ...

    @abstractmethod
    def claim_next(self) -> int | None:
        """Remove and return the next ready job id, or None when nothing is ready."""

    @abstractmethod
    def remove(self, job_id: int) -> bool: ...

    @abstractmethod
    def size(self) -> int: ...
