"""
Queue contract consumed by the worker: dequeue -> process -> ack/fail.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from ..models import Job, JobRecord, JobResult


class JobQueue(ABC):
    """Single-attempt job queue. Failed jobs are never retried."""

    name: str = "playwright-jobs"

    @abstractmethod
    async def enqueue(self, data: Dict[str, Any], job_id: Optional[str] = None) -> Job:
        """Add a job payload and return the queued job."""

    @abstractmethod
    async def dequeue(self) -> Job:
        """Block until a job is available and mark it active."""

    @abstractmethod
    async def requeue(self, job: Job) -> None:
        """Put a dequeued job that never started back in the waiting state."""

    @abstractmethod
    async def ack(self, job_id: str, result: JobResult) -> None:
        """Record successful completion."""

    @abstractmethod
    async def fail(self, job_id: str, error: str, result: Optional[JobResult] = None) -> None:
        """Record a failure with a human-readable error."""

    @abstractmethod
    async def get_record(self, job_id: str) -> Optional[JobRecord]:
        pass

    @abstractmethod
    async def get_counts(self) -> Dict[str, int]:
        """Counts per state: waiting, active, completed, failed."""

    async def is_connected(self) -> bool:
        return True

    async def close(self) -> None:
        pass
