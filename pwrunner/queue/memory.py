"""
In-process queue backed by asyncio.Queue.
"""
import asyncio
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from ..errors import QueueError
from ..logging_config import get_logger
from ..models import Job, JobRecord, JobResult, QueueState
from .base import JobQueue

logger = get_logger("pwrunner.queue")


class InMemoryJobQueue(JobQueue):
    def __init__(self, name: str = "playwright-jobs"):
        self.name = name
        self._pending: "asyncio.Queue[Job]" = asyncio.Queue()
        self._records: Dict[str, JobRecord] = {}

    async def enqueue(self, data: Dict[str, Any], job_id: Optional[str] = None) -> Job:
        job_id = job_id or uuid.uuid4().hex
        if job_id in self._records:
            raise QueueError(f"Job {job_id} already exists")
        job = Job(id=job_id, data=data)
        self._records[job_id] = JobRecord(job_id=job_id, data=job.data, created_at=job.created_at)
        await self._pending.put(job)
        logger.debug_with("Job enqueued", job_id=job_id, queue=self.name)
        return job

    async def dequeue(self) -> Job:
        job = await self._pending.get()
        self._records[job.id].state = QueueState.ACTIVE
        return job

    async def requeue(self, job: Job) -> None:
        self._require(job.id).state = QueueState.WAITING
        await self._pending.put(job)

    async def ack(self, job_id: str, result: JobResult) -> None:
        record = self._require(job_id)
        record.state = QueueState.COMPLETED
        record.result = result.to_dict()
        record.finished_at = datetime.now().isoformat()

    async def fail(self, job_id: str, error: str, result: Optional[JobResult] = None) -> None:
        record = self._require(job_id)
        record.state = QueueState.FAILED
        record.error = error
        record.result = result.to_dict() if result else None
        record.finished_at = datetime.now().isoformat()

    async def get_record(self, job_id: str) -> Optional[JobRecord]:
        return self._records.get(job_id)

    async def get_counts(self) -> Dict[str, int]:
        counts = {state.value: 0 for state in QueueState}
        for record in self._records.values():
            counts[record.state.value] += 1
        return counts

    def _require(self, job_id: str) -> JobRecord:
        record = self._records.get(job_id)
        if record is None:
            raise QueueError(f"Unknown job: {job_id}")
        return record
