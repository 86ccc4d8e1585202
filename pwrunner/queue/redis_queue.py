"""
Redis-backed job queue.

Keys (``{prefix}:{name}:...``):
- ``wait``          list of waiting job ids (LPUSH / BRPOP)
- ``job:{id}``      hash with the job record fields
- ``state:{state}`` set of job ids per queue state

Finished job hashes expire after the configured retention.
"""
import json
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from ..config import QueueConfig
from ..errors import QueueError
from ..logging_config import get_logger
from ..models import Job, JobRecord, JobResult, QueueState
from .base import JobQueue

logger = get_logger("pwrunner.queue.redis")


class RedisJobQueue(JobQueue):

    def __init__(self, config: Optional[QueueConfig] = None, client=None):
        self.config = config or QueueConfig(backend="redis")
        self.name = self.config.name
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = redis.from_url(
                self.config.redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
            )
        return self._client

    def _key(self, *parts: str) -> str:
        return ":".join((self.config.key_prefix, self.name) + parts)

    async def enqueue(self, data: Dict[str, Any], job_id: Optional[str] = None) -> Job:
        job_id = job_id or uuid.uuid4().hex
        job = Job(id=job_id, data=data)
        try:
            created = await self.client.hsetnx(self._key("job", job_id), "data", json.dumps(job.data))
            if not created:
                raise QueueError(f"Job {job_id} already exists")
            await self.client.hset(self._key("job", job_id), mapping={
                "state": QueueState.WAITING.value,
                "created_at": job.created_at,
            })
            await self.client.sadd(self._key("state", QueueState.WAITING.value), job_id)
            await self.client.lpush(self._key("wait"), job_id)
        except RedisError as e:
            raise QueueError(f"Failed to enqueue job: {e}") from e
        logger.debug_with("Job enqueued", job_id=job_id, queue=self.name)
        return job

    async def dequeue(self) -> Job:
        while True:
            try:
                item = await self.client.brpop(self._key("wait"), timeout=self.config.poll_interval)
                if not item:
                    continue

                _, job_id = item
                fields = await self.client.hgetall(self._key("job", job_id))
                if not fields:
                    # Expired or removed between push and pop
                    logger.warning_with("Dropping job with no stored data", job_id=job_id)
                    continue

                await self._move(job_id, QueueState.WAITING, QueueState.ACTIVE)
            except RedisError as e:
                raise QueueError(f"Failed to dequeue job: {e}") from e

            return Job(
                id=job_id,
                data=json.loads(fields.get("data") or "{}"),
                created_at=fields.get("created_at") or datetime.now().isoformat(),
            )

    async def requeue(self, job: Job) -> None:
        try:
            await self._move(job.id, QueueState.ACTIVE, QueueState.WAITING)
            # BRPOP takes from the right, so this job is handed out next
            await self.client.rpush(self._key("wait"), job.id)
        except RedisError as e:
            raise QueueError(f"Failed to requeue job {job.id}: {e}") from e

    async def ack(self, job_id: str, result: JobResult) -> None:
        await self._finish(
            job_id,
            QueueState.COMPLETED,
            {"result": json.dumps(result.to_dict())},
            self.config.remove_on_complete_age,
        )

    async def fail(self, job_id: str, error: str, result: Optional[JobResult] = None) -> None:
        fields = {"error": error}
        if result is not None:
            fields["result"] = json.dumps(result.to_dict())
        await self._finish(job_id, QueueState.FAILED, fields, self.config.remove_on_fail_age)

    async def get_record(self, job_id: str) -> Optional[JobRecord]:
        try:
            fields = await self.client.hgetall(self._key("job", job_id))
        except RedisError as e:
            raise QueueError(f"Failed to read job {job_id}: {e}") from e
        if not fields:
            return None
        return JobRecord(
            job_id=job_id,
            data=json.loads(fields.get("data") or "{}"),
            state=QueueState(fields.get("state", QueueState.WAITING.value)),
            result=json.loads(fields["result"]) if fields.get("result") else None,
            error=fields.get("error"),
            created_at=fields.get("created_at") or "",
            finished_at=fields.get("finished_at"),
        )

    async def get_counts(self) -> Dict[str, int]:
        counts = {}
        try:
            for state in QueueState:
                counts[state.value] = await self.client.scard(self._key("state", state.value))
        except RedisError as e:
            raise QueueError(f"Failed to read queue counts: {e}") from e
        return counts

    async def is_connected(self) -> bool:
        try:
            return bool(await self.client.ping())
        except (RedisError, OSError):
            return False

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ==================== Internal Helpers ====================

    async def _move(self, job_id: str, source: QueueState, target: QueueState):
        await self.client.smove(
            self._key("state", source.value),
            self._key("state", target.value),
            job_id,
        )
        await self.client.hset(self._key("job", job_id), "state", target.value)

    async def _finish(self, job_id: str, state: QueueState, fields: Dict[str, str], ttl: int):
        key = self._key("job", job_id)
        try:
            if not await self.client.exists(key):
                raise QueueError(f"Unknown job: {job_id}")
            await self.client.hset(key, mapping={
                **fields,
                "state": state.value,
                "finished_at": datetime.now().isoformat(),
            })
            await self.client.smove(
                self._key("state", QueueState.ACTIVE.value),
                self._key("state", state.value),
                job_id,
            )
            if ttl > 0:
                await self.client.expire(key, ttl)
        except RedisError as e:
            raise QueueError(f"Failed to record {state.value} for job {job_id}: {e}") from e
