"""
Job queue transports and the submission-side producer.
"""
from .base import JobQueue
from .memory import InMemoryJobQueue
from .producer import JobProducer, example_job
from ..config import QueueConfig


def create_queue(config: QueueConfig) -> JobQueue:
    """Build the queue backend named in ``config``."""
    if config.backend == "redis":
        from .redis_queue import RedisJobQueue
        return RedisJobQueue(config)
    return InMemoryJobQueue(name=config.name)


__all__ = ["JobQueue", "InMemoryJobQueue", "JobProducer", "example_job", "create_queue"]
