"""
Submission side of the queue: validate, then enqueue.
"""
from typing import Any, Dict, Optional

from ..errors import ValidationError
from ..logging_config import get_logger
from ..validation import validate_payload
from .base import JobQueue

logger = get_logger("pwrunner.producer")


class JobProducer:
    def __init__(self, queue: JobQueue):
        self.queue = queue

    async def submit(self, data: Dict[str, Any], job_id: Optional[str] = None) -> str:
        """Validate ``data`` and enqueue it. Returns the job id.

        Raises ValidationError for malformed payloads so callers get the
        problem back synchronously instead of as a failed job later.
        """
        validation = validate_payload(data)
        if not validation.ok:
            logger.error_with("Rejected invalid job", errors=validation.errors)
            raise ValidationError(validation.errors)

        job = await self.queue.enqueue(data, job_id=job_id)
        logger.info_with(
            "Job added to queue",
            job_id=job.id,
            steps=len(data["steps"]),
            browser=data.get("browser") or "default",
        )
        return job.id


def example_job(url: str, browser: Optional[str] = None, timeout: Optional[int] = None) -> Dict[str, Any]:
    """A small demo payload: open ``url``, wait for the body, take a screenshot."""
    data: Dict[str, Any] = {
        "steps": [
            {"action": "goto", "url": url},
            {"action": "waitForSelector", "selector": "body"},
            {"action": "screenshot", "path": "example-screenshot.png"},
        ],
    }
    if browser:
        data["browser"] = browser
    if timeout:
        data["timeout"] = timeout
    return data
