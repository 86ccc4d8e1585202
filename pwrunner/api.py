"""
Job submission and health endpoints.
"""
from datetime import datetime
from typing import Optional, Dict, Any

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .errors import QueueError, ValidationError
from .logging_config import get_logger
from .queue import example_job

logger = get_logger("pwrunner.api")

router = APIRouter(tags=["jobs"])


# ==================== Request Models ====================

class JobSubmitRequest(BaseModel):
    # Untyped fields; validate_payload reports malformed values
    model_config = ConfigDict(populate_by_name=True)

    browser: Any = None
    steps: Any = None
    timeout: Any = None
    job_id: Optional[str] = Field(None, alias="jobId", min_length=1, max_length=200)

    def payload(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"steps": self.steps}
        if self.browser is not None:
            data["browser"] = self.browser
        if self.timeout is not None:
            data["timeout"] = self.timeout
        return data


def get_runtime(request: Request):
    return request.app.state.runtime


# ==================== Job Endpoints ====================

@router.post("/api/jobs")
async def submit_job(request: JobSubmitRequest, runtime=Depends(get_runtime)):
    """Validate and enqueue a job. The result is fetched later by id."""
    try:
        job_id = await runtime.producer.submit(request.payload(), job_id=request.job_id)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail={"message": "Invalid job data", "errors": e.errors})
    except QueueError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"success": True, "jobId": job_id}


@router.get("/api/jobs/example")
async def get_example_job(url: str = "https://example.com", browser: Optional[str] = None):
    return {"job": example_job(url, browser=browser)}


@router.get("/api/jobs/{job_id}")
async def get_job(job_id: str, runtime=Depends(get_runtime)):
    try:
        record = await runtime.queue.get_record(job_id)
    except QueueError as e:
        raise HTTPException(status_code=503, detail=str(e))
    if record is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return {"job": record.to_dict()}


# ==================== Health ====================

@router.get("/health")
async def health_check(runtime=Depends(get_runtime)):
    queue = runtime.queue
    worker_status = runtime.worker.status

    try:
        connected = await queue.is_connected()
        counts = await queue.get_counts() if connected else {}
    except QueueError as e:
        logger.error(f"Health check failed: {e}")
        connected, counts = False, {}

    healthy = connected and worker_status.running
    body = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": datetime.now().isoformat(),
        "queue": {
            "name": queue.name,
            "isConnected": connected,
            "counts": counts,
        },
        "worker": worker_status.to_dict(),
    }
    return JSONResponse(status_code=200 if healthy else 503, content=body)
