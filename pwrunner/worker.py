"""
Worker loop: dequeue -> execute -> ack/fail.

Concurrency is bounded by a semaphore (one job at a time by default).
Stopping the worker stops dequeuing at once. A job dequeued while the
stop was being requested goes back to the queue. Jobs already running
finish their current step and close their browser sessions within a grace
period; after it they are cancelled.
"""
import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Set

from .executor import JobExecutor
from .logging_config import get_logger
from .models import Job
from .queue.base import JobQueue

logger = get_logger("pwrunner.worker")


@dataclass
class WorkerStatus:
    running: bool = False
    accepting: bool = False
    active_jobs: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    last_active: Optional[str] = None

    @property
    def processing(self) -> bool:
        return self.active_jobs > 0

    def to_dict(self) -> dict:
        return {
            "isRunning": self.running,
            "accepting": self.accepting,
            "processing": self.processing,
            "activeJobs": self.active_jobs,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "lastActive": self.last_active,
        }


class Worker:
    """Pulls jobs from a queue and runs them through a JobExecutor."""

    def __init__(
        self,
        queue: JobQueue,
        executor: JobExecutor,
        concurrency: int = 1,
        shutdown_timeout: float = 30.0,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.queue = queue
        self.executor = executor
        self.concurrency = concurrency
        self.shutdown_timeout = shutdown_timeout
        self._semaphore = asyncio.Semaphore(concurrency)
        self._stopping = asyncio.Event()
        self._loop_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._status = WorkerStatus()

    @property
    def status(self) -> WorkerStatus:
        """Snapshot of the worker's current state."""
        return WorkerStatus(**vars(self._status))

    # ==================== Lifecycle ====================

    async def start(self):
        """Run the dispatch loop in a background task."""
        if self._loop_task is None or self._loop_task.done():
            self._stopping.clear()
            self._status.running = True
            self._status.accepting = True
            self._loop_task = asyncio.create_task(self._run())

    def request_stop(self):
        """Stop accepting jobs and tell in-flight jobs not to start another step."""
        self._stopping.set()
        self._status.accepting = False

    async def stop(self, timeout: Optional[float] = None) -> int:
        """Stop accepting jobs and wait for in-flight ones.

        Each in-flight job finishes its current step, then closes its
        session and is reported as failed with its partial result. Jobs
        still running after ``timeout`` seconds are cancelled and any
        browser sessions they left open are force-closed. Returns the number
        of jobs that had to be cancelled.
        """
        timeout = self.shutdown_timeout if timeout is None else timeout
        self.request_stop()

        if self._loop_task is not None and not self._loop_task.done():
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
        self._status.running = False

        in_flight = set(self._tasks)
        if not in_flight:
            return 0

        logger.info(f"Waiting up to {timeout:g}s for {len(in_flight)} in-flight job(s)")
        _, pending = await asyncio.wait(in_flight, timeout=timeout)
        if not pending:
            return 0

        logger.error(f"Shutdown grace period exceeded, cancelling {len(pending)} job(s)")
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        leaked = await self.executor.session_manager.close_all()
        if leaked:
            logger.error(f"Force closed {leaked} browser session(s) after shutdown deadline")
        return len(pending)

    async def _run(self):
        logger.info(f"Worker started on queue {self.queue.name} (concurrency={self.concurrency})")
        try:
            while not self._stopping.is_set():
                await self._semaphore.acquire()
                if self._stopping.is_set():
                    self._semaphore.release()
                    break
                try:
                    job = await self.queue.dequeue()
                except asyncio.CancelledError:
                    self._semaphore.release()
                    raise
                except Exception as e:
                    self._semaphore.release()
                    logger.error(f"Failed to dequeue job: {e}")
                    await asyncio.sleep(1)
                    continue

                if self._stopping.is_set():
                    self._semaphore.release()
                    try:
                        await self.queue.requeue(job)
                        logger.info_with("Returned job to queue, worker is stopping", job_id=job.id)
                    except Exception as e:
                        logger.error_with("Could not return job to queue", job_id=job.id, error=str(e))
                    break

                task = asyncio.create_task(self._process(job))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
        finally:
            self._status.accepting = False
            self._status.running = False
            logger.info("Worker loop stopped")

    # ==================== Job Handling ====================

    async def _process(self, job: Job):
        self._status.active_jobs += 1
        self._status.last_active = datetime.now().isoformat()
        try:
            result = await self.executor.execute(job, stop_event=self._stopping)
            if result.succeeded:
                await self.queue.ack(job.id, result)
                self._status.succeeded += 1
            else:
                await self.queue.fail(job.id, result.error or "Job failed", result)
                self._status.failed += 1
        except asyncio.CancelledError:
            logger.error_with("Job cancelled during shutdown", job_id=job.id)
            self._status.failed += 1
            try:
                await self.queue.fail(job.id, "Job cancelled during worker shutdown")
            except Exception as e:
                logger.error_with("Could not report cancelled job", job_id=job.id, error=str(e))
            raise
        except Exception as e:
            logger.exception(f"Failed to report result for job {job.id}: {e}")
        finally:
            self._status.active_jobs -= 1
            self._status.processed += 1
            self._status.last_active = datetime.now().isoformat()
            self._semaphore.release()
