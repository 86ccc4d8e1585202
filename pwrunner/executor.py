"""
JobExecutor - drives one job from validation to session close.

State machine per job:

    CREATED -> VALIDATING -> SESSION_OPENING -> RUNNING(0..n-1) -> COMPLETED -> CLOSED

Validation and launch failures jump straight to COMPLETED with no steps
executed. The first failing step ends the RUNNING phase; later steps are
never attempted. When the worker is shutting down, the step in progress
finishes and no further step starts. The session is closed exactly once on
every path, including cancellation, and a failing close never changes the
result.
"""
import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, List

from .browser.session import BrowserSession, BrowserSessionManager
from .browser.steps import StepInterpreter
from .config import RunnerConfig
from .errors import LaunchError, StepTimeoutError
from .logging_config import get_logger, log_context
from .models import Job, JobPlan, JobResult, JobStatus, Step, StepOutcome
from .validation import validate

logger = get_logger("pwrunner.executor")

SHUTDOWN_ERROR = "Worker shutting down"


class JobState(Enum):
    CREATED = "created"
    VALIDATING = "validating"
    SESSION_OPENING = "session_opening"
    RUNNING = "running"
    COMPLETED = "completed"
    CLOSED = "closed"


@dataclass
class JobRun:
    """Mutable bookkeeping for a single execution."""
    job: Job
    stop_event: Optional[asyncio.Event] = None
    state: JobState = JobState.CREATED
    step_index: Optional[int] = None
    session: Optional[BrowserSession] = None
    outcomes: List[StepOutcome] = field(default_factory=list)
    error: Optional[str] = None

    def advance(self, state: JobState, step_index: Optional[int] = None):
        self.state = state
        self.step_index = step_index
        label = state.value if step_index is None else f"{state.value}({step_index})"
        logger.debug_with("Job state changed", state=label)

    @property
    def stop_requested(self) -> bool:
        return self.stop_event is not None and self.stop_event.is_set()

    @property
    def steps_executed(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.success)


class JobExecutor:
    """Runs jobs against fresh browser sessions and reports a JobResult."""

    def __init__(
        self,
        session_manager: BrowserSessionManager,
        interpreter: StepInterpreter,
        default_timeout_ms: float = 30000,
        job_timeout_ms: float = 300000,
    ):
        self.session_manager = session_manager
        self.interpreter = interpreter
        self.default_timeout_ms = default_timeout_ms
        self.job_timeout_ms = job_timeout_ms

    @classmethod
    def from_config(cls, config: RunnerConfig) -> "JobExecutor":
        return cls(
            session_manager=BrowserSessionManager(config.browser),
            interpreter=StepInterpreter(
                screenshots_dir=config.worker.screenshots_dir,
                default_timeout_ms=config.browser.timeout_ms,
            ),
            default_timeout_ms=config.browser.timeout_ms,
            job_timeout_ms=config.worker.job_timeout_ms,
        )

    async def execute(self, job: Job, stop_event: Optional[asyncio.Event] = None) -> JobResult:
        """Execute ``job`` and return its result. Only cancellation propagates.

        Once ``stop_event`` is set no further step is started; the job ends
        as a failure carrying the outcomes recorded so far.
        """
        with log_context(job_id=job.id):
            run = JobRun(job=job, stop_event=stop_event)
            logger.info("Starting job")
            try:
                result = await self._drive(run)
            finally:
                await self._close_session(run)
                run.advance(JobState.CLOSED)

            if result.succeeded:
                logger.info_with(
                    "Job completed",
                    steps_executed=result.steps_executed,
                    duration_ms=round(result.duration_ms),
                )
            else:
                logger.error_with(
                    "Job failed",
                    steps_executed=result.steps_executed,
                    error=result.error,
                )
            return result

    # ==================== Phases ====================

    async def _drive(self, run: JobRun) -> JobResult:
        start_time = datetime.now()
        job = run.job
        steps = job.data.get("steps") if isinstance(job.data, dict) else None
        total_steps = len(steps) if isinstance(steps, list) else 0

        try:
            run.advance(JobState.VALIDATING)
            validation = validate(job)
            if not validation.ok:
                run.error = "Job validation failed: " + "; ".join(validation.errors)
                return self._complete(run, start_time, total_steps)

            plan = JobPlan.from_job(job)

            run.advance(JobState.SESSION_OPENING)
            try:
                run.session = await self.session_manager.open(plan.browser, job_id=job.id)
                page = await self.session_manager.new_page(run.session)
            except LaunchError as e:
                if run.session is None:
                    run.session = e.session
                run.error = str(e)
                return self._complete(run, start_time, total_steps)

            await self._run_steps(run, plan, page)
        except Exception as e:
            logger.exception(f"Unexpected error while executing job {job.id}")
            run.error = run.error or f"{e.__class__.__name__}: {e}"

        return self._complete(run, start_time, total_steps)

    async def _run_steps(self, run: JobRun, plan: JobPlan, page) -> bool:
        budget_ms = plan.timeout_ms or self.job_timeout_ms
        loop = asyncio.get_running_loop()
        deadline = loop.time() + budget_ms / 1000

        for index, step in enumerate(plan.steps):
            if run.stop_requested:
                run.error = f"{SHUTDOWN_ERROR}; stopped before step {index + 1} ({step.action_name})"
                logger.warning_with("Job interrupted by shutdown", steps_executed=run.steps_executed)
                return False

            run.advance(JobState.RUNNING, index)
            started = time.monotonic()
            try:
                artifact = await self._execute_step(page, step, deadline, budget_ms)
            except Exception as e:
                message = str(e) or e.__class__.__name__
                run.outcomes.append(StepOutcome(
                    step=step,
                    success=False,
                    error=message,
                    duration_ms=(time.monotonic() - started) * 1000,
                ))
                run.error = f"Step {index + 1} ({step.action_name}) failed: {message}"
                logger.warning_with("Step failed", step=index + 1, error=message)
                return False

            run.outcomes.append(StepOutcome(
                step=step,
                success=True,
                duration_ms=(time.monotonic() - started) * 1000,
                artifact=artifact,
            ))
            logger.debug_with("Step completed", step=index + 1, action=step.action_name)
        return True

    async def _execute_step(self, page, step: Step, deadline: float, budget_ms: float) -> Optional[str]:
        remaining = deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            raise StepTimeoutError(f"Job timeout of {budget_ms:g} ms exceeded")
        try:
            return await asyncio.wait_for(
                self.interpreter.execute(page, step, self.default_timeout_ms),
                timeout=remaining,
            )
        except asyncio.TimeoutError:
            raise StepTimeoutError(f"Job timeout of {budget_ms:g} ms exceeded")

    def _complete(self, run: JobRun, start_time: datetime, total_steps: int) -> JobResult:
        run.advance(JobState.COMPLETED)
        failed = run.error is not None or any(not outcome.success for outcome in run.outcomes)
        return JobResult(
            status=JobStatus.FAILURE if failed else JobStatus.SUCCESS,
            job_id=run.job.id,
            steps_executed=run.steps_executed,
            total_steps=total_steps,
            steps=list(run.outcomes),
            start_time=start_time,
            end_time=datetime.now(),
            error=run.error,
        )

    async def _close_session(self, run: JobRun):
        try:
            await self.session_manager.close(run.session)
        except Exception as e:
            logger.error_with("Session close failed", error=str(e))
