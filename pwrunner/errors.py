"""
Error taxonomy for job execution.

Job-level errors (validation, launch) end a job before any step runs.
Step-level errors end the step loop at the failing step. Every error is
converted into a JobResult by the executor; none of them is fatal to the
worker process.
"""
from typing import Any, List, Optional


class RunnerError(Exception):
    """Base class for all pwrunner errors."""


class ValidationError(RunnerError):
    """The job payload is malformed. Raised before any browser is touched."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("Job validation failed: " + "; ".join(self.errors))


class LaunchError(RunnerError):
    """The browser process, context or page could not be created."""

    def __init__(self, message: str, session: Optional[Any] = None):
        super().__init__(message)
        # Partially launched session, so the caller can still close it
        self.session = session


class StepError(RunnerError):
    """A single step failed while interacting with the browser."""


class NavigationError(StepError):
    pass


class ElementError(StepError):
    pass


class StepTimeoutError(StepError):
    pass


class ArtifactError(StepError):
    """Writing a step artifact (screenshot) failed."""


class UnknownStepError(StepError):
    def __init__(self, action: Any):
        self.action = action
        super().__init__(f"Unknown step action: {action!r}")


class QueueError(RunnerError):
    """The queue transport failed."""
