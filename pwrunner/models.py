"""
Job and step data models.

Wire payloads use camelCase keys (``waitForSelector``, ``fullPage``,
``jobId``); the Python side uses snake_case attributes and converts at
``from_dict``/``to_dict``.
"""
import copy
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any, Tuple, ClassVar


class BrowserKind(Enum):
    CHROMIUM = "chromium"
    FIREFOX = "firefox"
    WEBKIT = "webkit"


class StepAction(Enum):
    GOTO = "goto"
    CLICK = "click"
    FILL = "fill"
    WAIT_FOR_SELECTOR = "waitForSelector"
    SCREENSHOT = "screenshot"


class JobStatus(Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class QueueState(Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


SELECTOR_STATES = ("attached", "detached", "visible", "hidden")
DEFAULT_SELECTOR_STATE = "visible"


# ==================== Steps ====================

@dataclass(frozen=True)
class Step:
    """Base class of the closed step family."""
    action: ClassVar[Optional[StepAction]] = None

    @property
    def action_name(self) -> str:
        return self.action.value if self.action else "unknown"

    @property
    def timeout(self) -> Optional[float]:
        return None

    def to_dict(self) -> Dict[str, Any]:
        raise NotImplementedError


@dataclass(frozen=True)
class GotoStep(Step):
    action: ClassVar[StepAction] = StepAction.GOTO
    url: str = ""
    timeout_ms: Optional[float] = None

    @property
    def timeout(self) -> Optional[float]:
        return self.timeout_ms

    def to_dict(self) -> Dict[str, Any]:
        data = {"action": self.action.value, "url": self.url}
        if self.timeout_ms is not None:
            data["timeout"] = self.timeout_ms
        return data


@dataclass(frozen=True)
class ClickStep(Step):
    action: ClassVar[StepAction] = StepAction.CLICK
    selector: str = ""
    timeout_ms: Optional[float] = None

    @property
    def timeout(self) -> Optional[float]:
        return self.timeout_ms

    def to_dict(self) -> Dict[str, Any]:
        data = {"action": self.action.value, "selector": self.selector}
        if self.timeout_ms is not None:
            data["timeout"] = self.timeout_ms
        return data


@dataclass(frozen=True)
class FillStep(Step):
    action: ClassVar[StepAction] = StepAction.FILL
    selector: str = ""
    value: str = ""
    timeout_ms: Optional[float] = None

    @property
    def timeout(self) -> Optional[float]:
        return self.timeout_ms

    def to_dict(self) -> Dict[str, Any]:
        data = {"action": self.action.value, "selector": self.selector, "value": self.value}
        if self.timeout_ms is not None:
            data["timeout"] = self.timeout_ms
        return data


@dataclass(frozen=True)
class WaitForSelectorStep(Step):
    action: ClassVar[StepAction] = StepAction.WAIT_FOR_SELECTOR
    selector: str = ""
    state: str = DEFAULT_SELECTOR_STATE
    timeout_ms: Optional[float] = None

    @property
    def timeout(self) -> Optional[float]:
        return self.timeout_ms

    def to_dict(self) -> Dict[str, Any]:
        data = {"action": self.action.value, "selector": self.selector, "state": self.state}
        if self.timeout_ms is not None:
            data["timeout"] = self.timeout_ms
        return data


@dataclass(frozen=True)
class ScreenshotStep(Step):
    action: ClassVar[StepAction] = StepAction.SCREENSHOT
    path: Optional[str] = None
    full_page: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"action": self.action.value, "fullPage": self.full_page}
        if self.path is not None:
            data["path"] = self.path
        return data


@dataclass(frozen=True)
class UnknownStep(Step):
    """A step whose action is not recognised. The interpreter rejects it."""
    name: Any = None
    raw: Tuple[Tuple[str, Any], ...] = ()

    @property
    def action_name(self) -> str:
        return str(self.name)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.raw)


def step_from_dict(data: Dict[str, Any]) -> Step:
    """Build a typed step from a validated wire dict."""
    action = data.get("action")
    timeout = data.get("timeout")

    if action == StepAction.GOTO.value:
        return GotoStep(url=data["url"], timeout_ms=timeout)
    if action == StepAction.CLICK.value:
        return ClickStep(selector=data["selector"], timeout_ms=timeout)
    if action == StepAction.FILL.value:
        return FillStep(selector=data["selector"], value=str(data["value"]), timeout_ms=timeout)
    if action == StepAction.WAIT_FOR_SELECTOR.value:
        return WaitForSelectorStep(
            selector=data["selector"],
            state=data.get("state") or DEFAULT_SELECTOR_STATE,
            timeout_ms=timeout,
        )
    if action == StepAction.SCREENSHOT.value:
        return ScreenshotStep(path=data.get("path"), full_page=data.get("fullPage") is True)

    return UnknownStep(name=action, raw=tuple(sorted(data.items(), key=lambda item: item[0])))


# ==================== Jobs ====================

@dataclass(frozen=True)
class Job:
    """A job as handed out by the queue. ``data`` is the raw payload."""
    id: str
    data: Dict[str, Any]
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())

    def __post_init__(self):
        object.__setattr__(self, "data", copy.deepcopy(self.data))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "data": copy.deepcopy(self.data),
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Job":
        return cls(
            id=str(data["id"]),
            data=data.get("data") or {},
            created_at=data.get("created_at") or datetime.now().isoformat(),
        )


@dataclass(frozen=True)
class JobPlan:
    """Typed form of a job, built once the payload has passed validation."""
    job_id: str
    steps: Tuple[Step, ...]
    browser: BrowserKind = BrowserKind.CHROMIUM
    timeout_ms: Optional[float] = None

    @classmethod
    def from_job(cls, job: Job) -> "JobPlan":
        data = job.data
        browser = data.get("browser")
        return cls(
            job_id=job.id,
            steps=tuple(step_from_dict(step) for step in data["steps"]),
            browser=BrowserKind(browser) if browser else BrowserKind.CHROMIUM,
            timeout_ms=data.get("timeout"),
        )


# ==================== Results ====================

@dataclass
class StepOutcome:
    """Recorded result of attempting one step."""
    step: Step
    success: bool
    error: Optional[str] = None
    duration_ms: float = 0.0
    artifact: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "step": self.step.to_dict(),
            "success": self.success,
            "durationMs": round(self.duration_ms, 3),
        }
        if self.error is not None:
            data["error"] = self.error
        if self.artifact is not None:
            data["artifact"] = self.artifact
        return data


@dataclass
class JobResult:
    status: JobStatus
    job_id: str
    steps_executed: int
    total_steps: int
    steps: List[StepOutcome] = field(default_factory=list)
    start_time: datetime = field(default_factory=datetime.now)
    end_time: datetime = field(default_factory=datetime.now)
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == JobStatus.SUCCESS

    @property
    def duration_ms(self) -> float:
        return (self.end_time - self.start_time).total_seconds() * 1000

    def to_dict(self) -> dict:
        data = {
            "status": self.status.value,
            "jobId": self.job_id,
            "stepsExecuted": self.steps_executed,
            "totalSteps": self.total_steps,
            "steps": [outcome.to_dict() for outcome in self.steps],
            "startTime": self.start_time.isoformat(),
            "endTime": self.end_time.isoformat(),
            "durationMs": round(self.duration_ms, 3),
        }
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class JobRecord:
    """What the queue keeps about a job for asynchronous result lookup."""
    job_id: str
    data: Dict[str, Any]
    state: QueueState = QueueState.WAITING
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())
    finished_at: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "jobId": self.job_id,
            "data": self.data,
            "state": self.state.value,
            "result": self.result,
            "error": self.error,
            "createdAt": self.created_at,
            "finishedAt": self.finished_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobRecord":
        return cls(
            job_id=data["jobId"],
            data=data.get("data") or {},
            state=QueueState(data.get("state", QueueState.WAITING.value)),
            result=data.get("result"),
            error=data.get("error"),
            created_at=data.get("createdAt") or datetime.now().isoformat(),
            finished_at=data.get("finishedAt"),
        )
