"""
Static validation of job payloads.

Runs before any browser resource is acquired. Pure: it only inspects the
payload and never raises for malformed input, it reports.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Union

from .models import Job, StepAction, BrowserKind, SELECTOR_STATES

BROWSER_KINDS = tuple(kind.value for kind in BrowserKind)
MAX_STEPS = 500

_SELECTOR_ACTIONS = (
    StepAction.CLICK.value,
    StepAction.FILL.value,
    StepAction.WAIT_FOR_SELECTOR.value,
)


@dataclass
class ValidationResult:
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        return {"ok": self.ok, "errors": list(self.errors)}


def _is_positive_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    return isinstance(value, (int, float)) and value > 0


def _is_present(value: Any) -> bool:
    return value is not None and value != ""


def _check_text(step: Dict[str, Any], key: str, action: str) -> List[str]:
    value = step.get(key)
    if not _is_present(value):
        return [f'"{key}" is required for "{action}" action']
    if not isinstance(value, str):
        return [f'"{key}" must be a string']
    return []


def validate_step(step: Any) -> List[str]:
    """Return the problems found in a single step dict."""
    if not isinstance(step, dict):
        return ["step must be an object"]

    errors = []
    action = step.get("action")
    if not action:
        errors.append("step action is required")
        return errors

    if action == StepAction.GOTO.value:
        errors.extend(_check_text(step, "url", action))
    elif action in _SELECTOR_ACTIONS:
        errors.extend(_check_text(step, "selector", action))
        if action == StepAction.FILL.value:
            value = step.get("value")
            if value is None:
                errors.append('"value" is required for "fill" action')
            elif isinstance(value, bool) or not isinstance(value, (str, int, float)):
                errors.append('"value" must be a string or a number')
        if action == StepAction.WAIT_FOR_SELECTOR.value:
            state = step.get("state")
            if state is not None and state not in SELECTOR_STATES:
                errors.append(f'"state" must be one of: {", ".join(SELECTOR_STATES)}')
    elif action == StepAction.SCREENSHOT.value:
        path = step.get("path")
        if path is not None and not isinstance(path, str):
            errors.append('"path" must be a string')
        full_page = step.get("fullPage")
        if full_page is not None and not isinstance(full_page, bool):
            errors.append('"fullPage" must be a boolean')

    # Unrecognised actions pass through; the interpreter rejects them at run time.
    if step.get("timeout") is not None and not _is_positive_number(step["timeout"]):
        errors.append('"timeout" must be a positive number')

    return errors


def validate_payload(data: Any) -> ValidationResult:
    result = ValidationResult()

    if not isinstance(data, dict) or not data:
        result.errors.append("job data cannot be empty")
        return result

    steps = data.get("steps")
    if not isinstance(steps, list):
        result.errors.append('"steps" must be an array')
    elif not steps:
        result.errors.append("job must contain at least one step")
    elif len(steps) > MAX_STEPS:
        result.errors.append(f"job cannot contain more than {MAX_STEPS} steps")
    else:
        for index, step in enumerate(steps):
            for error in validate_step(step):
                result.errors.append(f"Step {index + 1}: {error}")

    browser = data.get("browser")
    if browser is not None and browser not in BROWSER_KINDS:
        result.errors.append(f'"browser" must be one of: {", ".join(BROWSER_KINDS)}')

    if data.get("timeout") is not None and not _is_positive_number(data["timeout"]):
        result.errors.append('"timeout" must be a positive number')

    return result


def validate(job: Union[Job, Dict[str, Any]]) -> ValidationResult:
    """Validate a queued job or a bare payload dict."""
    data = job.data if isinstance(job, Job) else job
    return validate_payload(data)
