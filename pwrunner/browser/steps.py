"""
StepInterpreter - runs one step against a page.

Every browser operation is bounded by the step's own timeout or the
default. Playwright errors are translated into the step error classes so
the executor can record a readable message.
"""
from pathlib import Path
from typing import Optional, Union

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..errors import (
    ArtifactError,
    ElementError,
    NavigationError,
    StepTimeoutError,
    UnknownStepError,
)
from ..filenames import resolve_screenshot_path
from ..logging_config import get_logger
from ..models import (
    Step,
    GotoStep,
    ClickStep,
    FillStep,
    WaitForSelectorStep,
    ScreenshotStep,
)

logger = get_logger("pwrunner.steps")

# Navigation is considered finished once the network has been idle
NAVIGATION_WAIT_UNTIL = "networkidle"


def _message(error: Exception) -> str:
    # Playwright messages carry a multi-line call log; the first line is enough
    text = str(error).strip()
    return text.splitlines()[0] if text else error.__class__.__name__


class StepInterpreter:
    """Translates typed steps into Playwright page calls."""

    def __init__(self, screenshots_dir: Union[str, Path] = "screenshots", default_timeout_ms: float = 30000):
        self.screenshots_dir = Path(screenshots_dir)
        self.default_timeout_ms = default_timeout_ms

    async def execute(self, page, step: Step, default_timeout_ms: Optional[float] = None) -> Optional[str]:
        """Run ``step`` on ``page``.

        Returns the artifact path for screenshot steps and None otherwise.
        Raises a StepError subclass on failure.
        """
        if default_timeout_ms is None:
            default_timeout_ms = self.default_timeout_ms
        timeout = step.timeout if step.timeout is not None else default_timeout_ms

        if isinstance(step, GotoStep):
            await self._goto(page, step, timeout)
        elif isinstance(step, ClickStep):
            await self._click(page, step, timeout)
        elif isinstance(step, FillStep):
            await self._fill(page, step, timeout)
        elif isinstance(step, WaitForSelectorStep):
            await self._wait_for_selector(page, step, timeout)
        elif isinstance(step, ScreenshotStep):
            return await self._screenshot(page, step, timeout)
        else:
            raise UnknownStepError(step.action_name)
        return None

    async def _goto(self, page, step: GotoStep, timeout: float):
        logger.debug(f"Navigating to {step.url}")
        try:
            await page.goto(step.url, wait_until=NAVIGATION_WAIT_UNTIL, timeout=timeout)
        except PlaywrightTimeoutError as e:
            raise NavigationError(f"Navigation to {step.url} timed out after {timeout:g} ms") from e
        except PlaywrightError as e:
            raise NavigationError(f"Navigation to {step.url} failed: {_message(e)}") from e

    async def _click(self, page, step: ClickStep, timeout: float):
        try:
            await page.click(step.selector, timeout=timeout)
        except PlaywrightTimeoutError as e:
            raise ElementError(f"Element {step.selector!r} not clickable within {timeout:g} ms") from e
        except PlaywrightError as e:
            raise ElementError(f"Click on {step.selector!r} failed: {_message(e)}") from e

    async def _fill(self, page, step: FillStep, timeout: float):
        try:
            await page.fill(step.selector, step.value, timeout=timeout)
        except PlaywrightTimeoutError as e:
            raise ElementError(f"Element {step.selector!r} not fillable within {timeout:g} ms") from e
        except PlaywrightError as e:
            raise ElementError(f"Fill of {step.selector!r} failed: {_message(e)}") from e

    async def _wait_for_selector(self, page, step: WaitForSelectorStep, timeout: float):
        try:
            await page.wait_for_selector(step.selector, state=step.state, timeout=timeout)
        except PlaywrightTimeoutError as e:
            raise StepTimeoutError(
                f"Element {step.selector!r} did not become {step.state} within {timeout:g} ms"
            ) from e
        except PlaywrightError as e:
            raise ElementError(f"Waiting for {step.selector!r} failed: {_message(e)}") from e

    async def _screenshot(self, page, step: ScreenshotStep, timeout: float) -> str:
        file_path = resolve_screenshot_path(self.screenshots_dir, step.path)
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            await page.screenshot(path=str(file_path), full_page=step.full_page, timeout=timeout)
        except OSError as e:
            raise ArtifactError(f"Could not write screenshot {file_path}: {e}") from e
        except PlaywrightError as e:
            raise ArtifactError(f"Screenshot capture failed: {_message(e)}") from e
        logger.debug(f"Screenshot saved to {file_path}")
        return str(file_path)
