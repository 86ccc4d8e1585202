import asyncio
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from pwrunner.config import RunnerConfig
from pwrunner.errors import ElementError, LaunchError, NavigationError, UnknownStepError
from pwrunner.executor import JobExecutor
from pwrunner.models import BrowserKind, Job, JobStatus


def make_session_manager():
    """Spy session manager that records every close."""
    manager = MagicMock()
    session = MagicMock(name="session")
    page = MagicMock(name="page")
    manager.open = AsyncMock(return_value=session)
    manager.new_page = AsyncMock(return_value=page)
    manager.close = AsyncMock()
    return manager, session, page


@pytest.fixture
def spy():
    return make_session_manager()


@pytest.fixture
def interpreter():
    interpreter = MagicMock()
    interpreter.execute = AsyncMock(return_value=None)
    return interpreter


@pytest.fixture
def executor(spy, interpreter):
    return JobExecutor(spy[0], interpreter, default_timeout_ms=1000, job_timeout_ms=5000)


def job_with(steps, **extra):
    return Job(id="job-1", data={"steps": steps, **extra})


SEARCH_STEPS = [
    {"action": "goto", "url": "https://example.com"},
    {"action": "fill", "selector": "#q", "value": "playwright"},
    {"action": "click", "selector": "#go"},
    {"action": "screenshot", "path": "results.png"},
]


class TestValidationFailure:
    @pytest.mark.asyncio
    async def test_empty_steps_never_open_session(self, executor, spy, interpreter):
        manager = spy[0]
        result = await executor.execute(job_with([]))

        assert result.status == JobStatus.FAILURE
        assert result.steps_executed == 0
        assert result.total_steps == 0
        assert result.steps == []
        assert "at least one step" in result.error
        manager.open.assert_not_awaited()
        interpreter.execute.assert_not_awaited()
        manager.close.assert_awaited_once_with(None)

    @pytest.mark.asyncio
    async def test_invalid_step_reported(self, executor, spy):
        result = await executor.execute(job_with([{"action": "goto"}]))
        assert result.error.startswith("Job validation failed: ")
        assert '"url" is required' in result.error
        assert result.total_steps == 1
        spy[0].open.assert_not_awaited()


class TestLaunchFailure:
    @pytest.mark.asyncio
    async def test_partial_session_is_closed(self, executor, spy, interpreter):
        manager = spy[0]
        partial = MagicMock(name="partial")
        manager.open.side_effect = LaunchError("Failed to launch firefox: missing binary", session=partial)

        result = await executor.execute(job_with(SEARCH_STEPS, browser="firefox"))

        assert result.status == JobStatus.FAILURE
        assert result.steps_executed == 0
        assert result.steps == []
        assert "missing binary" in result.error
        manager.open.assert_awaited_once_with(BrowserKind.FIREFOX, job_id="job-1")
        manager.close.assert_awaited_once_with(partial)
        interpreter.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_page_failure_closes_opened_session(self, executor, spy):
        manager, session, _ = spy
        manager.new_page.side_effect = LaunchError("Failed to open page: crashed", session=session)

        result = await executor.execute(job_with(SEARCH_STEPS))

        assert result.status == JobStatus.FAILURE
        manager.close.assert_awaited_once_with(session)


class TestStepExecution:
    @pytest.mark.asyncio
    async def test_all_steps_succeed(self, executor, spy, interpreter):
        manager, session, page = spy
        interpreter.execute.side_effect = [None, None, "/shots/example-screenshot-1.png"]
        steps = [
            {"action": "goto", "url": "https://example.com"},
            {"action": "waitForSelector", "selector": "body"},
            {"action": "screenshot", "path": "example-screenshot.png"},
        ]

        result = await executor.execute(job_with(steps))

        assert result.status == JobStatus.SUCCESS
        assert result.error is None
        assert result.steps_executed == 3
        assert result.total_steps == 3
        assert all(outcome.success for outcome in result.steps)
        assert result.steps[2].artifact == "/shots/example-screenshot-1.png"
        assert result.start_time <= result.end_time
        assert interpreter.execute.await_args_list[0].args[0] is page
        manager.close.assert_awaited_once_with(session)

    @pytest.mark.asyncio
    async def test_steps_run_in_order(self, executor, interpreter):
        await executor.execute(job_with(SEARCH_STEPS))
        actions = [call.args[1].action_name for call in interpreter.execute.await_args_list]
        assert actions == ["goto", "fill", "click", "screenshot"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failing_index", [0, 1, 2, 3])
    async def test_failure_stops_remaining_steps(self, executor, spy, interpreter, failing_index):
        effects = [None] * len(SEARCH_STEPS)
        effects[failing_index] = ElementError("Element not found")
        interpreter.execute.side_effect = effects

        result = await executor.execute(job_with(SEARCH_STEPS))

        assert result.status == JobStatus.FAILURE
        assert result.steps_executed == failing_index
        assert len(result.steps) == failing_index + 1
        assert result.steps[-1].success is False
        assert result.steps[-1].error == "Element not found"
        assert result.total_steps == len(SEARCH_STEPS)
        assert interpreter.execute.await_count == failing_index + 1
        assert result.error.startswith(f"Step {failing_index + 1} (")
        spy[0].close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unreachable_host(self, executor, spy, interpreter):
        interpreter.execute.side_effect = NavigationError(
            "Navigation to https://does-not-exist.invalid failed: net::ERR_NAME_NOT_RESOLVED"
        )
        result = await executor.execute(job_with([
            {"action": "goto", "url": "https://does-not-exist.invalid"},
            {"action": "screenshot"},
        ]))

        assert result.status == JobStatus.FAILURE
        assert result.steps_executed == 0
        assert len(result.steps) == 1
        assert "ERR_NAME_NOT_RESOLVED" in result.error
        spy[0].close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unknown_step_fails(self, executor, interpreter):
        interpreter.execute.side_effect = [None, UnknownStepError("hover")]
        result = await executor.execute(job_with([
            {"action": "goto", "url": "https://example.com"},
            {"action": "hover", "selector": "a"},
        ]))
        assert result.status == JobStatus.FAILURE
        assert result.steps_executed == 1
        assert "hover" in result.error

    @pytest.mark.asyncio
    async def test_default_timeout_passed_to_interpreter(self, executor, interpreter):
        await executor.execute(job_with([{"action": "goto", "url": "https://example.com"}]))
        assert interpreter.execute.await_args.args[2] == 1000


class TestJobTimeout:
    @pytest.mark.asyncio
    async def test_budget_exceeded(self, executor, spy, interpreter):
        async def slow(page, step, default_timeout_ms=None):
            await asyncio.sleep(1)

        interpreter.execute.side_effect = slow
        result = await executor.execute(job_with(
            [{"action": "goto", "url": "https://example.com"}, {"action": "screenshot"}],
            timeout=50,
        ))

        assert result.status == JobStatus.FAILURE
        assert result.steps_executed == 0
        assert len(result.steps) == 1
        assert "Job timeout of 50 ms exceeded" in result.error
        spy[0].close.assert_awaited_once()


class TestShutdownSignal:
    @pytest.mark.asyncio
    async def test_current_step_finishes_then_job_stops(self, executor, spy, interpreter):
        stop_event = asyncio.Event()

        async def first_step_sees_shutdown(page, step, default_timeout_ms=None):
            stop_event.set()

        interpreter.execute.side_effect = first_step_sees_shutdown
        result = await executor.execute(job_with(SEARCH_STEPS), stop_event=stop_event)

        assert interpreter.execute.await_count == 1
        assert result.status == JobStatus.FAILURE
        assert result.steps_executed == 1
        assert len(result.steps) == 1
        assert result.steps[0].success is True
        assert result.total_steps == len(SEARCH_STEPS)
        assert result.error == "Worker shutting down; stopped before step 2 (fill)"
        spy[0].close.assert_awaited_once_with(spy[1])

    @pytest.mark.asyncio
    async def test_already_stopping_runs_no_steps(self, executor, spy, interpreter):
        stop_event = asyncio.Event()
        stop_event.set()

        result = await executor.execute(job_with(SEARCH_STEPS), stop_event=stop_event)

        interpreter.execute.assert_not_awaited()
        assert result.steps_executed == 0
        assert result.steps == []
        assert result.error.startswith("Worker shutting down")
        spy[0].close.assert_awaited_once()


class TestClose:
    @pytest.mark.asyncio
    async def test_close_failure_does_not_change_result(self, executor, spy):
        manager = spy[0]
        manager.close.side_effect = RuntimeError("browser already gone")

        result = await executor.execute(job_with([{"action": "goto", "url": "https://example.com"}]))

        assert result.status == JobStatus.SUCCESS
        assert result.steps_executed == 1
        manager.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cancellation_still_closes(self, executor, spy, interpreter):
        started = asyncio.Event()

        async def hang(page, step, default_timeout_ms=None):
            started.set()
            await asyncio.sleep(10)

        interpreter.execute.side_effect = hang
        task = asyncio.create_task(executor.execute(job_with([{"action": "goto", "url": "https://example.com"}])))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        spy[0].close.assert_awaited_once_with(spy[1])

    @pytest.mark.asyncio
    async def test_unexpected_error_is_reported(self, executor, spy):
        manager = spy[0]
        manager.open.side_effect = RuntimeError("driver exploded")

        result = await executor.execute(job_with([{"action": "goto", "url": "https://example.com"}]))

        assert result.status == JobStatus.FAILURE
        assert result.error == "RuntimeError: driver exploded"
        manager.close.assert_awaited_once_with(None)


class TestFromConfig:
    def test_uses_config_values(self, tmp_path):
        config = RunnerConfig.from_env({
            "PWRUNNER_BROWSER_TIMEOUT": "1500",
            "PWRUNNER_JOB_TIMEOUT": "9000",
            "PWRUNNER_SCREENSHOTS_DIR": str(tmp_path),
        })
        executor = JobExecutor.from_config(config)
        assert executor.default_timeout_ms == 1500
        assert executor.job_timeout_ms == 9000
        assert str(executor.interpreter.screenshots_dir) == str(tmp_path)
        assert executor.session_manager.config is config.browser
