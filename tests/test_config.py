import json
import logging
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from pwrunner.config import BrowserConfig, QueueConfig, RunnerConfig, WorkerConfig
from pwrunner.logging_config import (
    ContextFilter,
    FieldsFormatter,
    JSONFormatter,
    get_logger,
    log_context,
    setup_logging,
)


class TestBrowserConfig:
    def test_defaults(self):
        config = BrowserConfig.from_env({})
        assert config.headless is True
        assert config.timeout_ms == 30000
        assert config.slow_mo == 0
        assert config.executable_path is None
        assert config.args == []

    def test_from_env(self):
        config = BrowserConfig.from_env({
            "PWRUNNER_BROWSER_HEADLESS": "false",
            "PWRUNNER_BROWSER_TIMEOUT": "5000",
            "PWRUNNER_BROWSER_SLOWMO": "250",
            "PWRUNNER_BROWSER_PATH": "/usr/bin/chromium",
            "PWRUNNER_BROWSER_ARGS": "--no-sandbox, --disable-gpu,",
        })
        assert config.headless is False
        assert config.timeout_ms == 5000
        assert config.slow_mo == 250
        assert config.executable_path == "/usr/bin/chromium"
        assert config.args == ["--no-sandbox", "--disable-gpu"]

    def test_invalid_number_falls_back(self):
        assert BrowserConfig.from_env({"PWRUNNER_BROWSER_TIMEOUT": "soon"}).timeout_ms == 30000


class TestQueueConfig:
    def test_defaults(self):
        config = QueueConfig.from_env({})
        assert config.name == "playwright-jobs"
        assert config.backend == "memory"
        assert config.remove_on_complete_age == 86400
        assert config.remove_on_fail_age == 604800

    def test_unknown_backend_falls_back(self):
        assert QueueConfig.from_env({"PWRUNNER_QUEUE_BACKEND": "kafka"}).backend == "memory"

    def test_redis(self):
        config = QueueConfig.from_env({
            "PWRUNNER_QUEUE_BACKEND": "Redis",
            "PWRUNNER_REDIS_URL": "redis://cache:6379/2",
        })
        assert config.backend == "redis"
        assert config.redis_url == "redis://cache:6379/2"


class TestWorkerConfig:
    def test_defaults(self):
        config = WorkerConfig.from_env({})
        assert config.concurrency == 1
        assert config.shutdown_timeout == 30.0
        assert config.job_timeout_ms == 300000

    def test_concurrency_at_least_one(self):
        assert WorkerConfig.from_env({"PWRUNNER_WORKER_CONCURRENCY": "0"}).concurrency == 1
        assert WorkerConfig.from_env({"PWRUNNER_WORKER_CONCURRENCY": "4"}).concurrency == 4

    def test_screenshots_dir(self, tmp_path):
        config = WorkerConfig.from_env({"PWRUNNER_SCREENSHOTS_DIR": str(tmp_path)})
        assert config.screenshots_dir == tmp_path


def test_runner_config_to_dict():
    data = RunnerConfig.from_env({"PWRUNNER_ENV": "production"}).to_dict()
    assert data["env"] == "production"
    assert set(data) == {"env", "browser", "queue", "worker"}
    json.dumps(data)


def make_record(**fields):
    record = logging.LogRecord("pwrunner.test", logging.INFO, __file__, 1, "Job completed", (), None)
    record.extra_fields = fields
    return record


class TestFormatters:
    def test_json_formatter(self):
        line = JSONFormatter().format(make_record(job_id="job-1", steps_executed=3))
        data = json.loads(line)
        assert data["msg"] == "Job completed"
        assert data["level"] == "info"
        assert data["job_id"] == "job-1"
        assert data["steps_executed"] == 3

    def test_fields_formatter(self):
        line = FieldsFormatter("%(levelname)s %(message)s").format(make_record(job_id="job-1"))
        assert line == "INFO Job completed job_id=job-1"

    def test_context_fields(self):
        record = make_record(step=2)
        with log_context(job_id="job-7"):
            ContextFilter().filter(record)
        line = FieldsFormatter("%(message)s").format(record)
        assert line == "Job completed job_id=job-7 step=2"

    def test_explicit_fields_win(self):
        record = make_record(job_id="explicit")
        with log_context(job_id="from-context"):
            ContextFilter().filter(record)
        assert json.loads(JSONFormatter().format(record))["job_id"] == "explicit"

    def test_context_is_restored(self):
        with log_context(job_id="outer"):
            with log_context(session_id="inner"):
                pass
            record = make_record()
            ContextFilter().filter(record)
        assert record.context_fields == {"job_id": "outer"}


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestSetupLogging:
    def test_level_and_console_handler(self, restore_root_logger):
        root = setup_logging(level="debug", json_format=True)
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JSONFormatter)

    def test_log_file_is_json(self, restore_root_logger, tmp_path):
        log_file = tmp_path / "runner.log"
        setup_logging(level="INFO", json_format=False, log_file=str(log_file))

        get_logger("pwrunner.test").info_with("Job enqueued", job_id="abc")
        for handler in restore_root_logger.handlers:
            handler.flush()

        entry = json.loads(log_file.read_text().strip().splitlines()[-1])
        assert entry["msg"] == "Job enqueued"
        assert entry["job_id"] == "abc"

    def test_structured_logger(self):
        assert hasattr(get_logger("pwrunner.anything"), "info_with")
