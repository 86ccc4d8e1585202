"""
Runner configuration loaded from PWRUNNER_* environment variables.
"""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, List, Dict, Any, Mapping

from .logging_config import get_logger

logger = get_logger("pwrunner.config")

ENV_PREFIX = "PWRUNNER_"


def _env_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    value = env.get(ENV_PREFIX + key)
    if value is None or value == "":
        return default
    return value.strip().lower() not in ("false", "0", "no", "off")


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    value = env.get(ENV_PREFIX + key)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Invalid integer for {ENV_PREFIX + key}: {value!r}, using {default}")
        return default


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    value = env.get(ENV_PREFIX + key)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Invalid number for {ENV_PREFIX + key}: {value!r}, using {default}")
        return default


def _env_list(env: Mapping[str, str], key: str) -> List[str]:
    value = env.get(ENV_PREFIX + key) or ""
    return [arg.strip() for arg in value.split(",") if arg.strip()]


@dataclass
class BrowserConfig:
    """Launch and page options for every browser session."""
    headless: bool = True
    timeout_ms: int = 30000
    slow_mo: int = 0
    executable_path: Optional[str] = None
    args: List[str] = field(default_factory=list)
    viewport_width: int = 1280
    viewport_height: int = 720
    ignore_https_errors: bool = False
    user_agent: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "headless": self.headless,
            "timeout_ms": self.timeout_ms,
            "slow_mo": self.slow_mo,
            "executable_path": self.executable_path,
            "args": list(self.args),
            "viewport_width": self.viewport_width,
            "viewport_height": self.viewport_height,
            "ignore_https_errors": self.ignore_https_errors,
            "user_agent": self.user_agent,
        }

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "BrowserConfig":
        env = os.environ if environ is None else environ
        return cls(
            headless=_env_bool(env, "BROWSER_HEADLESS", True),
            timeout_ms=_env_int(env, "BROWSER_TIMEOUT", 30000),
            slow_mo=_env_int(env, "BROWSER_SLOWMO", 0),
            executable_path=env.get(ENV_PREFIX + "BROWSER_PATH") or None,
            args=_env_list(env, "BROWSER_ARGS"),
            ignore_https_errors=_env_bool(env, "BROWSER_IGNORE_HTTPS_ERRORS", False),
            user_agent=env.get(ENV_PREFIX + "BROWSER_USER_AGENT", ""),
        )


@dataclass
class QueueConfig:
    name: str = "playwright-jobs"
    backend: str = "memory"  # memory or redis
    redis_url: str = "redis://localhost:6379/0"
    key_prefix: str = "pwrunner"
    remove_on_complete_age: int = 86400  # keep finished jobs for 24 hours
    remove_on_fail_age: int = 604800  # keep failed jobs for 7 days
    poll_interval: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "backend": self.backend,
            "redis_url": self.redis_url,
            "key_prefix": self.key_prefix,
            "remove_on_complete_age": self.remove_on_complete_age,
            "remove_on_fail_age": self.remove_on_fail_age,
            "poll_interval": self.poll_interval,
        }

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "QueueConfig":
        env = os.environ if environ is None else environ
        backend = (env.get(ENV_PREFIX + "QUEUE_BACKEND") or "memory").lower()
        if backend not in ("memory", "redis"):
            logger.warning(f"Unknown queue backend {backend!r}, using memory")
            backend = "memory"
        return cls(
            name=env.get(ENV_PREFIX + "QUEUE_NAME") or "playwright-jobs",
            backend=backend,
            redis_url=env.get(ENV_PREFIX + "REDIS_URL") or "redis://localhost:6379/0",
            remove_on_complete_age=_env_int(env, "QUEUE_REMOVE_ON_COMPLETE", 86400),
            remove_on_fail_age=_env_int(env, "QUEUE_REMOVE_ON_FAIL", 604800),
        )


@dataclass
class WorkerConfig:
    concurrency: int = 1
    shutdown_timeout: float = 30.0  # seconds
    job_timeout_ms: int = 300000
    screenshots_dir: Path = field(default_factory=lambda: Path.cwd() / "screenshots")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "concurrency": self.concurrency,
            "shutdown_timeout": self.shutdown_timeout,
            "job_timeout_ms": self.job_timeout_ms,
            "screenshots_dir": str(self.screenshots_dir),
        }

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "WorkerConfig":
        env = os.environ if environ is None else environ
        screenshots_dir = env.get(ENV_PREFIX + "SCREENSHOTS_DIR")
        concurrency = _env_int(env, "WORKER_CONCURRENCY", 1)
        if concurrency < 1:
            logger.warning(f"Worker concurrency must be at least 1, got {concurrency}")
            concurrency = 1
        return cls(
            concurrency=concurrency,
            shutdown_timeout=_env_float(env, "SHUTDOWN_TIMEOUT", 30.0),
            job_timeout_ms=_env_int(env, "JOB_TIMEOUT", 300000),
            screenshots_dir=Path(screenshots_dir) if screenshots_dir else Path.cwd() / "screenshots",
        )


@dataclass
class RunnerConfig:
    env: str = "development"
    browser: BrowserConfig = field(default_factory=BrowserConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    worker: WorkerConfig = field(default_factory=WorkerConfig)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "env": self.env,
            "browser": self.browser.to_dict(),
            "queue": self.queue.to_dict(),
            "worker": self.worker.to_dict(),
        }

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RunnerConfig":
        env = os.environ if environ is None else environ
        return cls(
            env=env.get(ENV_PREFIX + "ENV") or "development",
            browser=BrowserConfig.from_env(env),
            queue=QueueConfig.from_env(env),
            worker=WorkerConfig.from_env(env),
        )
