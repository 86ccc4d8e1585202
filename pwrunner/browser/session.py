"""
BrowserSessionManager - one browser process and one page per job.

Sessions are never pooled or reused. Each session owns its own Playwright
driver, browser, context and page, and all of them are released by
``close()``, which is safe to call any number of times.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, Callable

from playwright.async_api import async_playwright

from ..config import BrowserConfig
from ..errors import LaunchError
from ..logging_config import get_logger
from ..models import BrowserKind

logger = get_logger("pwrunner.browser")


class SessionStatus(Enum):
    STARTING = "starting"
    READY = "ready"
    ERROR = "error"
    CLOSED = "closed"


@dataclass
class BrowserSession:
    """Handles for a single job's browser."""
    id: str
    kind: BrowserKind
    job_id: Optional[str] = None
    status: SessionStatus = SessionStatus.STARTING
    playwright: Any = None
    browser: Any = None
    context: Any = None
    page: Any = None
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def closed(self) -> bool:
        return self.status == SessionStatus.CLOSED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "job_id": self.job_id,
            "status": self.status.value,
            "has_page": self.page is not None,
            "created_at": self.created_at,
        }


class BrowserSessionManager:
    """Creates and tears down isolated browser sessions."""

    def __init__(
        self,
        config: Optional[BrowserConfig] = None,
        playwright_factory: Callable[[], Any] = async_playwright,
    ):
        self.config = config or BrowserConfig()
        self._playwright_factory = playwright_factory
        self.sessions: Dict[str, BrowserSession] = {}

    # ==================== Session Lifecycle ====================

    async def open(
        self,
        kind: BrowserKind = BrowserKind.CHROMIUM,
        config: Optional[BrowserConfig] = None,
        job_id: Optional[str] = None,
    ) -> BrowserSession:
        """Launch a browser of the requested kind.

        Raises LaunchError if the kind is unsupported or the process fails to
        start. The partially launched session is attached to the error.
        """
        config = config or self.config
        session = BrowserSession(id=uuid.uuid4().hex[:8], kind=kind, job_id=job_id)

        try:
            kind = BrowserKind(kind)
        except ValueError:
            session.status = SessionStatus.ERROR
            raise LaunchError(f"Unsupported browser kind: {kind!r}", session=session)
        session.kind = kind

        self.sessions[session.id] = session
        logger.info_with("Launching browser", job_id=job_id, session_id=session.id, browser=kind.value)

        try:
            session.playwright = await self._playwright_factory().start()
            launcher = {
                BrowserKind.CHROMIUM: session.playwright.chromium,
                BrowserKind.FIREFOX: session.playwright.firefox,
                BrowserKind.WEBKIT: session.playwright.webkit,
            }[kind]

            session.browser = await launcher.launch(**self._launch_options(kind, config))

            context_options = {
                "viewport": {
                    "width": config.viewport_width,
                    "height": config.viewport_height,
                },
                "ignore_https_errors": config.ignore_https_errors,
            }
            if config.user_agent:
                context_options["user_agent"] = config.user_agent
            session.context = await session.browser.new_context(**context_options)

        except Exception as e:
            session.status = SessionStatus.ERROR
            logger.error_with("Failed to launch browser", job_id=job_id, session_id=session.id, error=str(e))
            raise LaunchError(f"Failed to launch {kind.value}: {e}", session=session) from e

        session.status = SessionStatus.READY
        logger.info_with("Browser launched", job_id=job_id, session_id=session.id)
        return session

    async def new_page(self, session: BrowserSession, config: Optional[BrowserConfig] = None):
        """Open the session's single page."""
        config = config or self.config
        if session.closed or session.context is None:
            raise LaunchError(f"Browser session {session.id} is not open", session=session)
        if session.page is not None:
            raise LaunchError(f"Browser session {session.id} already has a page", session=session)

        try:
            page = await session.context.new_page()
            page.set_default_timeout(config.timeout_ms)
        except Exception as e:
            session.status = SessionStatus.ERROR
            raise LaunchError(f"Failed to open page: {e}", session=session) from e

        session.page = page
        logger.debug_with("Created new browser page", job_id=session.job_id, session_id=session.id)
        return page

    async def close(self, session: Optional[BrowserSession]) -> None:
        """Release everything the session holds. Never raises."""
        if session is None or session.closed:
            return

        session.status = SessionStatus.CLOSED
        steps = (
            ("page", session.page, "close"),
            ("context", session.context, "close"),
            ("browser", session.browser, "close"),
            ("playwright", session.playwright, "stop"),
        )
        for name, handle, method in steps:
            if handle is None:
                continue
            try:
                await getattr(handle, method)()
            except Exception as e:
                logger.error_with(
                    f"Failed to close {name}",
                    job_id=session.job_id,
                    session_id=session.id,
                    error=str(e),
                )

        session.page = None
        session.context = None
        session.browser = None
        session.playwright = None
        self.sessions.pop(session.id, None)
        logger.info_with("Browser session closed", job_id=session.job_id, session_id=session.id)

    async def close_all(self) -> int:
        """Force-close every session still registered. Returns how many were open."""
        open_sessions = list(self.sessions.values())
        for session in open_sessions:
            logger.warning_with("Force closing browser session", job_id=session.job_id, session_id=session.id)
            await self.close(session)
        return len(open_sessions)

    # ==================== Internal Helpers ====================

    @staticmethod
    def _launch_options(kind: BrowserKind, config: BrowserConfig) -> Dict[str, Any]:
        options: Dict[str, Any] = {"headless": config.headless}
        if config.slow_mo:
            options["slow_mo"] = config.slow_mo
        if config.args and kind != BrowserKind.WEBKIT:
            options["args"] = list(config.args)
        if config.executable_path and kind == BrowserKind.CHROMIUM:
            options["executable_path"] = config.executable_path
        return options
