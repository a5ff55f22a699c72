"""
Session data models.

A Session is one live, exclusively owned browser handle bound to a single
worker. Timeouts are copied from the configuration at creation time, so
later configuration changes never affect an open session.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Callable, Hashable

import structlog

from uiqa.config.execution import BackendKind, ExecutionConfig
from uiqa.errors import SessionAlreadyClosedError

if TYPE_CHECKING:
    from selenium.webdriver.remote.webdriver import WebDriver

    from uiqa.session.capabilities import CapabilitySet

logger = structlog.get_logger(__name__)


class SessionState(StrEnum):
    """Lifecycle state of a session."""

    ACTIVE = "active"
    CLOSED = "closed"


@dataclass(frozen=True, slots=True)
class SessionTimeouts:
    """Timeouts in effect for a session, fixed at creation."""

    implicit_wait_seconds: int
    page_load_timeout_seconds: int
    explicit_wait_seconds: int

    @classmethod
    def from_config(cls, config: ExecutionConfig) -> SessionTimeouts:
        return cls(
            implicit_wait_seconds=config.implicit_wait_seconds,
            page_load_timeout_seconds=config.effective_page_load_timeout,
            explicit_wait_seconds=config.explicit_wait_seconds,
        )


@dataclass(frozen=True, slots=True)
class SessionSnapshot:
    """
    Diagnostic state of a session captured on demand.

    Each part is optional; capture is best-effort and never raises.
    Persisting the snapshot is left to lifecycle notifiers.
    """

    screenshot: bytes | None = None
    """PNG screenshot bytes."""

    page_source: str | None = None
    """Page markup at capture time."""

    console_log: tuple[str, ...] = ()
    """Browser console log lines."""

    url: str | None = None
    """Current URL at capture time."""

    captured_at: float = field(default_factory=time.time)
    """Unix timestamp of capture."""

    @property
    def is_empty(self) -> bool:
        return self.screenshot is None and self.page_source is None and not self.console_log


@dataclass
class Session:
    """
    A live browser session owned by one worker.

    Never shared between workers and never pooled.
    """

    worker: Hashable
    """Identity of the owning worker."""

    backend: BackendKind
    """Backend the session runs on."""

    handle: WebDriver = field(repr=False)
    """Underlying Selenium driver; use the driver property while the session is open."""

    timeouts: SessionTimeouts
    """Effective timeouts copied from configuration."""

    config: ExecutionConfig = field(repr=False)
    """Configuration the session was created with."""

    capabilities: CapabilitySet | None = field(default=None, repr=False)
    """Capabilities the session was requested with."""

    created_at: float = field(default_factory=time.time)
    """Unix timestamp when the session was created."""

    state: SessionState = SessionState.ACTIVE
    """Current lifecycle state."""

    @property
    def driver(self) -> WebDriver:
        """The live driver; raises once the session has been released."""
        self.ensure_open()
        return self.handle

    @property
    def session_id(self) -> str:
        return str(getattr(self.handle, "session_id", None) or "local-driver")

    @property
    def is_closed(self) -> bool:
        return self.state == SessionState.CLOSED

    @property
    def age_seconds(self) -> float:
        return time.time() - self.created_at

    def ensure_open(self) -> None:
        """Raise SessionAlreadyClosedError if the session was released."""
        if self.state == SessionState.CLOSED:
            raise SessionAlreadyClosedError(
                f"Session for worker {self.worker!r} has already been closed"
            )

    def close(self) -> None:
        """
        Quit the driver and mark the session closed.

        Quit failures are logged, never raised. Calling close twice is a no-op.
        """
        if self.state == SessionState.CLOSED:
            return
        self.state = SessionState.CLOSED
        try:
            self.handle.quit()
            logger.info("Driver session quit", worker=self.worker, session_id=self.session_id)
        except Exception as e:
            logger.error(
                "Error while quitting driver session",
                worker=self.worker,
                session_id=self.session_id,
                error=str(e),
            )

    def snapshot(self) -> SessionSnapshot:
        """Capture screenshot, page source and console log best-effort."""
        self.ensure_open()
        driver = self.handle

        screenshot = _capture(lambda: driver.get_screenshot_as_png(), "screenshot", self.worker)
        page_source = _capture(lambda: driver.page_source, "page_source", self.worker)
        url = _capture(lambda: driver.current_url, "url", self.worker)
        entries = _capture(lambda: driver.get_log("browser"), "console_log", self.worker)

        return SessionSnapshot(
            screenshot=screenshot,
            page_source=page_source,
            console_log=tuple(_format_log_entry(e) for e in entries or ()),
            url=url,
        )


def _capture(read: Callable[[], Any], part: str, worker: Hashable) -> Any:
    try:
        return read()
    except Exception as e:
        # Not every driver supports every capture (e.g. console logs are Chromium only)
        logger.debug("Snapshot capture unavailable", part=part, worker=worker, error=str(e))
        return None


def _format_log_entry(entry: Any) -> str:
    if isinstance(entry, dict):
        return f"{entry.get('timestamp', '')} [{entry.get('level', '')}] {entry.get('message', '')}"
    return str(entry)
