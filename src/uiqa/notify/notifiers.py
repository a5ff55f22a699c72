"""
Concrete lifecycle notifiers.

- LoggingNotifier: records lifecycle events in the structured log
- ArtifactNotifier: persists failure snapshots (screenshot, page source,
  browser console log) under the report directory
"""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Hashable

import structlog

if TYPE_CHECKING:
    from uiqa.config.execution import ExecutionConfig
    from uiqa.session.models import SessionSnapshot

logger = structlog.get_logger(__name__)


def sanitize_name(name: str | None) -> str:
    """Make a test name safe for use as a directory name."""
    if name is None or not name.strip():
        return "unknown-test"
    return re.sub(r"[^a-zA-Z0-9\-_.]", "_", name)


def timestamp() -> str:
    return datetime.now(UTC).strftime("%Y%m%d-%H%M%S-%f")[:-3]


class LoggingNotifier:
    """Writes every lifecycle event to the structured log."""

    def __init__(self) -> None:
        self._log = logger.bind(component="lifecycle")

    def on_session_created(self, worker: Hashable, config: ExecutionConfig) -> None:
        self._log.info(
            "Session created",
            worker=worker,
            browser=config.browser,
            backend=config.backend,
            headless=config.headless,
        )

    def on_action_failed(
        self,
        worker: Hashable,
        error: BaseException,
        snapshot: SessionSnapshot | None,
    ) -> None:
        self._log.error(
            "Action failed",
            worker=worker,
            error_type=type(error).__name__,
            error=str(error),
            url=snapshot.url if snapshot else None,
            console_lines=len(snapshot.console_log) if snapshot else 0,
        )

    def on_session_closed(self, worker: Hashable) -> None:
        self._log.info("Session closed", worker=worker)


@dataclass
class FailureArtifacts:
    """Paths of the artifacts written for one failure."""

    screenshot: Path | None = None
    page_source: Path | None = None
    console_log: Path | None = None


class ArtifactNotifier:
    """
    Persists failure snapshots to disk.

    Layout under ``report_dir``:
        screenshots/<test>/screenshot-<timestamp>.png
        pagesource/<test>/page-<timestamp>.html
        browser-logs/<test>/browser-<timestamp>.log

    The test name for a worker is set with ``label()``; unlabelled workers
    fall back to the worker identity.
    """

    def __init__(
        self,
        report_dir: str | Path = "reports",
        capture_screenshots: bool = True,
    ) -> None:
        self._report_dir = Path(report_dir)
        self._capture_screenshots = capture_screenshots
        self._labels: dict[Hashable, str] = {}
        self._written: dict[Hashable, list[FailureArtifacts]] = {}
        self._lock = threading.Lock()
        self._log = logger.bind(component="artifact_notifier")

    @classmethod
    def from_config(cls, config: ExecutionConfig) -> ArtifactNotifier:
        return cls(report_dir=config.report_dir, capture_screenshots=config.screenshot_on_fail)

    def label(self, worker: Hashable, test_name: str) -> None:
        """Associate the test currently running on a worker with its artifacts."""
        with self._lock:
            self._labels[worker] = test_name

    def artifacts_for(self, worker: Hashable) -> list[FailureArtifacts]:
        with self._lock:
            return list(self._written.get(worker, []))

    def on_session_created(self, worker: Hashable, config: ExecutionConfig) -> None:
        with self._lock:
            self._written.pop(worker, None)

    def on_action_failed(
        self,
        worker: Hashable,
        error: BaseException,
        snapshot: SessionSnapshot | None,
    ) -> None:
        if snapshot is None:
            self._log.info("No snapshot available for failure", worker=worker)
            return
        self.save_snapshot(worker, snapshot)

    def save_snapshot(
        self,
        worker: Hashable,
        snapshot: SessionSnapshot,
        screenshot: bool | None = None,
    ) -> FailureArtifacts:
        """
        Write the parts of a snapshot to the report directory.

        ``screenshot`` overrides the notifier's screenshot setting for this call.
        """
        capture = self._capture_screenshots if screenshot is None else screenshot
        with self._lock:
            name = sanitize_name(self._labels.get(worker, str(worker)))

        ts = timestamp()
        artifacts = FailureArtifacts()

        if capture and snapshot.screenshot:
            artifacts.screenshot = self._write(
                Path("screenshots", name, f"screenshot-{ts}.png"), snapshot.screenshot
            )
        if snapshot.page_source:
            artifacts.page_source = self._write(
                Path("pagesource", name, f"page-{ts}.html"),
                snapshot.page_source.encode("utf-8"),
            )
        if snapshot.console_log:
            artifacts.console_log = self._write(
                Path("browser-logs", name, f"browser-{ts}.log"),
                ("\n".join(snapshot.console_log) + "\n").encode("utf-8"),
            )
        else:
            self._log.info("No browser console logs available to save", test=name)

        with self._lock:
            self._written.setdefault(worker, []).append(artifacts)
        return artifacts

    def on_session_closed(self, worker: Hashable) -> None:
        with self._lock:
            self._labels.pop(worker, None)

    def _write(self, relative: Path, data: bytes) -> Path | None:
        path = self._report_dir / relative
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            self._log.warning("Failed to save artifact", path=str(path), error=str(e))
            return None
        absolute = path.resolve()
        self._log.info("Saved artifact", path=str(absolute))
        return absolute
