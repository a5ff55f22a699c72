"""
Parallel test runner.

Runs named test callables on a thread pool. Every test gets its own session
from the registry, scoped so that it is released on every exit path, and
failed tests are optionally re-run by the TestRetryAnalyzer.
"""

from __future__ import annotations

import threading
import time
import traceback
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Callable, Hashable, Iterable, Mapping

import structlog
from structlog.contextvars import bound_contextvars

from uiqa.config.execution import ExecutionConfig
from uiqa.session.registry import SessionRegistry

if TYPE_CHECKING:
    from uiqa.notify.notifiers import ArtifactNotifier
    from uiqa.session.models import Session

logger = structlog.get_logger(__name__)

TestCallable = Callable[["Session"], None]


class CaseStatus(StrEnum):
    """Outcome of a test case."""

    PASSED = "passed"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class TestCase:
    """A named test body that receives the worker's session."""

    __test__ = False

    name: str
    func: TestCallable


@dataclass
class CaseResult:
    """Result of running one test case, including any retries."""

    name: str
    """Test case name."""

    status: CaseStatus
    """Final status after the last attempt."""

    started_at: datetime
    """When the first attempt started."""

    finished_at: datetime | None = None
    """When the last attempt finished."""

    duration_ms: int = 0
    """Total time across attempts."""

    attempts: int = 1
    """Number of times the case was run."""

    worker: Hashable | None = None
    """Worker that ran the case."""

    error: str | None = None
    """Error message from the last failed attempt."""

    error_type: str | None = None
    """Error class name from the last failed attempt."""

    traceback: str | None = None
    """Formatted traceback from the last failed attempt."""

    @property
    def passed(self) -> bool:
        return self.status == CaseStatus.PASSED

    @property
    def retried(self) -> bool:
        return self.attempts > 1


@dataclass
class RunSummary:
    """Aggregated results of a parallel run."""

    started_at: datetime
    """When the run started."""

    finished_at: datetime | None = None
    """When the run completed."""

    duration_ms: int = 0
    """Wall-clock time of the run."""

    results: list[CaseResult] = field(default_factory=list)
    """Individual case results, in completion order."""

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def passed(self) -> int:
        return sum(1 for r in self.results if r.passed)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.passed)

    @property
    def retried(self) -> int:
        return sum(1 for r in self.results if r.retried)

    @property
    def success_rate(self) -> float:
        """Percentage of passed cases."""
        if not self.results:
            return 0.0
        return (self.passed / self.total) * 100

    @property
    def is_success(self) -> bool:
        return self.failed == 0

    def result_for(self, name: str) -> CaseResult | None:
        return next((r for r in self.results if r.name == name), None)


class TestRetryAnalyzer:
    """
    Decides whether a failed test is run again.

    Retries are allowed only when enabled, up to ``max_retries`` per test
    name. Counts are kept per test and are safe to update from any worker.
    """

    __test__ = False

    def __init__(self, enabled: bool = False, max_retries: int = 0) -> None:
        self._enabled = enabled
        self._max_retries = max(0, max_retries)
        self._attempts: dict[str, int] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: ExecutionConfig) -> TestRetryAnalyzer:
        return cls(enabled=config.retry_enabled, max_retries=config.retry_count)

    @property
    def max_retries(self) -> int:
        return self._max_retries if self._enabled else 0

    def retry(self, name: str) -> bool:
        """Record a failure of ``name``; True if it should run again."""
        if not self._enabled:
            return False
        with self._lock:
            attempt = self._attempts.get(name, 0)
            if attempt >= self._max_retries:
                return False
            self._attempts[name] = attempt + 1

        logger.warning(
            "Retrying test",
            test=name,
            attempt=attempt + 1,
            max_retries=self._max_retries,
        )
        return True

    def retries_for(self, name: str) -> int:
        with self._lock:
            return self._attempts.get(name, 0)


class ParallelRunner:
    """
    Runs test cases concurrently, one browser session per worker.

    Usage:
        runner = ParallelRunner(registry, config)
        summary = runner.run({"login works": test_login, "search works": test_search})
        assert summary.is_success
    """

    def __init__(
        self,
        registry: SessionRegistry,
        config: ExecutionConfig,
        retry_analyzer: TestRetryAnalyzer | None = None,
        artifacts: ArtifactNotifier | None = None,
        on_case_complete: Callable[[CaseResult], None] | None = None,
    ) -> None:
        """
        Initialize the runner.

        Args:
            registry: Session registry the workers acquire from
            config: Configuration for every session and the pool size
            retry_analyzer: Decides test re-runs (defaults from config)
            artifacts: Artifact notifier to label with the running test's name
            on_case_complete: Callback when each case finishes
        """
        self._registry = registry
        self._config = config
        self._retry = retry_analyzer or TestRetryAnalyzer.from_config(config)
        self._artifacts = artifacts
        self._on_case_complete = on_case_complete
        self._log = logger.bind(component="parallel_runner")

    def run(
        self,
        cases: Mapping[str, TestCallable] | Iterable[TestCase],
    ) -> RunSummary:
        """
        Run every case on a pool of ``config.thread_count`` workers.

        A case failing never stops the others; its error is recorded in its
        CaseResult.
        """
        if isinstance(cases, Mapping):
            cases = [TestCase(name, func) for name, func in cases.items()]
        cases = list(cases)

        summary = RunSummary(started_at=datetime.now(UTC))
        if not cases:
            summary.finished_at = summary.started_at
            return summary

        max_workers = min(self._config.thread_count, len(cases))
        self._log.info("Starting parallel run", cases=len(cases), workers=max_workers)
        started = time.monotonic()

        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="uiqa-worker") as executor:
            future_to_case = {executor.submit(self.run_case, case): case for case in cases}

            for future in as_completed(future_to_case):
                case = future_to_case[future]
                try:
                    result = future.result()
                except Exception as e:
                    # Session acquisition or release failed outside the case body
                    self._log.error("Parallel test execution failed", test=case.name, error=str(e))
                    now = datetime.now(UTC)
                    result = CaseResult(
                        name=case.name,
                        status=CaseStatus.FAILED,
                        started_at=now,
                        finished_at=now,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                summary.results.append(result)
                if self._on_case_complete:
                    self._on_case_complete(result)

        summary.finished_at = datetime.now(UTC)
        summary.duration_ms = int((time.monotonic() - started) * 1000)
        self._log.info(
            "Parallel run completed",
            total=summary.total,
            passed=summary.passed,
            failed=summary.failed,
            retried=summary.retried,
            duration_ms=summary.duration_ms,
        )
        return summary

    def run_case(self, case: TestCase) -> CaseResult:
        """Run one case on the calling worker, re-running it while the analyzer allows."""
        result = CaseResult(
            name=case.name,
            status=CaseStatus.FAILED,
            started_at=datetime.now(UTC),
            attempts=0,
            worker=self._registry.worker(),
        )
        started = time.monotonic()

        with bound_contextvars(test=case.name):
            while True:
                result.attempts += 1
                error = self._run_once(case)
                if error is None:
                    result.status = CaseStatus.PASSED
                    result.error = result.error_type = result.traceback = None
                    break

                result.error = str(error)
                result.error_type = type(error).__name__
                result.traceback = "".join(traceback.format_exception(error))
                self._log.warning(
                    "Test failed",
                    test=case.name,
                    attempt=result.attempts,
                    error_type=result.error_type,
                    error=result.error,
                )
                if not self._retry.retry(case.name):
                    break

        result.finished_at = datetime.now(UTC)
        result.duration_ms = int((time.monotonic() - started) * 1000)
        self._log.info(
            "Test finished",
            test=case.name,
            status=result.status,
            attempts=result.attempts,
            duration_ms=result.duration_ms,
        )
        return result

    def _run_once(self, case: TestCase) -> Exception | None:
        if self._artifacts is not None:
            self._artifacts.label(self._registry.worker(), case.name)

        with self._registry.session(self._config) as session:
            try:
                case.func(session)
            except Exception as e:
                self._registry.report_action_failed(e)
                return e
        return None
