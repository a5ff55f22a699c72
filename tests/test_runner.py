"""
Unit tests for the parallel runner.

Tests cover:
- Per-worker session isolation under concurrent execution
- Result aggregation and failure capture
- TestRetryAnalyzer re-runs
"""

from __future__ import annotations

import threading
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from uiqa.config.execution import ExecutionConfig
from uiqa.errors import SessionCreationError
from uiqa.notify.notifiers import ArtifactNotifier
from uiqa.runner.parallel import (
    CaseStatus,
    ParallelRunner,
    TestCase,
    TestRetryAnalyzer,
)
from uiqa.session.models import Session
from uiqa.session.registry import SessionRegistry


class TestRetryAnalyzerBehaviour:
    """Tests for the test-level retry analyzer."""

    def test_disabled_never_retries(self) -> None:
        """Test nothing is retried when retries are disabled."""
        analyzer = TestRetryAnalyzer(enabled=False, max_retries=5)

        assert analyzer.retry("test_login") is False
        assert analyzer.max_retries == 0

    def test_retries_up_to_count(self) -> None:
        """Test each test is retried at most retry_count times."""
        analyzer = TestRetryAnalyzer(enabled=True, max_retries=2)

        assert analyzer.retry("test_login") is True
        assert analyzer.retry("test_login") is True
        assert analyzer.retry("test_login") is False
        assert analyzer.retries_for("test_login") == 2

    def test_counts_are_per_test(self) -> None:
        """Test one test's retries do not use up another's."""
        analyzer = TestRetryAnalyzer(enabled=True, max_retries=1)

        assert analyzer.retry("test_a") is True
        assert analyzer.retry("test_b") is True
        assert analyzer.retry("test_a") is False

    def test_from_config(self) -> None:
        """Test the analyzer follows retry.enabled and retry.count."""
        analyzer = TestRetryAnalyzer.from_config(ExecutionConfig(retry_enabled=True, retry_count=3))

        assert analyzer.max_retries == 3


class TestParallelRunner:
    """Tests for running cases concurrently."""

    def test_workers_never_share_sessions(self, registry: SessionRegistry, session_factory, config: ExecutionConfig) -> None:
        """Test two workers doing 50 interactions each only ever see their own session."""
        seen: dict[str, set[str]] = {"worker-a": set(), "worker-b": set()}
        barrier = threading.Barrier(2, timeout=10)

        def interactions(name: str):
            def run(session: Session) -> None:
                barrier.wait()
                for i in range(50):
                    session.driver.get(f"https://example.com/{name}/{i}")
                    seen[name].add(registry.current().session_id)
            return run

        runner = ParallelRunner(registry, config.with_overrides(thread_count=2))
        summary = runner.run({name: interactions(name) for name in seen})

        assert summary.is_success
        assert all(len(ids) == 1 for ids in seen.values())
        assert seen["worker-a"].isdisjoint(seen["worker-b"])
        for driver in session_factory.drivers:
            assert driver.get.call_count == 50
            driver.quit.assert_called_once()
        assert registry.active_count == 0

    def test_summary_counts(self, registry: SessionRegistry, config: ExecutionConfig) -> None:
        """Test passed and failed cases are aggregated."""

        def passes(session: Session) -> None:
            session.driver.get("https://example.com/")

        def fails(session: Session) -> None:
            raise AssertionError("title mismatch")

        completed = []
        runner = ParallelRunner(registry, config, on_case_complete=completed.append)
        summary = runner.run([
            TestCase("passes", passes),
            TestCase("also passes", passes),
            TestCase("fails", fails),
        ])

        assert summary.total == 3
        assert summary.passed == 2
        assert summary.failed == 1
        assert summary.retried == 0
        assert summary.success_rate == pytest.approx(66.666, rel=1e-3)
        assert not summary.is_success
        assert len(completed) == 3
        assert summary.finished_at is not None

        failed = summary.result_for("fails")
        assert failed is not None
        assert failed.status == CaseStatus.FAILED
        assert failed.error == "title mismatch"
        assert failed.error_type == "AssertionError"
        assert "AssertionError" in failed.traceback

    def test_empty_run(self, registry: SessionRegistry, config: ExecutionConfig) -> None:
        """Test running no cases gives an empty, successful summary."""
        summary = ParallelRunner(registry, config).run([])

        assert summary.total == 0
        assert summary.is_success
        assert summary.success_rate == 0.0

    def test_session_released_after_failure(self, registry: SessionRegistry, session_factory, config: ExecutionConfig) -> None:
        """Test a failing case still releases its session."""

        def fails(session: Session) -> None:
            raise RuntimeError("boom")

        ParallelRunner(registry, config).run({"fails": fails})

        [driver] = session_factory.drivers
        driver.quit.assert_called_once()
        assert registry.active_count == 0

    def test_failed_case_is_retried(self, registry: SessionRegistry, session_factory, config: ExecutionConfig) -> None:
        """Test a flaky case passes on retry with a fresh session."""
        attempts = []

        def flaky(session: Session) -> None:
            attempts.append(session.session_id)
            if len(attempts) == 1:
                raise AssertionError("flaky")

        runner = ParallelRunner(registry, config.with_overrides(retry_enabled=True, retry_count=2))
        summary = runner.run({"flaky": flaky})

        result = summary.result_for("flaky")
        assert result is not None
        assert result.status == CaseStatus.PASSED
        assert result.attempts == 2
        assert result.error is None
        assert summary.retried == 1
        assert len(set(attempts)) == 2
        assert len(session_factory.calls) == 2

    def test_retry_stops_at_count(self, registry: SessionRegistry, config: ExecutionConfig) -> None:
        """Test an always-failing case runs retry_count + 1 times."""
        calls = []

        def always_fails(session: Session) -> None:
            calls.append(1)
            raise AssertionError("broken")

        runner = ParallelRunner(registry, config.with_overrides(retry_enabled=True, retry_count=2))
        summary = runner.run({"broken": always_fails})

        assert len(calls) == 3
        assert summary.result_for("broken").attempts == 3
        assert summary.failed == 1

    def test_acquisition_failure_recorded(self, session_factory, config: ExecutionConfig) -> None:
        """Test a case whose session cannot be created is recorded as failed."""
        session_factory.error = SessionCreationError("grid unreachable")
        registry = SessionRegistry(factory=session_factory)
        body = MagicMock()

        summary = ParallelRunner(registry, config).run({"needs browser": body})

        body.assert_not_called()
        result = summary.result_for("needs browser")
        assert result is not None
        assert result.status == CaseStatus.FAILED
        assert result.error_type == "SessionCreationError"

    def test_failure_artifacts_labelled_with_case(self, session_factory, config: ExecutionConfig, temp_dir: Path) -> None:
        """Test failure artifacts are written under the failing case's name."""
        artifacts = ArtifactNotifier(report_dir=temp_dir)
        registry = SessionRegistry(factory=session_factory, notifiers=[artifacts])

        def fails(session: Session) -> None:
            raise AssertionError("cart is empty")

        ParallelRunner(registry, config, artifacts=artifacts).run({"checkout flow": fails})

        assert (temp_dir / "screenshots" / "checkout_flow").is_dir()
        assert (temp_dir / "pagesource" / "checkout_flow").is_dir()

    def test_screenshot_off_still_saves_page_source(
        self, session_factory, config: ExecutionConfig, temp_dir: Path, mock_notifier: MagicMock
    ) -> None:
        """Test turning off failure screenshots keeps the page source, console log and failure event."""
        config = config.with_overrides(screenshot_on_fail=False, report_dir=temp_dir)
        artifacts = ArtifactNotifier.from_config(config)
        registry = SessionRegistry(factory=session_factory, notifiers=[mock_notifier, artifacts])

        def fails(session: Session) -> None:
            raise AssertionError("nope")

        ParallelRunner(registry, config, artifacts=artifacts).run({"fails": fails})

        mock_notifier.on_action_failed.assert_called_once()
        assert (temp_dir / "pagesource" / "fails").is_dir()
        assert (temp_dir / "browser-logs" / "fails").is_dir()
        assert not (temp_dir / "screenshots").exists()
