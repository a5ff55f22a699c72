"""
Unit tests for the session registry.

Tests cover:
- Idempotent, per-worker acquisition and isolation across threads
- Best-effort, idempotent release and scoped sessions
- Lifecycle notification and failure reporting
- The process-wide default registry
"""

from __future__ import annotations

import threading
from typing import Hashable, Iterator
from unittest.mock import MagicMock

import pytest
from selenium.common.exceptions import WebDriverException

from uiqa.config.execution import ExecutionConfig
from uiqa.errors import (
    ConfigurationError,
    SessionAlreadyClosedError,
    SessionCreationError,
    TransientInteractionError,
)
from uiqa.session.models import Session, SessionState
from uiqa.session.registry import (
    SessionRegistry,
    get_registry,
    init_registry,
    shutdown_registry,
)


class TestAcquire:
    """Tests for acquiring sessions."""

    def test_acquire_is_idempotent(self, registry: SessionRegistry, session_factory, config: ExecutionConfig) -> None:
        """Test a second acquire returns the same session without creating another."""
        first = registry.acquire(config)
        second = registry.acquire(config)

        assert first is second
        assert len(session_factory.calls) == 1
        assert registry.active_count == 1

    def test_acquire_ignores_new_config_while_active(
        self, registry: SessionRegistry, config: ExecutionConfig
    ) -> None:
        """Test a different config does not replace a live session."""
        first = registry.acquire(config)
        second = registry.acquire(config.with_overrides(headless=True))

        assert second is first
        assert second.config.headless is False

    def test_current_reflects_acquisition(self, registry: SessionRegistry, config: ExecutionConfig) -> None:
        """Test current() is None until a session is acquired."""
        assert registry.current() is None

        session = registry.acquire(config)

        assert registry.current() is session

    def test_workers_get_distinct_sessions(self, registry: SessionRegistry, config: ExecutionConfig) -> None:
        """Test concurrent workers each get their own session."""
        workers = 4
        barrier = threading.Barrier(workers)
        acquired: dict[int, tuple[Session, Session]] = {}

        def work(n: int) -> None:
            barrier.wait()
            acquired[n] = (registry.acquire(config), registry.acquire(config))

        threads = [threading.Thread(target=work, args=(n,)) for n in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert len(acquired) == workers
        assert all(first is second for first, second in acquired.values())
        assert len({id(first) for first, _ in acquired.values()}) == workers
        assert len({first.worker for first, _ in acquired.values()}) == workers
        assert registry.active_count == workers

    def test_creation_does_not_block_other_workers(self, session_factory, config: ExecutionConfig) -> None:
        """Test a slow session creation on one worker does not delay another."""
        slow_started = threading.Event()
        release_slow = threading.Event()

        def factory(worker: Hashable, cfg: ExecutionConfig) -> Session:
            if threading.current_thread().name == "slow-worker":
                slow_started.set()
                release_slow.wait(timeout=10)
            return session_factory(worker, cfg)

        registry = SessionRegistry(factory=factory)
        slow = threading.Thread(target=registry.acquire, args=(config,), name="slow-worker")
        slow.start()
        try:
            assert slow_started.wait(timeout=10)

            session = registry.acquire(config)

            assert session is not None
            assert not release_slow.is_set()
        finally:
            release_slow.set()
            slow.join(timeout=10)
            registry.release_all()

    def test_custom_worker_identity(self, session_factory, config: ExecutionConfig) -> None:
        """Test the worker identity function is pluggable."""
        current = {"worker": "a"}
        registry = SessionRegistry(factory=session_factory, worker_id=lambda: current["worker"])

        session_a = registry.acquire(config)
        current["worker"] = "b"
        session_b = registry.acquire(config)

        assert session_a is not session_b
        assert session_a.worker == "a"
        assert session_b.worker == "b"
        registry.release_all()

    def test_released_workers_are_forgotten(self, session_factory, config: ExecutionConfig) -> None:
        """Test per-worker bookkeeping does not grow with short-lived worker keys."""
        current = {"worker": "test-0"}
        registry = SessionRegistry(factory=session_factory, worker_id=lambda: current["worker"])

        for i in range(20):
            current["worker"] = f"test-{i}"
            registry.acquire(config)
            registry.release()

        assert registry.statistics["tracked_workers"] == 0

        registry.acquire(config)
        assert registry.statistics["tracked_workers"] == 1
        registry.release_all()
        assert registry.statistics["tracked_workers"] == 0

    def test_configuration_error_propagates_unchanged(self, session_factory, config: ExecutionConfig) -> None:
        """Test registry errors raised by the factory are not wrapped."""
        session_factory.error = ConfigurationError("remote hub URL is not configured")
        registry = SessionRegistry(factory=session_factory)

        with pytest.raises(ConfigurationError, match="remote hub URL"):
            registry.acquire(config)

        assert registry.current() is None
        assert registry.statistics["total_failed"] == 1

    def test_unexpected_error_wrapped(self, session_factory, config: ExecutionConfig) -> None:
        """Test other factory errors become SessionCreationError."""
        session_factory.error = RuntimeError("boom")
        registry = SessionRegistry(factory=session_factory)

        with pytest.raises(SessionCreationError, match="boom"):
            registry.acquire(config)

    def test_failed_acquire_can_be_retried(self, session_factory, config: ExecutionConfig) -> None:
        """Test a worker can acquire again after a failed creation."""
        session_factory.error = SessionCreationError("hub down")
        registry = SessionRegistry(factory=session_factory)
        with pytest.raises(SessionCreationError):
            registry.acquire(config)

        session_factory.error = None
        session = registry.acquire(config)

        assert session.state == SessionState.ACTIVE
        registry.release_all()


class TestRelease:
    """Tests for releasing sessions."""

    def test_release_quits_driver(self, registry: SessionRegistry, config: ExecutionConfig) -> None:
        """Test release quits the driver and clears the worker's slot."""
        session = registry.acquire(config)

        registry.release()

        session.handle.quit.assert_called_once()
        assert session.state == SessionState.CLOSED
        assert registry.current() is None
        assert registry.active_count == 0

    def test_release_is_idempotent(self, registry: SessionRegistry, config: ExecutionConfig) -> None:
        """Test releasing twice quits the driver only once."""
        session = registry.acquire(config)

        registry.release()
        registry.release()

        session.handle.quit.assert_called_once()

    def test_release_without_session(self, registry: SessionRegistry) -> None:
        """Test releasing with nothing acquired is a no-op."""
        registry.release()

        assert registry.statistics["total_released"] == 0

    def test_teardown_errors_swallowed(self, registry: SessionRegistry, config: ExecutionConfig) -> None:
        """Test a driver failing to quit does not make release raise."""
        session = registry.acquire(config)
        session.handle.quit.side_effect = WebDriverException("session already gone")

        registry.release()

        assert session.is_closed
        assert registry.current() is None

    def test_new_session_after_release(self, registry: SessionRegistry, session_factory, config: ExecutionConfig) -> None:
        """Test acquire after release creates a fresh session."""
        first = registry.acquire(config)
        registry.release()
        second = registry.acquire(config)

        assert second is not first
        assert second.session_id != first.session_id
        assert len(session_factory.calls) == 2

    def test_closed_session_rejects_use(self, registry: SessionRegistry, config: ExecutionConfig) -> None:
        """Test a released session's driver cannot be used."""
        session = registry.acquire(config)
        registry.release()

        with pytest.raises(SessionAlreadyClosedError):
            _ = session.driver
        with pytest.raises(SessionAlreadyClosedError):
            session.snapshot()

    def test_release_only_affects_calling_worker(self, registry: SessionRegistry, config: ExecutionConfig) -> None:
        """Test one worker releasing leaves another worker's session alive."""
        other: dict[str, Session] = {}
        acquired = threading.Event()
        done = threading.Event()

        def other_worker() -> None:
            other["session"] = registry.acquire(config)
            acquired.set()
            done.wait(timeout=10)
            registry.release()

        thread = threading.Thread(target=other_worker)
        thread.start()
        try:
            assert acquired.wait(timeout=10)
            mine = registry.acquire(config)
            registry.release()

            assert mine.is_closed
            assert not other["session"].is_closed
        finally:
            done.set()
            thread.join(timeout=10)

        assert other["session"].is_closed

    def test_release_all(self, registry: SessionRegistry, config: ExecutionConfig) -> None:
        """Test release_all tears down every worker's session."""
        sessions: list[Session] = []
        threads = [
            threading.Thread(target=lambda: sessions.append(registry.acquire(config)))
            for _ in range(3)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        registry.release_all()

        assert registry.active_count == 0
        assert all(s.is_closed for s in sessions)
        assert registry.statistics["total_released"] == 3


class TestScopedSession:
    """Tests for the session() context manager."""

    def test_released_on_normal_exit(self, registry: SessionRegistry, config: ExecutionConfig) -> None:
        """Test the scoped session is released after the block."""
        with registry.session(config) as session:
            assert session.state == SessionState.ACTIVE

        assert session.is_closed
        assert registry.current() is None

    def test_released_on_exception(self, registry: SessionRegistry, config: ExecutionConfig) -> None:
        """Test the scoped session is released when the block raises."""
        with pytest.raises(ValueError, match="assertion in test"):
            with registry.session(config) as session:
                raise ValueError("assertion in test")

        assert session.is_closed
        session.handle.quit.assert_called_once()
        assert registry.active_count == 0


class TestNotification:
    """Tests for lifecycle notification."""

    def test_created_and_closed_events(self, session_factory, mock_notifier: MagicMock, config: ExecutionConfig) -> None:
        """Test notifiers hear about creation and release."""
        registry = SessionRegistry(factory=session_factory, notifiers=[mock_notifier])

        session = registry.acquire(config)
        registry.acquire(config)
        registry.release()

        mock_notifier.on_session_created.assert_called_once_with(session.worker, config)
        mock_notifier.on_session_closed.assert_called_once_with(session.worker)

    def test_failing_notifier_does_not_block_others(
        self, session_factory, mock_notifier: MagicMock, config: ExecutionConfig
    ) -> None:
        """Test a notifier raising is logged and delivery continues."""
        broken = MagicMock()
        broken.on_session_created.side_effect = RuntimeError("notifier down")
        registry = SessionRegistry(factory=session_factory, notifiers=[broken, mock_notifier])

        session = registry.acquire(config)

        assert session.state == SessionState.ACTIVE
        mock_notifier.on_session_created.assert_called_once()
        registry.release_all()

    def test_report_action_failed_sends_snapshot(
        self, session_factory, mock_notifier: MagicMock, config: ExecutionConfig
    ) -> None:
        """Test a failure report carries a snapshot of the worker's session."""
        registry = SessionRegistry(factory=session_factory, notifiers=[mock_notifier])
        session = registry.acquire(config)
        error = TransientInteractionError("click intercepted")

        registry.report_action_failed(error)

        worker, reported, snapshot = mock_notifier.on_action_failed.call_args.args
        assert worker == session.worker
        assert reported is error
        assert snapshot.url == "https://example.com/"
        assert snapshot.screenshot == b"\x89PNG fake"
        assert snapshot.page_source.startswith("<html>")
        assert len(snapshot.console_log) == 1
        assert "Uncaught TypeError" in snapshot.console_log[0]
        registry.release_all()

    def test_report_same_error_once(self, session_factory, mock_notifier: MagicMock, config: ExecutionConfig) -> None:
        """Test reporting the same error object twice notifies once."""
        registry = SessionRegistry(factory=session_factory, notifiers=[mock_notifier])
        registry.acquire(config)
        error = TransientInteractionError("stale")

        registry.report_action_failed(error)
        registry.report_action_failed(error)
        registry.report_action_failed(TransientInteractionError("another"))

        assert mock_notifier.on_action_failed.call_count == 2
        registry.release_all()

    def test_report_without_session(self, session_factory, mock_notifier: MagicMock) -> None:
        """Test a failure report without a session has no snapshot."""
        registry = SessionRegistry(factory=session_factory, notifiers=[mock_notifier])

        registry.report_action_failed(RuntimeError("no browser"))

        _, _, snapshot = mock_notifier.on_action_failed.call_args.args
        assert snapshot is None

    def test_snapshot_capture_is_best_effort(self, session_factory, mock_notifier: MagicMock, config: ExecutionConfig) -> None:
        """Test unsupported capture parts are left empty instead of failing."""
        registry = SessionRegistry(factory=session_factory, notifiers=[mock_notifier])
        session = registry.acquire(config)
        session.handle.get_log.side_effect = WebDriverException("log type not supported")
        session.handle.get_screenshot_as_png.side_effect = WebDriverException("no screen")

        registry.report_action_failed(RuntimeError("failed"))

        _, _, snapshot = mock_notifier.on_action_failed.call_args.args
        assert snapshot.screenshot is None
        assert snapshot.console_log == ()
        assert snapshot.page_source is not None
        registry.release_all()


class TestDefaultRegistry:
    """Tests for the process-wide registry."""

    @pytest.fixture(autouse=True)
    def _reset(self) -> Iterator[None]:
        shutdown_registry()
        yield
        shutdown_registry()

    def test_get_registry_initialises_once(self) -> None:
        """Test get_registry returns the same instance every time."""
        assert get_registry() is get_registry()

    def test_init_registry_keeps_existing(self, session_factory) -> None:
        """Test a second init returns the registry already in place."""
        first = init_registry(factory=session_factory)

        assert init_registry() is first
        assert get_registry() is first

    def test_shutdown_releases_sessions(self, session_factory, config: ExecutionConfig) -> None:
        """Test shutdown releases every live session and discards the registry."""
        registry = init_registry(factory=session_factory)
        session = registry.acquire(config)

        shutdown_registry()

        assert session.is_closed
        assert get_registry() is not registry
