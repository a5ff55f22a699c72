"""
Worker-keyed session registry.

Owns the mapping from worker identity to live session and enforces one
session per worker:
- acquire is idempotent per worker and lazily creates the session
- creation runs under a per-worker lock; the map lock is held only for
  map reads and writes, so workers never serialise on session creation
- release quits the driver best-effort and is a no-op without a session
- session() scopes an acquisition so release happens on every exit path
"""

from __future__ import annotations

import contextlib
import threading
from typing import Callable, Hashable, Iterable, Iterator

import structlog

from uiqa.config.execution import ExecutionConfig
from uiqa.errors import SessionCreationError, UIQAError
from uiqa.notify.base import LifecycleNotifier, NotifierGroup
from uiqa.session.backends import BackendResolver
from uiqa.session.capabilities import resolve_capabilities
from uiqa.session.models import Session, SessionTimeouts

logger = structlog.get_logger(__name__)

SessionFactory = Callable[[Hashable, ExecutionConfig], Session]
WorkerIdentity = Callable[[], Hashable]


def current_worker() -> Hashable:
    """Default worker identity: the calling thread."""
    return threading.get_ident()


class DriverSessionFactory:
    """Creates sessions by resolving capabilities and asking the backend for a driver."""

    def __init__(self, resolver: BackendResolver | None = None) -> None:
        self._resolver = resolver or BackendResolver()

    def __call__(self, worker: Hashable, config: ExecutionConfig) -> Session:
        capabilities = resolve_capabilities(
            config.browser,
            config.headless,
            config.capability_overrides,
        )
        driver = self._resolver.create_session(config.backend, capabilities, config)
        return Session(
            worker=worker,
            backend=config.backend,
            handle=driver,
            timeouts=SessionTimeouts.from_config(config),
            config=config,
            capabilities=capabilities,
        )


class SessionRegistry:
    """
    Registry of live sessions, one per worker.

    Usage:
        registry = SessionRegistry(notifiers=[LoggingNotifier()])
        with registry.session(config) as session:
            session.driver.get("https://example.com")

    Or with explicit lifecycle:
        session = registry.acquire(config)
        try:
            ...
        finally:
            registry.release()
    """

    def __init__(
        self,
        factory: SessionFactory | None = None,
        notifiers: Iterable[LifecycleNotifier] = (),
        worker_id: WorkerIdentity | None = None,
    ) -> None:
        """
        Initialize the registry.

        Args:
            factory: Creates a session for (worker, config); defaults to real drivers
            notifiers: Lifecycle notifiers invoked synchronously
            worker_id: Returns the calling worker's identity (defaults to thread id)
        """
        self._factory = factory or DriverSessionFactory()
        self._notifier = NotifierGroup(notifiers)
        self._worker_id = worker_id or current_worker

        self._sessions: dict[Hashable, Session] = {}
        self._init_locks: dict[Hashable, threading.Lock] = {}
        self._reported: dict[Hashable, BaseException] = {}
        self._lock = threading.Lock()

        self._log = logger.bind(component="session_registry")

        # Statistics
        self._stats = {
            "total_created": 0,
            "total_released": 0,
            "total_failed": 0,
        }

    @property
    def active_count(self) -> int:
        """Number of live sessions."""
        with self._lock:
            return len(self._sessions)

    @property
    def statistics(self) -> dict[str, int]:
        with self._lock:
            return {
                **self._stats,
                "active": len(self._sessions),
                "tracked_workers": len(self._init_locks),
            }

    @property
    def notifier(self) -> NotifierGroup:
        return self._notifier

    def add_notifier(self, notifier: LifecycleNotifier) -> None:
        self._notifier.add(notifier)

    def worker(self) -> Hashable:
        """Identity of the calling worker."""
        return self._worker_id()

    def acquire(self, config: ExecutionConfig) -> Session:
        """
        Get the calling worker's session, creating it on first use.

        A second call without an intervening release returns the same session
        and ignores ``config``; release first to reconfigure.

        Raises:
            ConfigurationError: If the configuration cannot produce a session
            UnsupportedBrowserError: If the browser is not supported
            SessionCreationError: If the backend fails to create the session
        """
        worker = self._worker_id()

        with self._lock:
            session = self._sessions.get(worker)
            if session is not None and not session.is_closed:
                return session
            init_lock = self._init_locks.setdefault(worker, threading.Lock())

        with init_lock:
            with self._lock:
                session = self._sessions.get(worker)
                if session is not None and not session.is_closed:
                    return session

            self._log.info(
                "Creating session",
                worker=worker,
                browser=config.browser,
                backend=config.backend,
                headless=config.headless,
            )
            try:
                session = self._factory(worker, config)
            except UIQAError as e:
                self._record_failure(worker, e)
                raise
            except Exception as e:
                self._record_failure(worker, e)
                raise SessionCreationError(f"Session creation failed: {e}") from e

            with self._lock:
                self._sessions[worker] = session
                self._stats["total_created"] += 1

        self._log.info("Session acquired", worker=worker, session_id=session.session_id)
        self._notifier.on_session_created(worker, config)
        return session

    def current(self) -> Session | None:
        """The calling worker's session, or None if it has none."""
        worker = self._worker_id()
        with self._lock:
            return self._sessions.get(worker)

    def release(self) -> None:
        """
        Tear down the calling worker's session.

        Termination is best-effort: driver errors are logged, never raised.
        Releasing without a session is a no-op.
        """
        worker = self._worker_id()
        with self._lock:
            session = self._sessions.pop(worker, None)
            self._reported.pop(worker, None)
            self._init_locks.pop(worker, None)

        if session is None:
            self._log.debug("No session to release", worker=worker)
            return

        self._close(worker, session)

    def release_all(self) -> None:
        """Tear down every live session, e.g. at suite finish."""
        with self._lock:
            sessions = list(self._sessions.items())
            self._sessions.clear()
            self._reported.clear()
            self._init_locks.clear()

        for worker, session in sessions:
            self._close(worker, session)

        if sessions:
            self._log.info("Released all sessions", count=len(sessions))

    @contextlib.contextmanager
    def session(self, config: ExecutionConfig) -> Iterator[Session]:
        """
        Scoped acquisition: the session is released on every exit path.

        The scope owns the worker's session; if the worker already held one,
        it is reused and still released when the scope exits.
        """
        session = self.acquire(config)
        try:
            yield session
        finally:
            self.release()

    def report_action_failed(self, error: BaseException) -> None:
        """
        Notify collaborators that an interaction failed on the calling worker.

        A snapshot of the worker's session is captured on demand and handed to
        the notifiers; it is not persisted here. Reporting the same error twice
        on a worker (e.g. from a page object and again from the test runner) is
        a no-op.
        """
        worker = self._worker_id()
        with self._lock:
            if self._reported.get(worker) is error:
                return
            self._reported[worker] = error

        session = self.current()
        snapshot = None
        if session is not None and not session.is_closed:
            snapshot = session.snapshot()

        self._log.debug(
            "Reporting action failure",
            worker=worker,
            error_type=type(error).__name__,
            has_snapshot=snapshot is not None,
        )
        self._notifier.on_action_failed(worker, error, snapshot)

    def _close(self, worker: Hashable, session: Session) -> None:
        self._log.info("Releasing session", worker=worker, session_id=session.session_id)
        session.close()
        with self._lock:
            self._stats["total_released"] += 1
        self._notifier.on_session_closed(worker)

    def _record_failure(self, worker: Hashable, error: Exception) -> None:
        with self._lock:
            self._stats["total_failed"] += 1
            self._init_locks.pop(worker, None)
        self._log.error(
            "Session creation failed",
            worker=worker,
            error_type=type(error).__name__,
            error=str(error),
        )


# Process-wide default registry, initialised on first use and torn down at suite finish
_default_registry: SessionRegistry | None = None
_default_lock = threading.Lock()


def init_registry(
    factory: SessionFactory | None = None,
    notifiers: Iterable[LifecycleNotifier] = (),
    worker_id: WorkerIdentity | None = None,
) -> SessionRegistry:
    """
    Initialise the process-wide registry.

    Returns the existing registry if one is already initialised.
    """
    global _default_registry

    with _default_lock:
        if _default_registry is None:
            _default_registry = SessionRegistry(
                factory=factory,
                notifiers=notifiers,
                worker_id=worker_id,
            )
            logger.info("Default session registry initialized")
        return _default_registry


def get_registry() -> SessionRegistry:
    """Get the process-wide registry, initialising it with defaults on first use."""
    registry = _default_registry
    if registry is not None:
        return registry
    return init_registry()


def shutdown_registry() -> None:
    """Release every session of the process-wide registry and discard it."""
    global _default_registry

    with _default_lock:
        registry = _default_registry
        _default_registry = None

    if registry is not None:
        registry.release_all()
        logger.info("Default session registry shut down", stats=registry.statistics)
