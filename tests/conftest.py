"""Pytest fixtures for uiqa tests."""

from __future__ import annotations

import itertools
import tempfile
import threading
from pathlib import Path
from typing import Callable, Generator, Hashable
from unittest.mock import MagicMock

import pytest

from uiqa.config.execution import ExecutionConfig
from uiqa.session.models import Session, SessionTimeouts
from uiqa.session.registry import SessionRegistry

_session_ids = itertools.count(1)


def make_driver(session_id: str | None = None) -> MagicMock:
    """A MagicMock standing in for a Selenium WebDriver."""
    driver = MagicMock(name="WebDriver")
    driver.session_id = session_id or f"session-{next(_session_ids)}"
    driver.current_url = "https://example.com/"
    driver.title = "Example"
    driver.page_source = "<html><body>Example</body></html>"
    driver.get_screenshot_as_png.return_value = b"\x89PNG fake"
    driver.get_log.return_value = [
        {"timestamp": 1700000000000, "level": "SEVERE", "message": "Uncaught TypeError"},
    ]
    driver.execute_script.return_value = "complete"
    return driver


class FakeSessionFactory:
    """Session factory that builds sessions around mock drivers and records calls."""

    def __init__(self) -> None:
        self.calls: list[tuple[Hashable, ExecutionConfig]] = []
        self.drivers: list[MagicMock] = []
        self.error: Exception | None = None
        self._lock = threading.Lock()

    def __call__(self, worker: Hashable, config: ExecutionConfig) -> Session:
        with self._lock:
            self.calls.append((worker, config))
            if self.error is not None:
                raise self.error
            driver = make_driver()
            self.drivers.append(driver)
        return Session(
            worker=worker,
            backend=config.backend,
            handle=driver,
            timeouts=SessionTimeouts.from_config(config),
            config=config,
        )


class FakeClock:
    """Manual clock; sleeping advances time instantly."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test artifacts."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def config(temp_dir: Path) -> ExecutionConfig:
    """Default execution config writing reports to a temp directory."""
    return ExecutionConfig(report_dir=temp_dir / "reports")


@pytest.fixture
def session_factory() -> FakeSessionFactory:
    return FakeSessionFactory()


@pytest.fixture
def registry(session_factory: FakeSessionFactory) -> Generator[SessionRegistry, None, None]:
    """Registry backed by mock drivers; every session is released afterwards."""
    registry = SessionRegistry(factory=session_factory)
    yield registry
    registry.release_all()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mock_notifier() -> MagicMock:
    """A lifecycle notifier recording every call."""
    notifier = MagicMock()
    notifier.on_session_created = MagicMock()
    notifier.on_action_failed = MagicMock()
    notifier.on_session_closed = MagicMock()
    return notifier


@pytest.fixture
def driver() -> MagicMock:
    """A single mock WebDriver."""
    return make_driver()


@pytest.fixture
def driver_factory() -> Callable[..., MagicMock]:
    """Callable producing fresh mock WebDrivers."""
    return make_driver
