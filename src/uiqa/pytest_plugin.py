"""
pytest integration.

Registered through the ``pytest11`` entry point, so any project with uiqa
installed gets these fixtures:

- ``uiqa_config``: the resolved ExecutionConfig (session scope)
- ``uiqa_registry``: the session registry, released at the end of the run
- ``browser_session``: a fresh browser session for one test

Failed tests that use ``browser_session`` are reported to the registry so
failure artifacts are captured before the session is released.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterator

import pytest
import structlog
from structlog.contextvars import bound_contextvars

from uiqa.config.execution import ExecutionConfig
from uiqa.config.loader import load_execution_config
from uiqa.logging_config import configure_logging
from uiqa.notify.notifiers import ArtifactNotifier, LoggingNotifier
from uiqa.session.registry import SessionRegistry

if TYPE_CHECKING:
    from uiqa.session.models import Session

logger = structlog.get_logger(__name__)

ARTIFACTS_KEY = pytest.StashKey[ArtifactNotifier]()


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("uiqa", "browser session options")
    group.addoption("--uiqa-config", default=None, help="Path to the uiqa YAML config file")
    group.addoption("--uiqa-env", default=None, help="Environment overlay to apply (config-<env>.yaml)")
    group.addoption(
        "--uiqa-browser",
        default=None,
        help="Browser to run (chrome, firefox, edge, safari)",
    )
    group.addoption(
        "--uiqa-headless",
        action="store_true",
        default=None,
        help="Run the browser headless",
    )
    group.addoption("--uiqa-log-json", action="store_true", default=False, help="Render logs as JSON lines")


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "uiqa: test drives a browser session")
    configure_logging(
        verbose=config.getoption("verbose", 0) > 0,
        json_output=config.getoption("uiqa_log_json", False),
    )


def option_overrides(config: pytest.Config) -> dict[str, Any]:
    """Config overrides taken from command-line options."""
    overrides: dict[str, Any] = {}
    browser = config.getoption("uiqa_browser", None)
    if browser:
        overrides["browser"] = browser
    if config.getoption("uiqa_headless", None):
        overrides["headless"] = "true"
    return overrides


@pytest.fixture(scope="session")
def uiqa_config(pytestconfig: pytest.Config) -> ExecutionConfig:
    """Execution configuration for the run."""
    return load_execution_config(
        config_file=pytestconfig.getoption("uiqa_config", None),
        env=pytestconfig.getoption("uiqa_env", None),
        overrides=option_overrides(pytestconfig),
    )


@pytest.fixture(scope="session")
def uiqa_registry(pytestconfig: pytest.Config, uiqa_config: ExecutionConfig) -> Iterator[SessionRegistry]:
    """Session registry shared by the run; every session is released at the end."""
    artifacts = ArtifactNotifier.from_config(uiqa_config)
    pytestconfig.stash[ARTIFACTS_KEY] = artifacts
    registry = SessionRegistry(notifiers=[LoggingNotifier(), artifacts])
    yield registry
    registry.release_all()
    logger.info("Session registry shut down", stats=registry.statistics)


@pytest.fixture
def browser_session(
    request: pytest.FixtureRequest,
    uiqa_registry: SessionRegistry,
    uiqa_config: ExecutionConfig,
) -> Iterator[Session]:
    """A browser session owned by the current test and released after it."""
    artifacts = request.config.stash.get(ARTIFACTS_KEY, None)
    if artifacts is not None:
        artifacts.label(uiqa_registry.worker(), request.node.nodeid)
    with uiqa_registry.session(uiqa_config) as session:
        yield session


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_protocol(item: pytest.Item, nextitem: pytest.Item | None) -> Iterator[None]:
    with bound_contextvars(test=item.nodeid):
        yield


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item: pytest.Item, call: pytest.CallInfo[None]) -> Iterator[None]:
    outcome = yield
    report = outcome.get_result()
    if report.when != "call" or "browser_session" not in getattr(item, "fixturenames", ()):
        return

    registry: SessionRegistry | None = getattr(item, "funcargs", {}).get("uiqa_registry")
    if registry is None:
        return

    uiqa_config: ExecutionConfig = item.funcargs["uiqa_config"]
    if report.failed and call.excinfo is not None:
        registry.report_action_failed(call.excinfo.value)
    elif report.passed and uiqa_config.screenshot_on_pass:
        _save_pass_snapshot(item, registry)


def _save_pass_snapshot(item: pytest.Item, registry: SessionRegistry) -> None:
    artifacts = item.config.stash.get(ARTIFACTS_KEY, None)
    session = registry.current()
    if artifacts is None or session is None or session.is_closed:
        return
    artifacts.save_snapshot(registry.worker(), session.snapshot(), screenshot=True)
