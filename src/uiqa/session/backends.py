"""
Backend resolution for browser sessions.

Creates a live Selenium driver on the configured backend:
- local: a driver process for the browser, binaries provisioned by webdriver-manager
- grid: a remote session against the Selenium Grid hub
- cloud: a remote session against a cloud provider hub with credentials
"""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING, Callable

import structlog
from selenium import webdriver
from selenium.common.exceptions import WebDriverException

from uiqa.config.execution import BackendKind, BrowserKind, ExecutionConfig
from uiqa.errors import ConfigurationError, SessionCreationError

if TYPE_CHECKING:
    from selenium.webdriver.common.options import ArgOptions
    from selenium.webdriver.remote.webdriver import WebDriver

    from uiqa.session.capabilities import CapabilitySet

logger = structlog.get_logger(__name__)

LocalDriverFactory = Callable[[BrowserKind, "ArgOptions"], "WebDriver"]
RemoteDriverFactory = Callable[[str, "ArgOptions"], "WebDriver"]


def create_local_driver(browser: BrowserKind, options: ArgOptions) -> WebDriver:
    """
    Start a local driver process for the browser.

    Chrome, Firefox and Edge driver binaries are located or downloaded by
    webdriver-manager; SafariDriver ships with Safari on macOS.
    """
    match browser:
        case BrowserKind.CHROME:
            from selenium.webdriver.chrome.service import Service as ChromeService
            from webdriver_manager.chrome import ChromeDriverManager

            service = ChromeService(ChromeDriverManager().install())
            return webdriver.Chrome(service=service, options=options)
        case BrowserKind.FIREFOX:
            from selenium.webdriver.firefox.service import Service as FirefoxService
            from webdriver_manager.firefox import GeckoDriverManager

            service = FirefoxService(GeckoDriverManager().install())
            return webdriver.Firefox(service=service, options=options)
        case BrowserKind.EDGE:
            from selenium.webdriver.edge.service import Service as EdgeService
            from webdriver_manager.microsoft import EdgeChromiumDriverManager

            service = EdgeService(EdgeChromiumDriverManager().install())
            return webdriver.Edge(service=service, options=options)
        case BrowserKind.SAFARI:
            return webdriver.Safari(options=options)


def create_remote_driver(hub_url: str, options: ArgOptions) -> WebDriver:
    """Open a remote session against a hub."""
    return webdriver.Remote(command_executor=hub_url, options=options)


class BackendResolver:
    """
    Creates live driver sessions on a backend.

    Driver construction is delegated to injectable factories so that other
    backends, or fakes in tests, can be substituted.

    Usage:
        resolver = BackendResolver()
        caps = resolve_capabilities(config.browser, config.headless, config.capability_overrides)
        driver = resolver.create_session(config.backend, caps, config)
    """

    def __init__(
        self,
        local_factory: LocalDriverFactory | None = None,
        remote_factory: RemoteDriverFactory | None = None,
    ) -> None:
        self._local_factory = local_factory or create_local_driver
        self._remote_factory = remote_factory or create_remote_driver
        self._log = logger.bind(component="backend_resolver")

    def create_session(
        self,
        backend: BackendKind,
        capabilities: CapabilitySet,
        config: ExecutionConfig,
    ) -> WebDriver:
        """
        Create a driver on the given backend and apply session timeouts.

        Args:
            backend: Backend to create the session on
            capabilities: Resolved capabilities for the browser
            config: Execution configuration supplying hub URL, credentials and timeouts

        Returns:
            Live Selenium driver

        Raises:
            ConfigurationError: If a remote backend has no hub URL (checked before
                any connection attempt)
            SessionCreationError: If the backend is unreachable or rejects the session
        """
        self._log.info(
            "Initializing driver session",
            backend=backend,
            browser=capabilities.browser,
            headless=capabilities.headless,
        )

        match backend:
            case BackendKind.LOCAL:
                driver = self._create_local(capabilities)
            case BackendKind.GRID:
                driver = self._create_remote(config.grid_url, capabilities)
            case BackendKind.CLOUD:
                capabilities.with_credentials(
                    config.credentials.user,
                    config.credentials.key.get_secret_value(),
                )
                driver = self._create_remote(config.cloud_url, capabilities)
            case _:
                raise ConfigurationError(f"Unknown backend: {backend}")

        self._apply_window_and_timeouts(driver, config)
        self._log_session_details(driver, capabilities)
        return driver

    def _create_local(self, capabilities: CapabilitySet) -> WebDriver:
        options = capabilities.to_options()
        try:
            return self._local_factory(capabilities.browser, options)
        except (WebDriverException, OSError, ValueError) as e:
            raise SessionCreationError(
                f"Could not start local {capabilities.browser} driver: {e}"
            ) from e

    def _create_remote(self, hub_url: str, capabilities: CapabilitySet) -> WebDriver:
        if not hub_url:
            raise ConfigurationError("remote hub URL is not configured")

        options = capabilities.to_options()
        self._log.info("Creating remote driver", hub_url=hub_url)
        try:
            return self._remote_factory(hub_url, options)
        except (WebDriverException, OSError) as e:
            raise SessionCreationError(
                f"Could not create remote session at {hub_url}: {e}"
            ) from e

    def _apply_window_and_timeouts(self, driver: WebDriver, config: ExecutionConfig) -> None:
        try:
            driver.maximize_window()
        except Exception as e:
            self._log.warning(
                "Could not maximize window (might be headless/non-GUI)",
                error=str(e),
            )

        try:
            driver.implicitly_wait(config.implicit_wait_seconds)
            driver.set_page_load_timeout(config.effective_page_load_timeout)
        except WebDriverException as e:
            with contextlib.suppress(Exception):
                driver.quit()
            raise SessionCreationError(f"Could not apply session timeouts: {e}") from e

    def _log_session_details(self, driver: WebDriver, capabilities: CapabilitySet) -> None:
        try:
            session_id = getattr(driver, "session_id", None) or "local-driver"
            self._log.info(
                "Driver session initialized",
                session_id=str(session_id),
                **capabilities.describe(),
            )
        except Exception as e:
            self._log.debug("Could not log session details", error=str(e))
