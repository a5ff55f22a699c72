"""
Capability resolution for browser sessions.

Builds a backend-agnostic CapabilitySet for a browser kind and converts it
into the Selenium options object the chosen backend expects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

import structlog
from selenium.webdriver import ChromeOptions, EdgeOptions, FirefoxOptions, SafariOptions
from selenium.webdriver.common.options import ArgOptions

from uiqa.config.execution import BrowserKind

logger = structlog.get_logger(__name__)

# Generic cloud credential keys, accepted by the common cloud providers
CLOUD_USER_CAPABILITY = "username"
CLOUD_KEY_CAPABILITY = "accessKey"

CHROME_DEFAULT_ARGUMENTS: tuple[str, ...] = (
    "--disable-gpu",
    "--window-size=1920,1080",
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--disable-infobars",
    "--remote-allow-origins=*",
)

EDGE_DEFAULT_ARGUMENTS: tuple[str, ...] = ("--window-size=1920,1080",)


@dataclass
class CapabilitySet:
    """
    Desired session configuration for one browser.

    Generic capabilities and passthrough overrides are kept apart so that
    overrides can always be merged last.
    """

    browser: BrowserKind
    """Browser the capabilities target."""

    headless: bool = False
    """Whether a headless argument was applied."""

    arguments: list[str] = field(default_factory=list)
    """Browser command-line arguments."""

    page_load_strategy: str | None = None
    """Selenium page-load strategy, if set."""

    capabilities: dict[str, Any] = field(default_factory=dict)
    """Capabilities derived by the builder (e.g. cloud credentials)."""

    overrides: dict[str, str] = field(default_factory=dict)
    """Passthrough capabilities from configuration."""

    def with_capability(self, key: str, value: Any) -> CapabilitySet:
        """Set a generic capability and return self."""
        self.capabilities[key] = value
        return self

    def with_credentials(self, user: str, key: str) -> CapabilitySet:
        """Merge generic cloud credentials; empty values are skipped."""
        if user:
            self.capabilities[CLOUD_USER_CAPABILITY] = user
        if key:
            self.capabilities[CLOUD_KEY_CAPABILITY] = key
        return self

    def effective_capabilities(self) -> dict[str, Any]:
        """All capabilities with override values winning on key collisions."""
        return {**self.capabilities, **self.overrides}

    def to_options(self) -> ArgOptions:
        """Build the Selenium options object for this capability set."""
        match self.browser:
            case BrowserKind.CHROME:
                options: ArgOptions = ChromeOptions()
            case BrowserKind.FIREFOX:
                options = FirefoxOptions()
            case BrowserKind.EDGE:
                options = EdgeOptions()
            case BrowserKind.SAFARI:
                options = SafariOptions()

        if self.page_load_strategy:
            options.page_load_strategy = self.page_load_strategy
        for argument in self.arguments:
            options.add_argument(argument)
        for key, value in self.effective_capabilities().items():
            options.set_capability(key, value)
        return options

    def describe(self) -> dict[str, Any]:
        """Loggable summary with credential values masked."""
        caps = self.effective_capabilities()
        if CLOUD_KEY_CAPABILITY in caps:
            caps[CLOUD_KEY_CAPABILITY] = "****"
        return {
            "browser": str(self.browser),
            "headless": self.headless,
            "arguments": list(self.arguments),
            "capabilities": caps,
        }


def resolve_capabilities(
    browser: BrowserKind | str,
    headless: bool,
    overrides: Mapping[str, str] | None = None,
) -> CapabilitySet:
    """
    Resolve the capability set for a browser.

    Args:
        browser: Browser kind or name
        headless: Whether the session should run without a visible window
        overrides: Passthrough capabilities, merged last

    Returns:
        CapabilitySet with browser defaults applied

    Raises:
        UnsupportedBrowserError: If the browser is not supported
    """
    kind = BrowserKind.parse(browser)
    caps = CapabilitySet(browser=kind, overrides=dict(overrides or {}))

    match kind:
        case BrowserKind.CHROME:
            caps.page_load_strategy = "normal"
            if headless:
                caps.arguments.append("--headless=new")
                caps.headless = True
            caps.arguments.extend(CHROME_DEFAULT_ARGUMENTS)
        case BrowserKind.FIREFOX:
            caps.page_load_strategy = "normal"
            if headless:
                caps.arguments.append("--headless")
                caps.headless = True
        case BrowserKind.EDGE:
            if headless:
                caps.arguments.append("--headless=new")
                caps.headless = True
            caps.arguments.extend(EDGE_DEFAULT_ARGUMENTS)
        case BrowserKind.SAFARI:
            if headless:
                logger.warning("Safari does not support headless mode, ignoring flag")

    logger.debug("Capabilities resolved", **caps.describe())
    return caps
