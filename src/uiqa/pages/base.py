"""
Page-object base class.

Page objects extend BasePage to get logged navigation, waits and
interactions that retry transient browser errors. Waits run on the
WaitEngine and interactions on the InteractionProxy, both configured from
the session's ExecutionConfig.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, TypeVar

import structlog
from selenium.webdriver.common.action_chains import ActionChains

from uiqa.interaction.conditions import (
    Locator,
    element_interactable,
    element_visible,
    page_ready,
)
from uiqa.interaction.retry import InteractionProxy, RetryPolicy
from uiqa.interaction.waits import WaitEngine, WaitSpec

if TYPE_CHECKING:
    from selenium.webdriver.remote.webdriver import WebDriver
    from selenium.webdriver.remote.webelement import WebElement

    from uiqa.session.models import Session

logger = structlog.get_logger(__name__)

T = TypeVar("T")

FailureHook = Callable[[BaseException], None]

SCROLL_INTO_VIEW_SCRIPT = "arguments[0].scrollIntoView({block:'center',inline:'center'});"
JS_CLICK_SCRIPT = "arguments[0].click();"


class BasePage:
    """
    Common Selenium utilities for page objects.

    A terminal failure in any public wait or interaction is passed to the
    failure hook (normally ``SessionRegistry.report_action_failed``) and then
    re-raised unchanged.

    Usage:
        class LoginPage(BasePage):
            USERNAME = (By.ID, "username")

            def login(self, user: str) -> None:
                self.clear_and_type(self.USERNAME, user)

        page = LoginPage(session, on_failure=registry.report_action_failed)
        page.open_base_url()
    """

    def __init__(
        self,
        session: Session,
        on_failure: FailureHook | None = None,
        wait_engine: WaitEngine | None = None,
        proxy: InteractionProxy | None = None,
    ) -> None:
        self._session = session
        self._config = session.config
        self._on_failure = on_failure
        self._waits = wait_engine or WaitEngine()
        self._proxy = proxy or InteractionProxy(RetryPolicy.from_config(session.config))
        self._log = logger.bind(component="page", page=type(self).__name__)

    @property
    def session(self) -> Session:
        return self._session

    @property
    def driver(self) -> WebDriver:
        return self._session.driver

    # Navigation

    def open(self, url: str) -> None:
        """Navigate to ``url`` and wait for the document to finish loading."""
        self._log.info("Navigating to URL", url=url)
        self._guarded(lambda: self.driver.get(url))
        self.wait_for_page_to_be_stable()

    def open_base_url(self) -> None:
        self.open(self._config.base_url)

    def title(self) -> str:
        title = self.driver.title
        self._log.debug("Current page title", title=title)
        return title

    def current_url(self) -> str:
        url = self.driver.current_url
        self._log.debug("Current page URL", url=url)
        return url

    def wait_for_page_to_be_stable(self) -> None:
        self._log.debug("Waiting for page to be stable")
        self._guarded(lambda: self._wait(page_ready(self.driver), "page ready"))

    # Waits and lookup

    def wait_for(
        self,
        predicate: Callable[[], T],
        timeout_seconds: float | None = None,
        message: str | None = None,
    ) -> T:
        """Wait for an arbitrary predicate with the configured poll interval."""
        return self._guarded(lambda: self._wait(predicate, message, timeout_seconds))

    def wait_visible(self, locator: Locator) -> WebElement:
        return self._guarded(lambda: self._visible(locator))

    def wait_clickable(self, locator: Locator) -> WebElement:
        return self._guarded(lambda: self._clickable(locator))

    def find(self, locator: Locator) -> WebElement:
        """Find an element once it is visible."""
        return self.wait_visible(locator)

    def find_all(self, locator: Locator) -> list[WebElement]:
        """Find all matching elements without waiting for visibility."""
        self._log.debug("Finding all elements", locator=locator)
        return self._guarded(lambda: self.driver.find_elements(*locator))

    # Interactions

    def safe_click(self, locator: Locator) -> None:
        self._log.info("Clicking element", locator=locator)

        def click() -> None:
            self._clickable(locator).click()

        self._interact(click, f"click {locator}")

    def type(self, locator: Locator, text: str) -> None:
        self._log.info("Typing into element", locator=locator, length=len(text))

        def send() -> None:
            self._visible(locator).send_keys(text)

        self._interact(send, f"type into {locator}")

    def clear_and_type(self, locator: Locator, text: str) -> None:
        self._log.info("Clear and type into element", locator=locator, length=len(text))

        def replace_text() -> None:
            element = self._visible(locator)
            element.clear()
            element.send_keys(text)

        self._interact(replace_text, f"clear and type into {locator}")

    def get_text(self, locator: Locator) -> str:
        text = self._interact(lambda: self._visible(locator).text, f"read text of {locator}")
        self._log.debug("Element text", locator=locator, text=text)
        return text

    def get_attribute(self, locator: Locator, name: str) -> str | None:
        value = self._interact(
            lambda: self._visible(locator).get_attribute(name),
            f"read attribute {name} of {locator}",
        )
        self._log.debug("Element attribute", locator=locator, attribute=name, value=value)
        return value

    def scroll_into_view(self, locator: Locator) -> None:
        self._log.info("Scrolling into view", locator=locator)
        self._interact(
            lambda: self.driver.execute_script(SCROLL_INTO_VIEW_SCRIPT, self._visible(locator)),
            f"scroll to {locator}",
        )

    def js_click(self, locator: Locator) -> None:
        """Click through JavaScript, for elements a native click cannot reach."""
        self._log.info("Performing JS click", locator=locator)
        self._interact(
            lambda: self.driver.execute_script(JS_CLICK_SCRIPT, self._visible(locator)),
            f"js click {locator}",
        )

    def hover(self, locator: Locator) -> None:
        self._log.info("Hovering over element", locator=locator)

        def move() -> None:
            ActionChains(self.driver).move_to_element(self._visible(locator)).perform()

        self._interact(move, f"hover {locator}")

    # Internals

    def _wait(
        self,
        predicate: Callable[[], T],
        message: str | None = None,
        timeout_seconds: float | None = None,
    ) -> T:
        spec = WaitSpec.from_config(self._config, message)
        if timeout_seconds is not None:
            spec = WaitSpec(
                timeout_seconds=timeout_seconds,
                poll_interval_ms=spec.poll_interval_ms,
                message=message,
            )
        return self._waits.until(predicate, spec)

    def _visible(self, locator: Locator) -> WebElement:
        return self._wait(element_visible(self.driver, locator), f"visibility of {locator}")

    def _clickable(self, locator: Locator) -> WebElement:
        return self._wait(element_interactable(self.driver, locator), f"clickable {locator}")

    def _interact(self, action: Callable[[], T], description: str) -> T:
        return self._guarded(lambda: self._proxy.retrying_execute(action, description=description))

    def _guarded(self, operation: Callable[[], T]) -> T:
        try:
            return operation()
        except Exception as e:
            self._report(e)
            raise

    def _report(self, error: BaseException) -> None:
        if self._on_failure is None:
            return
        self._on_failure(error)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(worker={self._session.worker!r})"
