"""
Canonical wait predicates.

Each factory returns a zero-argument predicate for WaitEngine.until. A
predicate returns the element (or True) once its condition holds, and False
or an ignored Selenium error while it does not.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from selenium.webdriver.remote.webdriver import WebDriver
    from selenium.webdriver.remote.webelement import WebElement

Locator = tuple[str, str]


def element_visible(driver: WebDriver, locator: Locator) -> Callable[[], WebElement | bool]:
    """Element located by ``locator`` is present and displayed."""

    def predicate() -> WebElement | bool:
        element = driver.find_element(*locator)
        return element if element.is_displayed() else False

    return predicate


def element_interactable(driver: WebDriver, locator: Locator) -> Callable[[], WebElement | bool]:
    """Element located by ``locator`` is displayed and enabled."""
    visible = element_visible(driver, locator)

    def predicate() -> WebElement | bool:
        element = visible()
        if element and element.is_enabled():
            return element
        return False

    return predicate


def page_ready(driver: WebDriver) -> Callable[[], bool]:
    """Document has finished loading (``document.readyState == "complete"``)."""

    def predicate() -> bool:
        return driver.execute_script("return document.readyState") == "complete"

    return predicate


def url_contains(driver: WebDriver, fragment: str) -> Callable[[], bool]:
    """Current URL contains ``fragment``."""

    def predicate() -> bool:
        return fragment in driver.current_url

    return predicate
