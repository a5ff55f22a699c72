"""
Error taxonomy for session lifecycle and interaction handling.

Configuration and session-creation errors fail the acquiring worker at once.
Transient interaction errors are retried by the InteractionProxy; wait
timeouts are terminal at the call site.
"""

from __future__ import annotations

from selenium.common.exceptions import (
    ElementClickInterceptedException,
    NoSuchElementException,
    StaleElementReferenceException,
)


class UIQAError(Exception):
    """Base exception for all uiqa errors."""


class ConfigurationError(UIQAError):
    """Raised when required configuration is missing or invalid."""


class UnsupportedBrowserError(ConfigurationError):
    """Raised for a browser kind outside the supported set."""

    def __init__(self, browser: str) -> None:
        super().__init__(f"Unsupported browser: {browser}")
        self.browser = browser


class SessionCreationError(UIQAError):
    """Raised when a backend is unreachable or rejects the capabilities."""


class TransientInteractionError(UIQAError):
    """Raised for interaction failures expected to resolve on retry."""


class NotYetSatisfied(UIQAError):
    """Signal raised by a wait predicate whose condition does not hold yet."""


class SessionAlreadyClosedError(UIQAError):
    """Raised when an operation is attempted on a released session."""


class WaitTimeoutError(UIQAError, TimeoutError):
    """Raised when a wait exceeds its timeout."""

    def __init__(
        self,
        message: str,
        timeout_seconds: float,
        polls: int,
        last_error: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.timeout_seconds = timeout_seconds
        self.polls = polls
        self.last_error = last_error


# Browser-state errors that are expected to clear up on their own
TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    TransientInteractionError,
    NoSuchElementException,
    StaleElementReferenceException,
    ElementClickInterceptedException,
)

# Errors a wait always treats as "not yet satisfied"
DEFAULT_IGNORED_ERRORS: tuple[type[BaseException], ...] = (
    NotYetSatisfied,
    *TRANSIENT_ERRORS,
)


def is_transient(error: BaseException) -> bool:
    """Check whether an error belongs to the default transient set."""
    return isinstance(error, TRANSIENT_ERRORS)
