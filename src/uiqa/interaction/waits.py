"""
Predicate polling with timeout.

WaitEngine.until polls a predicate until it yields a truthy value, swallowing
the configured ignored errors as "not yet satisfied" and propagating anything
else immediately. Visibility, interactability and page readiness are all
expressed as plain predicates for this one primitive.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, TypeVar

import structlog

from uiqa.errors import DEFAULT_IGNORED_ERRORS, WaitTimeoutError

if TYPE_CHECKING:
    from uiqa.config.execution import ExecutionConfig

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class WaitSpec:
    """
    Parameters for a single wait.

    Stateless; one spec can back any number of waits.
    """

    timeout_seconds: float
    """Maximum time to wait."""

    poll_interval_ms: int = 500
    """Pause between predicate evaluations."""

    ignored_errors: tuple[type[BaseException], ...] = DEFAULT_IGNORED_ERRORS
    """Errors treated as "not yet satisfied"."""

    message: str | None = None
    """Description used in the timeout error."""

    def __post_init__(self) -> None:
        if self.timeout_seconds < 0:
            raise ValueError("timeout_seconds must be non-negative")
        if self.poll_interval_ms <= 0:
            raise ValueError("poll_interval_ms must be positive")

    @classmethod
    def from_config(cls, config: ExecutionConfig, message: str | None = None) -> WaitSpec:
        """Spec using the configured explicit wait and poll interval."""
        return cls(
            timeout_seconds=config.explicit_wait_seconds,
            poll_interval_ms=config.poll_interval_ms,
            message=message,
        )

    def ignoring(self, *errors: type[BaseException]) -> WaitSpec:
        """Copy of this spec that also ignores the given errors."""
        return WaitSpec(
            timeout_seconds=self.timeout_seconds,
            poll_interval_ms=self.poll_interval_ms,
            ignored_errors=(*self.ignored_errors, *errors),
            message=self.message,
        )


class WaitEngine:
    """
    Blocking predicate-polling primitive.

    Usage:
        engine = WaitEngine()
        element = engine.until(element_visible(driver, (By.ID, "login")), WaitSpec(10))
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._clock = clock
        self._sleep = sleep
        self._log = logger.bind(component="wait_engine")

    def until(self, predicate: Callable[[], T], spec: WaitSpec) -> T:
        """
        Poll ``predicate`` until it returns a truthy value.

        Args:
            predicate: Zero-argument callable; a falsy result, NotYetSatisfied or an
                ignored error means the condition does not hold yet
            spec: Timeout, poll interval and ignored errors

        Returns:
            The first truthy value returned by the predicate

        Raises:
            WaitTimeoutError: If the timeout elapses first; carries the last ignored error
            Exception: Any error not in ``spec.ignored_errors``, immediately
        """
        deadline = self._clock() + spec.timeout_seconds
        interval = spec.poll_interval_ms / 1000
        last_error: BaseException | None = None
        polls = 0

        while True:
            polls += 1
            try:
                value = predicate()
                if value:
                    if polls > 1:
                        self._log.debug("Wait satisfied", polls=polls, wait=spec.message)
                    return value
            except spec.ignored_errors as e:
                last_error = e

            remaining = deadline - self._clock()
            if remaining <= 0:
                break
            self._sleep(min(interval, remaining))

        message = spec.message or "condition"
        detail = f": {type(last_error).__name__}: {last_error}" if last_error else ""
        self._log.debug(
            "Wait timed out",
            wait=message,
            timeout_seconds=spec.timeout_seconds,
            polls=polls,
            last_error=str(last_error) if last_error else None,
        )
        raise WaitTimeoutError(
            f"Timed out after {spec.timeout_seconds}s waiting for {message} ({polls} polls){detail}",
            timeout_seconds=spec.timeout_seconds,
            polls=polls,
            last_error=last_error,
        ) from last_error


_default_engine = WaitEngine()


def wait_until(predicate: Callable[[], T], spec: WaitSpec) -> T:
    """Poll ``predicate`` with the default engine; see WaitEngine.until."""
    return _default_engine.until(predicate, spec)
