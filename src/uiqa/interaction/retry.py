"""
Bounded retry of browser interactions.

A RetryPolicy decorates an action (any object with ``execute()``, or a plain
callable) and re-runs it on transient browser-state errors:

    Idle -> Attempting -> Success
                       -> Attempting  (transient error, attempts <= max_attempts)
                       -> Fatal       (transient error past the cap, or any other error)

A transient failure increments the attempt counter; once the counter exceeds
``max_attempts`` the error is re-raised, so an action runs at most
``max_attempts + 1`` times. Terminal errors are always re-raised unchanged.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Callable, Protocol, TypeVar, runtime_checkable

import structlog

from uiqa.errors import TRANSIENT_ERRORS

if TYPE_CHECKING:
    from uiqa.config.execution import ExecutionConfig

logger = structlog.get_logger(__name__)

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)


@runtime_checkable
class Action(Protocol[T_co]):
    """A single interaction that can be executed (and re-executed)."""

    def execute(self) -> T_co:
        ...


class AttemptState(StrEnum):
    """State of a retrying execution."""

    IDLE = "idle"
    ATTEMPTING = "attempting"
    SUCCESS = "success"
    FATAL = "fatal"


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """
    Retry parameters for one interaction call site.

    Defaults come from ExecutionConfig via from_config; call sites override
    individual fields with with_overrides.
    """

    max_attempts: int = 2
    """Retries allowed after the first attempt."""

    transient_errors: tuple[type[BaseException], ...] = TRANSIENT_ERRORS
    """Errors that are retried."""

    backoff_ms: int = 300
    """Fixed pause between attempts."""

    def __post_init__(self) -> None:
        if self.max_attempts < 0:
            raise ValueError("max_attempts must be non-negative")
        if self.backoff_ms < 0:
            raise ValueError("backoff_ms must be non-negative")

    @classmethod
    def from_config(cls, config: ExecutionConfig) -> RetryPolicy:
        return cls(
            max_attempts=config.interaction_max_attempts,
            backoff_ms=config.interaction_backoff_ms,
        )

    def with_overrides(
        self,
        max_attempts: int | None = None,
        transient_errors: tuple[type[BaseException], ...] | None = None,
        backoff_ms: int | None = None,
    ) -> RetryPolicy:
        """Return a new policy with the given fields replaced."""
        changes: dict[str, Any] = {}
        if max_attempts is not None:
            changes["max_attempts"] = max_attempts
        if transient_errors is not None:
            changes["transient_errors"] = transient_errors
        if backoff_ms is not None:
            changes["backoff_ms"] = backoff_ms
        return replace(self, **changes)

    def is_transient(self, error: BaseException) -> bool:
        return isinstance(error, self.transient_errors)


@dataclass(frozen=True, slots=True)
class AttemptRecord:
    """Outcome of a single attempt, reported to observers."""

    attempt: int
    """1-based attempt number."""

    state: AttemptState
    """State the execution moved to after this attempt."""

    description: str | None = None
    """What the action does, for logs."""

    error: BaseException | None = None
    """Error raised by the attempt, if any."""

    duration_ms: int = 0
    """Time spent in the attempt."""


AttemptObserver = Callable[[AttemptRecord], None]


class InteractionProxy:
    """
    Executes actions under a RetryPolicy.

    Every attempt is logged and passed to the optional observer; apart from
    that, the only side effects are the action's own.

    Usage:
        proxy = InteractionProxy(RetryPolicy.from_config(config))
        proxy.retrying_execute(lambda: driver.find_element(By.ID, "save").click())
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        observer: AttemptObserver | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._policy = policy or RetryPolicy()
        self._observer = observer
        self._sleep = sleep
        self._log = logger.bind(component="interaction_proxy")

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def retrying_execute(
        self,
        action: Action[T] | Callable[[], T],
        policy: RetryPolicy | None = None,
        description: str | None = None,
    ) -> T:
        """
        Run ``action``, retrying transient errors within the policy's cap.

        Args:
            action: Object with ``execute()`` or a zero-argument callable
            policy: Per-call policy; defaults to the proxy's policy
            description: What the action does, for logs

        Returns:
            The action's result

        Raises:
            Exception: The action's own error once it is terminal, unchanged
                apart from a note giving the number of attempts made
        """
        effective = policy or self._policy
        run = action.execute if isinstance(action, Action) else action
        attempts = 0

        while True:
            started = time.monotonic()
            try:
                result = run()
            except Exception as e:
                duration_ms = int((time.monotonic() - started) * 1000)
                transient = effective.is_transient(e)
                if transient:
                    attempts += 1

                if not transient or attempts > effective.max_attempts:
                    total = attempts if transient else attempts + 1
                    self._record(total, AttemptState.FATAL, description, e, duration_ms)
                    self._log.error(
                        "Interaction failed",
                        action=description,
                        attempts=total,
                        transient=transient,
                        error_type=type(e).__name__,
                        error=str(e),
                    )
                    e.add_note(f"Interaction failed after {total} attempt(s)")
                    raise

                self._record(attempts, AttemptState.ATTEMPTING, description, e, duration_ms)
                self._log.warning(
                    "Transient interaction error, retrying",
                    action=description,
                    attempt=attempts,
                    max_attempts=effective.max_attempts,
                    error_type=type(e).__name__,
                    backoff_ms=effective.backoff_ms,
                )
                if effective.backoff_ms:
                    self._sleep(effective.backoff_ms / 1000)
                continue

            duration_ms = int((time.monotonic() - started) * 1000)
            self._record(attempts + 1, AttemptState.SUCCESS, description, None, duration_ms)
            self._log.debug("Interaction succeeded", action=description, attempt=attempts + 1)
            return result

    def _record(
        self,
        attempt: int,
        state: AttemptState,
        description: str | None,
        error: BaseException | None,
        duration_ms: int,
    ) -> None:
        if self._observer is None:
            return
        self._observer(
            AttemptRecord(
                attempt=attempt,
                state=state,
                description=description,
                error=error,
                duration_ms=duration_ms,
            )
        )


def retrying_execute(
    action: Action[T] | Callable[[], T],
    policy: RetryPolicy | None = None,
    description: str | None = None,
) -> T:
    """Run ``action`` under ``policy`` with a default proxy; see InteractionProxy."""
    return InteractionProxy(policy).retrying_execute(action, description=description)
