"""
Lifecycle notification interface.

The session core calls notifiers synchronously at the points where sessions
are created, interactions fail and sessions are closed. It does not buffer,
batch or retry delivery.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Hashable, Iterable, Protocol, runtime_checkable

import structlog

if TYPE_CHECKING:
    from uiqa.config.execution import ExecutionConfig
    from uiqa.session.models import SessionSnapshot

logger = structlog.get_logger(__name__)


@runtime_checkable
class LifecycleNotifier(Protocol):
    """Receiver of session lifecycle events, implemented by collaborators."""

    def on_session_created(self, worker: Hashable, config: ExecutionConfig) -> None:
        """Called after a session has been created for a worker."""
        ...

    def on_action_failed(
        self,
        worker: Hashable,
        error: BaseException,
        snapshot: SessionSnapshot | None,
    ) -> None:
        """Called when an interaction fails terminally."""
        ...

    def on_session_closed(self, worker: Hashable) -> None:
        """Called after a worker's session has been torn down."""
        ...


class NotifierGroup:
    """
    Fans lifecycle events out to several notifiers.

    A notifier that raises is logged and skipped; delivery to the remaining
    notifiers continues so that reporting problems never mask test outcomes.
    """

    def __init__(self, notifiers: Iterable[LifecycleNotifier] = ()) -> None:
        self._notifiers: list[LifecycleNotifier] = list(notifiers)
        self._log = logger.bind(component="notifier_group")

    def __len__(self) -> int:
        return len(self._notifiers)

    def add(self, notifier: LifecycleNotifier) -> None:
        self._notifiers.append(notifier)

    def on_session_created(self, worker: Hashable, config: ExecutionConfig) -> None:
        for notifier in list(self._notifiers):
            try:
                notifier.on_session_created(worker, config)
            except Exception as e:
                self._delivery_failed(notifier, "session_created", e)

    def on_action_failed(
        self,
        worker: Hashable,
        error: BaseException,
        snapshot: SessionSnapshot | None,
    ) -> None:
        for notifier in list(self._notifiers):
            try:
                notifier.on_action_failed(worker, error, snapshot)
            except Exception as e:
                self._delivery_failed(notifier, "action_failed", e)

    def on_session_closed(self, worker: Hashable) -> None:
        for notifier in list(self._notifiers):
            try:
                notifier.on_session_closed(worker)
            except Exception as e:
                self._delivery_failed(notifier, "session_closed", e)

    def _delivery_failed(self, notifier: LifecycleNotifier, event: str, error: Exception) -> None:
        self._log.warning(
            "Lifecycle notifier failed",
            notifier=type(notifier).__name__,
            lifecycle_event=event,
            error=str(error),
        )
