"""
Resilient interaction primitives.

Provides:
- WaitEngine: predicate polling with timeout and ignored errors
- Canonical wait conditions (visibility, interactability, page readiness)
- InteractionProxy: bounded retry of actions on transient browser errors
"""

from uiqa.interaction.conditions import (
    element_interactable,
    element_visible,
    page_ready,
    url_contains,
)
from uiqa.interaction.retry import (
    Action,
    AttemptRecord,
    AttemptState,
    InteractionProxy,
    RetryPolicy,
    retrying_execute,
)
from uiqa.interaction.waits import WaitEngine, WaitSpec, wait_until

__all__ = [
    # Waits
    "WaitEngine",
    "WaitSpec",
    "wait_until",
    # Conditions
    "element_interactable",
    "element_visible",
    "page_ready",
    "url_contains",
    # Retry
    "Action",
    "AttemptRecord",
    "AttemptState",
    "InteractionProxy",
    "RetryPolicy",
    "retrying_execute",
]
