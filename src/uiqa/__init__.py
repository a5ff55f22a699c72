"""
uiqa browser session engine.

Session lifecycle and resilient interaction for Selenium-based UI tests:
one isolated browser session per worker, capability resolution for local,
grid and cloud backends, polling waits, and bounded retry of transient
interaction failures.
"""

__version__ = "1.0.0"

from uiqa.config import (
    BackendKind,
    BrowserKind,
    Credentials,
    ExecutionConfig,
    load_execution_config,
    resolve_execution_config,
)
from uiqa.errors import (
    ConfigurationError,
    NotYetSatisfied,
    SessionAlreadyClosedError,
    SessionCreationError,
    TransientInteractionError,
    UIQAError,
    UnsupportedBrowserError,
    WaitTimeoutError,
)
from uiqa.interaction import (
    InteractionProxy,
    RetryPolicy,
    WaitEngine,
    WaitSpec,
    wait_until,
)
from uiqa.logging_config import configure_logging
from uiqa.notify import ArtifactNotifier, LifecycleNotifier, LoggingNotifier
from uiqa.pages import BasePage
from uiqa.runner import ParallelRunner, RunSummary, TestRetryAnalyzer
from uiqa.session import (
    BackendResolver,
    CapabilitySet,
    Session,
    SessionRegistry,
    SessionSnapshot,
    get_registry,
    init_registry,
    resolve_capabilities,
    shutdown_registry,
)

__all__ = [
    "__version__",
    # Configuration
    "BackendKind",
    "BrowserKind",
    "Credentials",
    "ExecutionConfig",
    "load_execution_config",
    "resolve_execution_config",
    # Errors
    "ConfigurationError",
    "NotYetSatisfied",
    "SessionAlreadyClosedError",
    "SessionCreationError",
    "TransientInteractionError",
    "UIQAError",
    "UnsupportedBrowserError",
    "WaitTimeoutError",
    # Sessions
    "BackendResolver",
    "CapabilitySet",
    "Session",
    "SessionRegistry",
    "SessionSnapshot",
    "get_registry",
    "init_registry",
    "resolve_capabilities",
    "shutdown_registry",
    # Interaction
    "InteractionProxy",
    "RetryPolicy",
    "WaitEngine",
    "WaitSpec",
    "wait_until",
    # Notification
    "ArtifactNotifier",
    "LifecycleNotifier",
    "LoggingNotifier",
    # Pages and runner
    "BasePage",
    "ParallelRunner",
    "RunSummary",
    "TestRetryAnalyzer",
    # Logging
    "configure_logging",
]
