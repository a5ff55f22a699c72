"""
Session lifecycle module.

Provides:
- CapabilitySet resolution for each supported browser
- BackendResolver for local, grid and cloud driver creation
- SessionRegistry enforcing one live session per worker
"""

from uiqa.session.backends import BackendResolver, create_local_driver, create_remote_driver
from uiqa.session.capabilities import CapabilitySet, resolve_capabilities
from uiqa.session.models import Session, SessionSnapshot, SessionState, SessionTimeouts
from uiqa.session.registry import (
    DriverSessionFactory,
    SessionRegistry,
    current_worker,
    get_registry,
    init_registry,
    shutdown_registry,
)

__all__ = [
    # Capabilities
    "CapabilitySet",
    "resolve_capabilities",
    # Backends
    "BackendResolver",
    "create_local_driver",
    "create_remote_driver",
    # Sessions
    "Session",
    "SessionSnapshot",
    "SessionState",
    "SessionTimeouts",
    # Registry
    "DriverSessionFactory",
    "SessionRegistry",
    "current_worker",
    "get_registry",
    "init_registry",
    "shutdown_registry",
]
