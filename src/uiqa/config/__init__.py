"""
Execution configuration.

Provides the typed ExecutionConfig and the loader that resolves it from
config files, environment variables and explicit overrides.
"""

from uiqa.config.execution import (
    BackendKind,
    BrowserKind,
    Credentials,
    ExecutionConfig,
    resolve_execution_config,
)
from uiqa.config.loader import (
    ExecutionSettings,
    load_config_values,
    load_execution_config,
)

__all__ = [
    "BackendKind",
    "BrowserKind",
    "Credentials",
    "ExecutionConfig",
    "ExecutionSettings",
    "load_config_values",
    "load_execution_config",
    "resolve_execution_config",
]
