"""
Session lifecycle notification.

Provides the LifecycleNotifier interface the session core reports to, a
fan-out group, and notifiers for logging and failure artifact capture.
"""

from uiqa.notify.base import LifecycleNotifier, NotifierGroup
from uiqa.notify.notifiers import (
    ArtifactNotifier,
    FailureArtifacts,
    LoggingNotifier,
    sanitize_name,
)

__all__ = [
    "ArtifactNotifier",
    "FailureArtifacts",
    "LifecycleNotifier",
    "LoggingNotifier",
    "NotifierGroup",
    "sanitize_name",
]
