"""Page-object support."""

from uiqa.pages.base import BasePage, FailureHook

__all__ = ["BasePage", "FailureHook"]
