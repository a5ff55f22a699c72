"""
Execution configuration models.

Provides the immutable, validated ExecutionConfig consumed by session
creation and interaction handling, and the resolver that turns a flat
key/value source (``browser``, ``execution.type``, ``cap.*``, ...) into it.
"""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path
from typing import Any, Mapping

import structlog
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    ValidationError,
    field_validator,
)

from uiqa.errors import ConfigurationError, UnsupportedBrowserError

logger = structlog.get_logger(__name__)

CAPABILITY_PREFIX = "cap."

# Page loads are never aborted sooner than this, whatever the explicit wait
MIN_PAGE_LOAD_TIMEOUT_SECONDS = 30


class BrowserKind(StrEnum):
    """Supported browsers."""

    CHROME = "chrome"
    FIREFOX = "firefox"
    EDGE = "edge"
    SAFARI = "safari"

    @classmethod
    def parse(cls, value: str | BrowserKind) -> BrowserKind:
        """Parse a browser name, raising UnsupportedBrowserError if unknown."""
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnsupportedBrowserError(str(value)) from None


class BackendKind(StrEnum):
    """Execution target for a session."""

    LOCAL = "local"
    GRID = "grid"
    CLOUD = "cloud"


class Credentials(BaseModel):
    """Cloud provider credentials."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    user: str = ""
    key: SecretStr = SecretStr("")

    @property
    def is_empty(self) -> bool:
        return not self.user and not self.key.get_secret_value()


class ExecutionConfig(BaseModel):
    """
    Resolved execution configuration.

    Immutable once built. Every field is validated at construction except
    capability override values, which are passed to the backend untouched.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    browser: BrowserKind = BrowserKind.CHROME
    headless: bool = False
    backend: BackendKind = BackendKind.LOCAL

    grid_url: str = Field(
        default="http://localhost:4444/wd/hub",
        description="Hub URL used when backend is grid",
    )
    cloud_url: str = Field(
        default="",
        description="Hub URL used when backend is cloud",
    )
    credentials: Credentials = Field(default_factory=Credentials)
    capability_overrides: dict[str, str] = Field(
        default_factory=dict,
        description="Passthrough capabilities, key is the suffix after 'cap.'",
    )

    implicit_wait_seconds: int = Field(default=0, ge=0)
    explicit_wait_seconds: int = Field(default=20, ge=0)
    page_load_timeout_seconds: int | None = Field(default=None, ge=0)

    retry_enabled: bool = False
    retry_count: int = Field(default=0, ge=0)

    interaction_max_attempts: int = Field(default=2, ge=0)
    interaction_backoff_ms: int = Field(default=300, ge=0)
    poll_interval_ms: int = Field(default=500, gt=0)

    base_url: str = "https://the-internet.herokuapp.com/"
    thread_count: int = Field(default=4, ge=1)
    screenshot_on_fail: bool = True
    screenshot_on_pass: bool = False
    report_dir: Path = Path("reports")

    @field_validator("grid_url", "cloud_url", "base_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Accept an empty URL or an http(s) one."""
        v = v.strip()
        if v and not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return v

    @field_validator("capability_overrides")
    @classmethod
    def validate_override_keys(cls, v: dict[str, str]) -> dict[str, str]:
        for key in v:
            if not key or not key.strip():
                raise ValueError("capability override keys must be non-empty")
        return v

    @property
    def hub_url(self) -> str:
        """Hub URL for the configured backend, empty for local execution."""
        match self.backend:
            case BackendKind.GRID:
                return self.grid_url
            case BackendKind.CLOUD:
                return self.cloud_url
            case _:
                return ""

    @property
    def effective_page_load_timeout(self) -> int:
        """Page-load timeout applied to new sessions, floored at 30 seconds."""
        configured = self.page_load_timeout_seconds
        if configured is None:
            configured = self.explicit_wait_seconds
        return max(MIN_PAGE_LOAD_TIMEOUT_SECONDS, configured)

    def with_overrides(self, **changes: Any) -> ExecutionConfig:
        """
        Create a new config with the given fields replaced.

        Returns a new validated instance - does not mutate the original.
        """
        data = self.model_dump()
        data.update(changes)
        return build_config(data)


# Flat source key -> ExecutionConfig field
CONFIG_KEYS: dict[str, str] = {
    "browser": "browser",
    "headless": "headless",
    "execution.type": "backend",
    "grid.url": "grid_url",
    "cloud.url": "cloud_url",
    "implicit.wait": "implicit_wait_seconds",
    "explicit.wait": "explicit_wait_seconds",
    "page.load.timeout": "page_load_timeout_seconds",
    "retry.enabled": "retry_enabled",
    "retry.count": "retry_count",
    "interaction.retries": "interaction_max_attempts",
    "interaction.backoff.ms": "interaction_backoff_ms",
    "wait.poll.ms": "poll_interval_ms",
    "base.url": "base_url",
    "thread.count": "thread_count",
    "screenshot.on.fail": "screenshot_on_fail",
    "screenshot.on.pass": "screenshot_on_pass",
    "report.dir": "report_dir",
}

CREDENTIAL_KEYS: dict[str, str] = {
    "cloud.user": "user",
    "cloud.key": "key",
}

_BOOL_FIELDS = frozenset({
    "headless",
    "retry_enabled",
    "screenshot_on_fail",
    "screenshot_on_pass",
})

_INT_FIELDS = frozenset({
    "implicit_wait_seconds",
    "explicit_wait_seconds",
    "page_load_timeout_seconds",
    "retry_count",
    "interaction_max_attempts",
    "interaction_backoff_ms",
    "poll_interval_ms",
    "thread_count",
})


def parse_bool(value: Any) -> bool:
    """Parse a boolean the way config files spell it (true/1/yes)."""
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"true", "1", "yes"}


def parse_int(key: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid integer for '{key}': {value!r}")
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        raise ConfigurationError(f"Invalid integer for '{key}': {value!r}") from None


def build_config(data: Mapping[str, Any]) -> ExecutionConfig:
    """Build an ExecutionConfig, converting validation failures to ConfigurationError."""
    try:
        return ExecutionConfig(**data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid execution configuration: {e}") from e


def resolve_execution_config(values: Mapping[str, Any]) -> ExecutionConfig:
    """
    Resolve a flat key/value mapping into an ExecutionConfig.

    Recognised keys are listed in CONFIG_KEYS and CREDENTIAL_KEYS; keys
    starting with ``cap.`` become capability overrides. Unknown keys are
    ignored.

    Raises:
        UnsupportedBrowserError: If ``browser`` names an unknown browser
        ConfigurationError: If any other value is invalid
    """
    data: dict[str, Any] = {}
    credentials: dict[str, str] = {}
    overrides: dict[str, str] = {}

    for key, value in values.items():
        if value is None:
            continue

        if key.startswith(CAPABILITY_PREFIX):
            cap_key = key[len(CAPABILITY_PREFIX):]
            if not cap_key:
                raise ConfigurationError("Capability override key is empty: 'cap.'")
            overrides[cap_key] = str(value)
            logger.debug("Resolved capability override", capability=cap_key)
            continue

        if key in CREDENTIAL_KEYS:
            credentials[CREDENTIAL_KEYS[key]] = str(value).strip()
            continue

        field_name = CONFIG_KEYS.get(key)
        if field_name is None:
            continue

        match field_name:
            case "browser":
                data[field_name] = BrowserKind.parse(value)
            case "backend":
                raw = str(value).strip().lower()
                try:
                    data[field_name] = BackendKind(raw)
                except ValueError:
                    raise ConfigurationError(
                        f"Invalid execution.type: {value!r} (expected local, grid or cloud)"
                    ) from None
            case name if name in _BOOL_FIELDS:
                data[field_name] = parse_bool(value)
            case name if name in _INT_FIELDS:
                data[field_name] = parse_int(key, value)
            case _:
                data[field_name] = str(value)

    if credentials:
        data["credentials"] = Credentials(
            user=credentials.get("user", ""),
            key=SecretStr(credentials.get("key", "")),
        )
    if overrides:
        data["capability_overrides"] = overrides

    return build_config(data)
