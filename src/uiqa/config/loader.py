"""
Configuration loading for execution settings.

Priority (highest to lowest):
1. Explicit overrides passed by the caller (e.g. from a CLI or pytest option)
2. Environment variables with the UIQA_ prefix (and a local .env file)
3. Environment overlay file (config-<env>.yaml next to the base file)
4. Base config file
5. Defaults
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Mapping

import structlog
import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict

from uiqa.config.execution import (
    CONFIG_KEYS,
    CREDENTIAL_KEYS,
    ExecutionConfig,
    resolve_execution_config,
)
from uiqa.errors import ConfigurationError

logger = structlog.get_logger(__name__)

ENV_PREFIX = "UIQA_"

STANDARD_CONFIG_PATHS = [
    Path(".uiqa/config.yaml"),
    Path(".uiqa/config.yml"),
    Path("uiqa.yaml"),
    Path("uiqa.yml"),
]


def env_var_name(key: str) -> str:
    """Map a dotted config key to its environment variable name."""
    return ENV_PREFIX + key.replace(".", "_").upper()


class ExecutionSettings(BaseSettings):
    """
    Environment-based execution settings.

    Every recognised dotted key has a string field named after it with dots
    replaced by underscores, e.g. ``execution.type`` is read from
    ``UIQA_EXECUTION_TYPE``. Values stay raw strings here; parsing and
    validation happen in resolve_execution_config.
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    env: str | None = None
    browser: str | None = None
    headless: str | None = None
    execution_type: str | None = None
    grid_url: str | None = None
    cloud_url: str | None = None
    cloud_user: str | None = None
    cloud_key: str | None = None
    implicit_wait: str | None = None
    explicit_wait: str | None = None
    page_load_timeout: str | None = None
    retry_enabled: str | None = None
    retry_count: str | None = None
    interaction_retries: str | None = None
    interaction_backoff_ms: str | None = None
    wait_poll_ms: str | None = None
    base_url: str | None = None
    thread_count: str | None = None
    screenshot_on_fail: str | None = None
    screenshot_on_pass: str | None = None
    report_dir: str | None = None

    def as_config_values(self) -> dict[str, str]:
        """Return the values that were set, keyed by their dotted config key."""
        values: dict[str, str] = {}
        for key in (*CONFIG_KEYS, *CREDENTIAL_KEYS):
            value = getattr(self, key.replace(".", "_"), None)
            if value is not None:
                values[key] = value
        return values


def flatten_mapping(data: Mapping[str, Any], prefix: str = "") -> dict[str, Any]:
    """
    Flatten nested mappings into dotted keys.

    ``{"grid": {"url": "x"}}`` becomes ``{"grid.url": "x"}``.
    """
    flat: dict[str, Any] = {}
    for key, value in data.items():
        full_key = f"{prefix}{key}"
        if isinstance(value, Mapping):
            flat.update(flatten_mapping(value, prefix=f"{full_key}."))
        else:
            flat[full_key] = value
    return flat


def read_config_file(path: Path) -> dict[str, Any]:
    """Read a YAML config file into a flat dotted-key mapping."""
    try:
        with path.open() as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Could not load config file {path}: {e}") from e

    if not isinstance(data, Mapping):
        raise ConfigurationError(f"Config file {path} must contain a mapping")

    return flatten_mapping(data)


def locate_base_config(config_file: Path | str | None) -> Path | None:
    """Find the base config file, preferring an explicit path."""
    if config_file is not None:
        path = Path(config_file)
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}")
        return path

    for path in STANDARD_CONFIG_PATHS:
        if path.exists():
            return path
    return None


def overlay_path_for(base_path: Path, env: str) -> Path:
    """Path of the environment overlay file for a base config file."""
    return base_path.with_name(f"config-{env}{base_path.suffix}")


def load_config_values(
    config_file: Path | str | None = None,
    env: str | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Merge all configuration sources into one flat key/value mapping.

    Args:
        config_file: Optional path to the base YAML config file
        env: Environment name selecting the overlay file
        overrides: Highest-priority values, including ``cap.*`` keys

    Returns:
        Merged mapping of dotted keys to raw values
    """
    values: dict[str, Any] = {}
    settings = ExecutionSettings()

    base_path = locate_base_config(config_file)
    if base_path is not None:
        values.update(read_config_file(base_path))
        logger.info("Loaded base config", path=str(base_path))

    env_name = (env or settings.env or str(values.get("env", ""))).strip()
    if env_name and base_path is not None:
        overlay = overlay_path_for(base_path, env_name)
        if overlay.exists():
            values.update(read_config_file(overlay))
            logger.info("Applied environment overlay config", env=env_name, path=str(overlay))
        else:
            logger.warning(
                "Environment overlay not found, using base config only",
                env=env_name,
                path=str(overlay),
            )

    env_values = settings.as_config_values()
    for key in env_values:
        logger.debug("Config overridden from environment", key=key, var=env_var_name(key))
    values.update(env_values)

    # UIQA_CAP__<name> maps to cap.<name>, name taken verbatim
    for name, value in os.environ.items():
        if name.startswith(f"{ENV_PREFIX}CAP__"):
            values[f"cap.{name[len(ENV_PREFIX) + 5:]}"] = value

    if overrides:
        values.update(overrides)
        logger.debug("Applied explicit config overrides", keys=sorted(overrides))

    return values


def load_execution_config(
    config_file: Path | str | None = None,
    env: str | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> ExecutionConfig:
    """
    Load and resolve the execution configuration.

    Raises:
        ConfigurationError: If a source cannot be read or a value is invalid
    """
    values = load_config_values(config_file=config_file, env=env, overrides=overrides)
    config = resolve_execution_config(values)

    logger.info(
        "Execution config resolved",
        browser=config.browser,
        headless=config.headless,
        backend=config.backend,
        base_url=config.base_url,
    )
    return config
