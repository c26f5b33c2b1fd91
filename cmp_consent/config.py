"""Settings for the CMP engine with YAML support and environment overrides.

Settings are resolved in this order, later sources winning:

1. Model defaults
2. YAML settings file
3. ``environments.<env>`` section of that file
4. ``CMP_CONSENT_*`` environment variables
5. Explicit overrides passed by the caller
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

ENV_PREFIX = "CMP_CONSENT_"


class ConfigLoadError(Exception):
    """Exception raised when settings loading fails."""
    pass


class CMPSettings(BaseModel):
    """Runtime settings for CMP detection and acceptance."""

    default_timeout_ms: int = Field(
        default=2000,
        ge=0,
        description="Polling budget for descriptors that set no timeout"
    )
    attempt_timeout_ms: int = Field(
        default=200,
        gt=0,
        description="Wait per selector attempt while detecting a banner"
    )
    confirmation_timeout_ms: int = Field(
        default=2000,
        ge=0,
        description="How long to wait for consent cookies after accepting"
    )
    include_builtin: bool = Field(
        default=True,
        description="Register the descriptors shipped with the package"
    )
    descriptor_paths: List[str] = Field(
        default_factory=list,
        description="Additional descriptor files or glob patterns"
    )
    fail_on_missing: bool = Field(
        default=False,
        description="Raise if expected consent data is missing after acceptance"
    )
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        """Validate logging level name."""
        level = v.upper()
        if level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ValueError(f"Invalid log level: {v}")
        return level

    @field_validator('descriptor_paths', mode='before')
    @classmethod
    def coerce_descriptor_paths(cls, v):
        """Allow a single path in place of a list."""
        if isinstance(v, str):
            return [v]
        return v


def _load_environment_variables() -> Dict[str, Any]:
    """Load settings from ``CMP_CONSENT_*`` environment variables."""
    env_config: Dict[str, Any] = {}

    if timeout := os.getenv(f"{ENV_PREFIX}TIMEOUT_MS"):
        env_config['default_timeout_ms'] = timeout

    if confirmation := os.getenv(f"{ENV_PREFIX}CONFIRMATION_TIMEOUT_MS"):
        env_config['confirmation_timeout_ms'] = confirmation

    if descriptors := os.getenv(f"{ENV_PREFIX}DESCRIPTORS"):
        env_config['descriptor_paths'] = [p for p in descriptors.split(os.pathsep) if p]

    if (fail_on_missing := os.getenv(f"{ENV_PREFIX}FAIL_ON_MISSING")) is not None:
        env_config['fail_on_missing'] = fail_on_missing.lower() in ('1', 'true', 'yes')

    if log_level := os.getenv(f"{ENV_PREFIX}LOG_LEVEL"):
        env_config['log_level'] = log_level

    return env_config


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries, with override taking precedence."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def load_settings(
    config_path: Optional[Union[str, Path]] = None,
    environment: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None
) -> CMPSettings:
    """Load CMPSettings from an optional YAML file and the environment.

    Args:
        config_path: Path to YAML settings file. Defaults are used when None.
        environment: Environment name for override selection. If None, uses
            the ``CMP_CONSENT_ENV`` variable.
        overrides: Additional settings overrides to apply.

    Returns:
        Validated settings.

    Raises:
        ConfigLoadError: If the file cannot be read or the settings are invalid.
    """
    config_data: Dict[str, Any] = {}

    if config_path is not None:
        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigLoadError(f"Config file not found: {config_path}")

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigLoadError(f"Failed to parse YAML config: {e}")
        except OSError as e:
            raise ConfigLoadError(f"Failed to read config file: {e}")

        if not isinstance(config_data, dict):
            raise ConfigLoadError("Config file must contain a YAML dictionary")

    if environment is None:
        environment = os.getenv(f"{ENV_PREFIX}ENV", "production")

    environments = config_data.pop("environments", None) or {}
    if not isinstance(environments, dict):
        raise ConfigLoadError("'environments' must be a dictionary of environment overrides")
    if environment in environments:
        env_overrides = environments[environment]
        if not isinstance(env_overrides, dict):
            raise ConfigLoadError(f"Environment overrides for '{environment}' must be a dictionary")
        config_data = _deep_merge(config_data, env_overrides)
        logger.info(f"Applied environment overrides for: {environment}")

    config_data = _deep_merge(config_data, _load_environment_variables())

    if overrides:
        config_data = _deep_merge(config_data, overrides)
        logger.debug("Applied additional settings overrides")

    try:
        return CMPSettings(**config_data)
    except Exception as e:
        raise ConfigLoadError(f"Invalid settings: {e}")
