"""
Settings loading for isoterm.

Settings come from an optional YAML file in the user's configuration directory
(resolved with platformdirs) plus a few environment variables. Every key is
optional; invalid values are logged and replaced by their defaults.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import platformdirs
import yaml

from isoterm.constants import (
    APP_NAME,
    CONFIG_FILE_NAME,
    CONFIG_PATH_ENV_VAR,
    DEFAULT_CONNECT_RETRIES,
    DEFAULT_MAX_RETRY_DELAY,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_RETRY_DELAY,
    GITHUB_API_BASE,
    GITHUB_TOKEN_ENV_VAR,
)
from isoterm.exceptions import ConfigurationError
from isoterm.log_utils import logger


@dataclass(frozen=True)
class Settings:
    """Runtime settings shared by every provisioning task."""

    github_api_base: str = GITHUB_API_BASE
    github_token: Optional[str] = None
    max_retries: int = DEFAULT_CONNECT_RETRIES
    retry_delay: float = DEFAULT_RETRY_DELAY
    max_retry_delay: float = DEFAULT_MAX_RETRY_DELAY
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT


def get_default_config_path() -> Path:
    """
    Return the settings file location.

    `ISOTERM_CONFIG` wins when set; otherwise the file lives in the platform's
    user configuration directory.
    """
    override = os.environ.get(CONFIG_PATH_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path(platformdirs.user_config_dir(APP_NAME)) / CONFIG_FILE_NAME


def _coerce_int(config: Dict[str, Any], key: str, default: int, minimum: int) -> int:
    raw_value = config.get(key, default)
    try:
        parsed = int(raw_value)
    except (TypeError, ValueError):
        logger.warning("Invalid %s value %r; using default of %d", key, raw_value, default)
        return default
    if parsed < minimum:
        logger.warning("%s must be >= %d; clamping %d to %d", key, minimum, parsed, minimum)
        return minimum
    return parsed


def _coerce_float(config: Dict[str, Any], key: str, default: float) -> float:
    raw_value = config.get(key, default)
    try:
        parsed = float(raw_value)
    except (TypeError, ValueError):
        logger.warning("Invalid %s value %r; using default of %s", key, raw_value, default)
        return default
    if parsed < 0:
        logger.warning("%s must not be negative; using default of %s", key, default)
        return default
    return parsed


def load_config_file(path: Path) -> Dict[str, Any]:
    """
    Read the YAML settings file.

    Returns:
        Dict[str, Any]: The parsed mapping, or an empty dict when the file does not exist.

    Raises:
        ConfigurationError: If the file cannot be read, is not valid YAML, or is not a mapping.
    """
    if not path.exists():
        logger.debug(f"No settings file at {path}; using defaults")
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"Could not read settings file {path}", str(e)) from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in settings file {path}", str(e)) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Settings file {path} must contain a mapping, got {type(data).__name__}"
        )
    return data


def load_settings(path: Optional[Path] = None) -> Settings:
    """
    Build Settings from the settings file and the environment.

    Parameters:
        path (Optional[Path]): Explicit settings file; defaults to `get_default_config_path()`.

    Returns:
        Settings: Validated settings.
    """
    config_path = path if path is not None else get_default_config_path()
    config = load_config_file(config_path)

    api_base = config.get("GITHUB_API_BASE", GITHUB_API_BASE)
    if not isinstance(api_base, str) or not api_base.strip():
        logger.warning("Invalid GITHUB_API_BASE %r; using %s", api_base, GITHUB_API_BASE)
        api_base = GITHUB_API_BASE

    token = os.environ.get(GITHUB_TOKEN_ENV_VAR) or config.get("GITHUB_TOKEN")
    if token is not None and not isinstance(token, str):
        logger.warning("Ignoring non-string GITHUB_TOKEN in %s", config_path)
        token = None

    return Settings(
        github_api_base=api_base.rstrip("/"),
        github_token=token or None,
        max_retries=_coerce_int(
            config, "MAX_DOWNLOAD_RETRIES", DEFAULT_CONNECT_RETRIES, minimum=0
        ),
        retry_delay=_coerce_float(config, "DOWNLOAD_RETRY_DELAY", DEFAULT_RETRY_DELAY),
        max_retry_delay=_coerce_float(
            config, "MAX_RETRY_DELAY", DEFAULT_MAX_RETRY_DELAY
        ),
        request_timeout=_coerce_float(
            config, "REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT
        ),
    )
