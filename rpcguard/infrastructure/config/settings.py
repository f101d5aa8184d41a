"""Provides functions for loading and accessing configuration settings.

Supports loading from .env files, environment variables, and a dedicated
configuration file (~/.rpcguard/config.yaml). Keys are dotted paths such as
``retry.max_attempts``; the matching environment variable is
``RPCGUARD_RETRY_MAX_ATTEMPTS``.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from dotenv import load_dotenv

from rpcguard.domain.models.common import BackoffPolicy, CircuitBreakerPolicy, LoggingSettings, RateLimitPolicy

logger = logging.getLogger(__name__)

# --- Configuration Constants ---
DEFAULT_CONFIG_DIR = Path.home() / ".rpcguard"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
ENV_FILE_NAME = ".env"
ENV_PREFIX = "RPCGUARD_"

DEFAULTS: Dict[str, Any] = {
    'limiter.rate': 10.0,
    'limiter.capacity': None,
    'retry.max_attempts': 3,
    'retry.base_delay_ms': 100,
    'retry.backoff_multiplier': 2.0,
    'retry.jitter_ms': 0,
    'retry.max_delay_ms': 30000,
    'breaker.failure_threshold': 5,
    'breaker.window_seconds': 60,
    'breaker.cooldown_seconds': 30,
    'breaker.success_threshold': 2,
    'bulkhead.max_concurrent': 10,
    'logging.level': 'INFO',
    'logging.format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    'logging.file': None,
}

# --- Global Configuration Store ---
_config: Dict[str, Any] = {}
_test_config: Dict[str, Any] = {}
_loaded = False


def load_configuration(config_file: Optional[Path] = None, env_file: Optional[Path] = None) -> None:
    """Loads configuration from environment, .env file, and YAML file.

    Priority order (highest to lowest):
    1. Environment Variables
    2. .env file
    3. YAML configuration file
    4. Built-in defaults

    Args:
        config_file: Path to the YAML configuration file (defaults to ~/.rpcguard/config.yaml).
        env_file: Path to the .env file (searches upwards from cwd if None).
    """
    global _config, _loaded
    if _loaded:
        logger.debug("Configuration already loaded.")
        return

    _config = {}
    config_file = config_file or DEFAULT_CONFIG_FILE

    # 1. Load from YAML file (Lowest priority)
    if config_file.exists():
        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                yaml_config = yaml.safe_load(f)
            if isinstance(yaml_config, dict):
                _config.update(_flatten(yaml_config))
                logger.info(f"Loaded configuration from YAML: {config_file}")
            elif yaml_config is not None:
                logger.warning(f"YAML config file {config_file} did not contain a mapping.")
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load or parse YAML config {config_file}: {e}")
    else:
        logger.debug(f"YAML config file not found: {config_file}")

    # 2. Load from .env file (Medium priority)
    dotenv_path = env_file or find_dotenv_path()
    if dotenv_path:
        # override=False: real environment variables take precedence
        if load_dotenv(dotenv_path=dotenv_path, override=False):
            logger.info(f"Loaded environment variables from: {dotenv_path}")
    else:
        logger.debug("Skipping .env file loading (no file found).")

    # 3. Environment Variables (Highest priority) are read in get_config

    _loaded = True
    logger.debug("Configuration loading process completed.")


def _flatten(data: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    """Turns nested mappings into dotted keys: {'retry': {'jitter_ms': 5}} -> {'retry.jitter_ms': 5}."""
    flat: Dict[str, Any] = {}
    for key, value in data.items():
        dotted = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(_flatten(value, prefix=f"{dotted}."))
        else:
            flat[dotted] = value
    return flat


def env_var_name(key: str) -> str:
    """Maps a dotted config key to its environment variable name."""
    return ENV_PREFIX + key.upper().replace('.', '_')


def _coerce(value: str) -> Any:
    lowered = value.strip().lower()
    if lowered == 'true':
        return True
    if lowered == 'false':
        return False
    if lowered in ('none', 'null', ''):
        return None
    try:
        if '.' in lowered or 'e' in lowered:
            return float(value)
        return int(value)
    except (ValueError, TypeError):
        return value


def get_config(key: str, default: Any = None) -> Any:
    """
    Get a configuration value by key.

    Priority:
    1. Test configuration (if set)
    2. Environment variable (RPCGUARD_ prefixed)
    3. YAML config
    4. Built-in default, then ``default``

    Args:
        key: The dotted configuration key
        default: Value returned if the key is not found anywhere

    Returns:
        The configuration value
    """
    if key in _test_config:
        return _test_config[key]

    env_key = env_var_name(key)
    if env_key in os.environ:
        return _coerce(os.environ[env_key])

    if key in _config:
        return _config[key]

    if default is None and key in DEFAULTS:
        return DEFAULTS[key]

    logger.debug(f"Config key '{key}' not found. Returning default: {default}")
    return default


def set_config(key: str, value: Any) -> None:
    """Sets a configuration value for the rest of this process.

    Args:
        key: Dotted configuration key (e.g., 'retry.jitter_ms')
        value: Value to set
    """
    _config[key] = value
    os.environ[env_var_name(key)] = "" if value is None else str(value)
    logger.debug(f"Config set: {key}={value}")


def find_dotenv_path() -> Optional[Path]:
    """Searches for the .env file upwards from the current directory."""
    cwd = Path.cwd()
    for path in [cwd] + list(cwd.parents):
        env_path = path / ENV_FILE_NAME
        if env_path.is_file():
            return env_path
    return None

# --- Typed Accessors ---

def get_rate_limit_settings() -> RateLimitPolicy:
    capacity = get_config('limiter.capacity')
    return RateLimitPolicy(
        rate=float(get_config('limiter.rate')),
        capacity=int(capacity) if capacity is not None else None,
    )


def get_retry_settings() -> BackoffPolicy:
    return BackoffPolicy(
        max_attempts=int(get_config('retry.max_attempts')),
        base_delay_ms=float(get_config('retry.base_delay_ms')),
        backoff_multiplier=float(get_config('retry.backoff_multiplier')),
        jitter_ms=float(get_config('retry.jitter_ms')),
        max_delay_ms=float(get_config('retry.max_delay_ms')),
    )


def get_breaker_settings() -> CircuitBreakerPolicy:
    return CircuitBreakerPolicy(
        failure_threshold=int(get_config('breaker.failure_threshold')),
        window_seconds=float(get_config('breaker.window_seconds')),
        cooldown_seconds=float(get_config('breaker.cooldown_seconds')),
        success_threshold=int(get_config('breaker.success_threshold')),
    )


def get_bulkhead_max_concurrent() -> int:
    return int(get_config('bulkhead.max_concurrent'))


def _resolve_log_level(level: Union[int, str]) -> int:
    """Accepts a logging constant, a level name such as 'debug', or a numeric string."""
    if isinstance(level, int):
        return level
    name = str(level).strip().upper()
    if name.isdigit():
        return int(name)
    resolved = logging.getLevelName(name)
    if isinstance(resolved, int):
        return resolved
    logger.warning(f"Unknown log level '{level}', falling back to INFO.")
    return logging.INFO


def get_logging_settings(level_override: Optional[Union[int, str]] = None) -> LoggingSettings:
    """Returns logging settings with the level resolved to a logging constant.

    Args:
        level_override: Level that wins over the configured one (e.g., from --log-level).
    """
    log_file = get_config('logging.file')
    level = level_override if level_override is not None else get_config('logging.level')
    return LoggingSettings(
        level=_resolve_log_level(level),
        format=str(get_config('logging.format')),
        file=str(log_file) if log_file else None,
    )

# --- Testing Helpers ---

def set_config_for_testing(config_dict: Dict[str, Any]) -> None:
    """
    Set configuration values for testing purposes.
    These values will override any existing configuration.

    Args:
        config_dict: Dictionary of configuration values to set
    """
    _test_config.update(config_dict)
    logger.debug(f"Set testing configuration: {config_dict}")


def clear_test_config() -> None:
    """Clear all testing configuration values."""
    _test_config.clear()
    logger.debug("Cleared testing configuration")


def reset_configuration() -> None:
    """Forgets loaded configuration so the next load_configuration() re-reads sources."""
    global _loaded
    _config.clear()
    _loaded = False
