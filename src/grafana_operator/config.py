"""Configuration loading from environment variables."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Prefix shared by every environment variable read here
ENV_PREFIX = "GRAFANA_OPERATOR_"

# Valid log levels
VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

# Port validation bounds
MIN_PORT = 1
MAX_PORT = 65535

# Image defaults
DEFAULT_GRAFANA_IMAGE = "grafana/grafana"
DEFAULT_GRAFANA_IMAGE_TAG = "7.1.1"
DEFAULT_PLUGINS_INIT_IMAGE = "quay.io/integreatly/grafana_plugins_init"
DEFAULT_PLUGINS_INIT_TAG = "0.0.3"
DEFAULT_JSONNET_LOCATION = "/opt/jsonnet"


@dataclass(frozen=True)
class Config:
    """Operator configuration loaded from environment.

    This dataclass is frozen (immutable) to prevent accidental modification
    after creation.
    """

    # Namespace to watch; empty watches every namespace
    watch_namespace: str = ""

    # Worker pool size per resource kind
    max_concurrent_reconciles: int = 10

    # Fixed delay before a resource is reconciled again
    requeue_delay: float = 10.0  # seconds

    # Per-request timeout for the Grafana REST API
    client_timeout: float = 5.0  # seconds

    # Seconds after which a watch stream is restarted and everything re-listed
    resync_period: int = 300

    # Logging
    log_level: str = "INFO"
    log_json: bool = False
    diagnostic_tags: str = ""

    # Images
    grafana_image: str = DEFAULT_GRAFANA_IMAGE
    grafana_image_tag: str = DEFAULT_GRAFANA_IMAGE_TAG
    plugins_init_image: str = DEFAULT_PLUGINS_INIT_IMAGE
    plugins_init_tag: str = DEFAULT_PLUGINS_INIT_TAG

    # Library search path handed to the jsonnet evaluator
    jsonnet_location: str = DEFAULT_JSONNET_LOCATION

    # Health probe server
    health_enabled: bool = True
    health_host: str = "0.0.0.0"
    health_port: int = 8081


def _parse_positive_int(value: str, name: str, default: int) -> int:
    """Parse a string as a positive integer with validation.

    Args:
        value: The string value to parse.
        name: The name of the setting (for error messages).
        default: The default value to use if parsing fails.

    Returns:
        The parsed positive integer, or the default if invalid.

    Logs a warning if the value is invalid.
    """
    try:
        parsed = int(value)
        if parsed <= 0:
            logging.warning(
                "Invalid %s: %d is not positive, using default %d",
                name,
                parsed,
                default,
            )
            return default
        return parsed
    except ValueError:
        logging.warning(
            "Invalid %s: '%s' is not a valid integer, using default %d",
            name,
            value,
            default,
        )
        return default


def _parse_positive_float(value: str, name: str, default: float) -> float:
    """Parse a string as a strictly positive float with validation.

    Args:
        value: The string value to parse.
        name: The name of the setting (for error messages).
        default: The default value to use if parsing fails.

    Returns:
        The parsed float, or the default if invalid.
    """
    try:
        parsed = float(value)
        if parsed <= 0:
            logging.warning(
                "Invalid %s: %s is not positive, using default %s",
                name,
                parsed,
                default,
            )
            return default
        return parsed
    except ValueError:
        logging.warning(
            "Invalid %s: '%s' is not a valid number, using default %s",
            name,
            value,
            default,
        )
        return default


def _parse_port(value: str, name: str, default: int) -> int:
    """Parse a string as a valid TCP port number with range validation.

    Args:
        value: The string value to parse.
        name: The name of the setting (for error messages).
        default: The default value to use if parsing fails.

    Returns:
        The parsed port number (MIN_PORT-MAX_PORT), or the default if invalid.

    Logs a warning if the value is invalid or out of range.
    """
    try:
        parsed = int(value)
        if parsed < MIN_PORT or parsed > MAX_PORT:
            logging.warning(
                "Invalid %s: %d is not a valid port (must be %d-%d), using default %d",
                name,
                parsed,
                MIN_PORT,
                MAX_PORT,
                default,
            )
            return default
        return parsed
    except ValueError:
        logging.warning(
            "Invalid %s: '%s' is not a valid integer, using default %d",
            name,
            value,
            default,
        )
        return default


def _validate_log_level(value: str, default: str = "INFO") -> str:
    """Validate and normalize a log level string.

    Args:
        value: The log level string to validate.
        default: The default value to use if invalid.

    Returns:
        The validated log level (uppercase), or the default if invalid.
    """
    normalized = value.upper()
    if normalized not in VALID_LOG_LEVELS:
        logging.warning(
            "Invalid %sLOG_LEVEL: '%s' is not valid, using default '%s'. Valid values: %s",
            ENV_PREFIX,
            value,
            default,
            ", ".join(sorted(VALID_LOG_LEVELS)),
        )
        return default
    return normalized


def _parse_bool(value: str) -> bool:
    """Parse a string as a boolean.

    Args:
        value: The string value to parse.

    Returns:
        True if value is "true", "1", or "yes" (case-insensitive), False otherwise.
    """
    return value.lower() in ("true", "1", "yes")


def _env(name: str, default: str = "") -> str:
    return os.getenv(f"{ENV_PREFIX}{name}", default)


def load_config(env_file: Path | None = None) -> Config:
    """Load configuration from environment variables.

    Args:
        env_file: Optional path to .env file. If not provided,
                  looks for .env in current directory.

    Returns:
        Config object with loaded values.

    Values are validated and defaults are used for invalid inputs:
    - Integer and float values must be positive
    - Ports must be within 1-65535
    - LOG_LEVEL must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL
    """
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    max_concurrent_reconciles = _parse_positive_int(
        _env("MAX_CONCURRENT_RECONCILES", "10"),
        f"{ENV_PREFIX}MAX_CONCURRENT_RECONCILES",
        10,
    )
    requeue_delay = _parse_positive_float(
        _env("REQUEUE_DELAY", "10"),
        f"{ENV_PREFIX}REQUEUE_DELAY",
        10.0,
    )
    client_timeout = _parse_positive_float(
        _env("CLIENT_TIMEOUT", "5"),
        f"{ENV_PREFIX}CLIENT_TIMEOUT",
        5.0,
    )
    resync_period = _parse_positive_int(
        _env("RESYNC_PERIOD", "300"),
        f"{ENV_PREFIX}RESYNC_PERIOD",
        300,
    )

    health_port = _parse_port(
        _env("HEALTH_PORT", "8081"),
        f"{ENV_PREFIX}HEALTH_PORT",
        8081,
    )

    return Config(
        watch_namespace=_env("WATCH_NAMESPACE").strip(),
        max_concurrent_reconciles=max_concurrent_reconciles,
        requeue_delay=requeue_delay,
        client_timeout=client_timeout,
        resync_period=resync_period,
        log_level=_validate_log_level(_env("LOG_LEVEL", "INFO")),
        log_json=_parse_bool(_env("LOG_JSON")),
        diagnostic_tags=_env("DIAGNOSTIC_TAGS"),
        grafana_image=_env("GRAFANA_IMAGE") or DEFAULT_GRAFANA_IMAGE,
        grafana_image_tag=_env("GRAFANA_IMAGE_TAG") or DEFAULT_GRAFANA_IMAGE_TAG,
        plugins_init_image=_env("PLUGINS_INIT_IMAGE") or DEFAULT_PLUGINS_INIT_IMAGE,
        plugins_init_tag=_env("PLUGINS_INIT_TAG") or DEFAULT_PLUGINS_INIT_TAG,
        jsonnet_location=_env("JSONNET_LOCATION") or DEFAULT_JSONNET_LOCATION,
        health_enabled=_parse_bool(_env("HEALTH_ENABLED", "true")),
        health_host=_env("HEALTH_HOST", "0.0.0.0"),
        health_port=health_port,
    )


__all__ = [
    "Config",
    "ENV_PREFIX",
    "load_config",
]
