"""Shared configuration utilities and constants.

This module provides the foundation for consistent configuration handling
across all commands (server, topics).
"""

import os
from typing import Any, Callable, Optional, TypeVar

# Type variable for config classes
T = TypeVar("T")

# === Environment Variable Prefixes ===

ENV_PREFIX_SPARKPLUG = "SPARKPLUG_"


class EnvVars:
    """Centralized environment variable names for consistent access."""

    # === Broker ===
    BROKER_HOST = f"{ENV_PREFIX_SPARKPLUG}BROKER_HOST"
    BROKER_PORT = f"{ENV_PREFIX_SPARKPLUG}BROKER_PORT"
    CLIENT_ID = f"{ENV_PREFIX_SPARKPLUG}CLIENT_ID"
    USERNAME = f"{ENV_PREFIX_SPARKPLUG}USERNAME"
    PASSWORD = f"{ENV_PREFIX_SPARKPLUG}PASSWORD"
    USE_TLS = f"{ENV_PREFIX_SPARKPLUG}USE_TLS"
    CA_CERTS = f"{ENV_PREFIX_SPARKPLUG}CA_CERTS"
    KEEPALIVE = f"{ENV_PREFIX_SPARKPLUG}KEEPALIVE"
    RECONNECT_INTERVAL = f"{ENV_PREFIX_SPARKPLUG}RECONNECT_INTERVAL"
    QOS = f"{ENV_PREFIX_SPARKPLUG}QOS"
    USE_MOCK = f"{ENV_PREFIX_SPARKPLUG}USE_MOCK"

    # === Node identity ===
    NAMESPACE = f"{ENV_PREFIX_SPARKPLUG}NAMESPACE"
    GROUP_ID = f"{ENV_PREFIX_SPARKPLUG}GROUP_ID"
    EDGE_NODE_ID = f"{ENV_PREFIX_SPARKPLUG}EDGE_NODE_ID"

    # === Session policy ===
    ADD_SESSION_NUMBER_TO_DATA = f"{ENV_PREFIX_SPARKPLUG}ADD_SESSION_NUMBER_TO_DATA"
    REPUBLISH_DEVICES_ON_RECONNECT = f"{ENV_PREFIX_SPARKPLUG}REPUBLISH_DEVICES_ON_RECONNECT"
    KNOWN_METRICS = f"{ENV_PREFIX_SPARKPLUG}KNOWN_METRICS"
    RESERVED_METRIC_NAMES = f"{ENV_PREFIX_SPARKPLUG}RESERVED_METRIC_NAMES"

    # === API ===
    API_HOST = f"{ENV_PREFIX_SPARKPLUG}API_HOST"
    API_PORT = f"{ENV_PREFIX_SPARKPLUG}API_PORT"
    API_BEARER_TOKEN = f"{ENV_PREFIX_SPARKPLUG}API_BEARER_TOKEN"

    # === Metrics ===
    METRICS_ENABLED = f"{ENV_PREFIX_SPARKPLUG}METRICS_ENABLED"

    # === Write Operations ===
    ENABLE_WRITE = f"{ENV_PREFIX_SPARKPLUG}ENABLE_WRITE"

    # === Logging ===
    LOG_LEVEL = f"{ENV_PREFIX_SPARKPLUG}LOG_LEVEL"
    LOG_FORMAT = f"{ENV_PREFIX_SPARKPLUG}LOG_FORMAT"

    # === Webhooks ===
    WEBHOOK_NODE_COMMAND = f"{ENV_PREFIX_SPARKPLUG}WEBHOOK_NODE_COMMAND"
    WEBHOOK_DEVICE_COMMAND = f"{ENV_PREFIX_SPARKPLUG}WEBHOOK_DEVICE_COMMAND"
    WEBHOOK_NODE_COMMAND_JSONPATH = f"{ENV_PREFIX_SPARKPLUG}WEBHOOK_NODE_COMMAND_JSONPATH"
    WEBHOOK_DEVICE_COMMAND_JSONPATH = f"{ENV_PREFIX_SPARKPLUG}WEBHOOK_DEVICE_COMMAND_JSONPATH"
    WEBHOOK_TIMEOUT = f"{ENV_PREFIX_SPARKPLUG}WEBHOOK_TIMEOUT"
    WEBHOOK_RETRY_COUNT = f"{ENV_PREFIX_SPARKPLUG}WEBHOOK_RETRY_COUNT"


_TRUE_VALUES = frozenset({"true", "1", "yes", "on"})
_FALSE_VALUES = frozenset({"false", "0", "no", "off", ""})


def parse_bool(value: str) -> bool:
    """
    Parse a boolean environment value.

    Raises:
        ValueError: If the value is not a recognised true/false spelling
    """
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ValueError(f"Expected a boolean, got {value!r}")


def get_env_value(env_var: str, default: T, type_converter: Callable[[str], Any] = str) -> T:
    """
    Read env_var and convert it, or return default when it is unset.

    Raises:
        ValueError: If the value cannot be converted
    """
    env_value = os.getenv(env_var)
    if env_value is None:
        return default
    # bool("false") is True
    if type_converter is bool:
        type_converter = parse_bool
    try:
        return type_converter(env_value)
    except ValueError as e:
        raise ValueError(f"Invalid value for {env_var}: {e}") from e


def get_config_value(
    cli_arg: Optional[Any],
    env_var: str,
    default: T,
    type_converter: Callable[[str], Any] = str,
) -> T:
    """
    Get a configuration value with priority: CLI > Environment > Default.

    Args:
        cli_arg: CLI argument value, None when the option was not given
        env_var: Environment variable name
        default: Value used when neither is set
        type_converter: Converter applied to the environment string

    Returns:
        The resolved configuration value
    """
    # CLI argument takes precedence
    if cli_arg is not None:
        return cli_arg
    return get_env_value(env_var, default, type_converter)


def get_bool_config_value(
    cli_flag: bool,
    env_var: str,
    default: bool,
    invert_cli: bool = False,
) -> bool:
    """
    Get a boolean configuration value from a CLI flag or the environment.

    CLI flags can only switch a setting away from its default, so an unset
    flag defers to the environment. With invert_cli a set --no-* flag
    resolves to False.
    """
    if cli_flag:
        return not invert_cli
    return get_env_value(env_var, default, bool)


def split_list(value: Optional[str]) -> tuple:
    """Split a comma-separated string into a tuple of stripped, non-empty items."""
    if not value:
        return ()
    return tuple(item.strip() for item in value.split(",") if item.strip())
