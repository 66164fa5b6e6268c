"""Configuration module for the Sparkplug edge node.

Usage:
    from sparkplug_node.config import Config
    from sparkplug_node.config.base import EnvVars, get_config_value

All environment variables use the SPARKPLUG_* prefix.
"""

from .base import (
    ENV_PREFIX_SPARKPLUG,
    EnvVars,
    get_bool_config_value,
    get_config_value,
    get_env_value,
    parse_bool,
    split_list,
)
from .server import Config

__all__ = [
    "Config",
    "EnvVars",
    "get_config_value",
    "get_env_value",
    "get_bool_config_value",
    "parse_bool",
    "split_list",
    "ENV_PREFIX_SPARKPLUG",
]
