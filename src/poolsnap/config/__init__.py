"""Configuration loading for poolsnap."""

from .settings import DEFAULT_API_URL, ConfigError, Settings, load_env_file

__all__ = [
    "ConfigError",
    "DEFAULT_API_URL",
    "Settings",
    "load_env_file",
]
