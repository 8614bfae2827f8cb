"""Configuration package for UniMedia."""

from unimedia.config.app_config import (
    AppConfig,
    ClientConfig,
    ConfigError,
    ServerConfig,
    StoreConfig,
    clear_config_cache,
    load_app_config,
)

__all__ = [
    "AppConfig",
    "ClientConfig",
    "ConfigError",
    "ServerConfig",
    "StoreConfig",
    "clear_config_cache",
    "load_app_config",
]
