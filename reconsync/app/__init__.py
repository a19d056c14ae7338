"""Application configuration."""

from .config import (
    AppConfig,
    BranchConfig,
    ConfigError,
    ConfigHolder,
    Credentials,
    SyncDefaults,
    load_app_config,
)

__all__ = [
    "AppConfig",
    "BranchConfig",
    "ConfigError",
    "ConfigHolder",
    "Credentials",
    "SyncDefaults",
    "load_app_config",
]
