"""Configuration management for election hosts."""

from .config import (
    SystemConfig,
    AuditoriumConfig,
    CryptoConfig,
    ConfigError,
    config_from_dict,
    load_config,
    save_config
)

__all__ = [
    'SystemConfig',
    'AuditoriumConfig',
    'CryptoConfig',
    'ConfigError',
    'config_from_dict',
    'load_config',
    'save_config'
]
