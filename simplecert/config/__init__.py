"""Configuration management for simplecert."""

from .manager import DEFAULT_CONFIG, Config, ConfigManager
from .schemas import CONFIG_SCHEMA
from .validator import ConfigValidator

__all__ = ["Config", "ConfigManager", "ConfigValidator", "CONFIG_SCHEMA", "DEFAULT_CONFIG"]
