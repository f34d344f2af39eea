"""Core package containing configuration and logging managers."""

from mixerpack.core.config_manager import ConfigManager, ConfigSchema
from mixerpack.core.logging_manager import LoggingManager

__all__ = ["ConfigManager", "ConfigSchema", "LoggingManager"]
