"""
Storage Layer.

This package handles all data persistence, including the configuration file
and the versions metadata cache.
"""

from .cache import CacheManager
from .config_manager import ConfigManager

__all__ = ["CacheManager", "ConfigManager"]
