"""
Versions API Layer.

This package handles all communication with the launcher versions server.
"""

from .client import VersionsAPIClient

__all__ = ["VersionsAPIClient"]
