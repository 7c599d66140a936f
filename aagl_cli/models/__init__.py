"""
Data Models Layer.

This package contains the Pydantic models and dataclasses that define the core
data structures used throughout the application, such as the versions server
metadata, configuration, stream events and statistics.
"""

from .config import LauncherConfig
from .events import DownloadFinished, DownloadProgress, DownloadStarted, StreamEvent
from .metadata import AddOnPackage, PackageDescriptor, VersionMetadata
from .stats import DownloadStats

__all__ = [
    "AddOnPackage",
    "DownloadFinished",
    "DownloadProgress",
    "DownloadStarted",
    "DownloadStats",
    "LauncherConfig",
    "PackageDescriptor",
    "StreamEvent",
    "VersionMetadata",
]
