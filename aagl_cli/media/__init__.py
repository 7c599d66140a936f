"""
Transfer Layer.

This package is responsible for all package file operations: downloading,
unpacking and integrity validation.
"""

from .downloader import Downloader, DownloadStream
from .integrity import FileIntegrityChecker

__all__ = ["DownloadStream", "Downloader", "FileIntegrityChecker"]
