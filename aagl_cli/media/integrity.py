"""
Provides methods for checking the integrity of downloaded package files.
"""

import hashlib
import logging
from pathlib import Path

log = logging.getLogger(__name__)


class FileIntegrityChecker:
    """A collection of static methods for validating package file integrity."""

    CHUNK_SIZE = 1024 * 1024

    @staticmethod
    def check_size(filepath: Path, expected_size: int | None) -> bool:
        """
        Checks that a file exists and, if a size is known, has exactly that size.

        Args:
            filepath: Path to the package file.
            expected_size: Size advertised by the server, or None.

        Returns:
            True if the file is present with the expected size, False otherwise.
        """
        try:
            actual = filepath.stat().st_size
        except OSError:
            return False
        if not filepath.is_file():
            return False
        if expected_size is not None and actual != expected_size:
            log.debug(
                f"Size mismatch for '{filepath.name}': {actual} != {expected_size}"
            )
            return False
        return True

    @classmethod
    def check_md5(cls, filepath: Path, expected_md5: str) -> bool:
        """
        Compares the MD5 digest of a file with the one advertised by the server.
        Blocking: run it in a worker thread for large files.
        """
        digest = hashlib.md5()  # noqa: S324
        try:
            with open(filepath, "rb") as f:
                while chunk := f.read(cls.CHUNK_SIZE):
                    digest.update(chunk)
        except OSError as e:
            log.debug(f"MD5 check failed for '{filepath}': {e}")
            return False

        if digest.hexdigest().lower() != expected_md5.lower():
            log.warning(f"MD5 mismatch for '{filepath.name}'")
            return False
        return True
