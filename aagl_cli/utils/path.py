"""
Utilities for handling installation directories.
"""

import os
from pathlib import Path


def create_dir(directory_path: Path) -> None:
    """Creates a directory if it does not already exist."""
    directory_path.mkdir(parents=True, exist_ok=True)


def directory_size(directory_path: Path) -> int:
    """
    Returns the apparent size in bytes of every file below `directory_path`,
    like `du -b`. Symlinks are counted by their own size and not followed.
    """
    total = 0
    for root, _dirs, files in os.walk(directory_path):
        for name in files:
            try:
                total += os.lstat(os.path.join(root, name)).st_size
            except OSError:
                # Vanished between listing and stat
                continue
    return total


def remove_lines_containing(file_path: Path, needle: str) -> bool:
    """
    Drops every line containing `needle` from a text file, like `sed -i '/needle/d'`.
    Returns False if the file does not exist.
    """
    if not file_path.is_file():
        return False
    lines = file_path.read_text(encoding="utf-8", errors="replace").splitlines(
        keepends=True
    )
    kept = [line for line in lines if needle not in line]
    if len(kept) != len(lines):
        file_path.write_text("".join(kept), encoding="utf-8")
    return True
