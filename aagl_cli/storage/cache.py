"""
File-backed store for versions server responses, one JSON document per key.

Each entry records when it expires, so a document fetched under one TTL keeps
that TTL even if the configuration changes before it is read again.
"""

import hashlib
import json
import logging
import time
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

log = logging.getLogger(__name__)


class CacheManager:
    """JSON file cache with per-entry expiry, invalidation and hit/miss reporting."""

    MAX_CACHE_VALUE_KB = 2048

    def __init__(
        self,
        cache_dir_path: Path,
        max_age_seconds: int = 6 * 3600,
        stats_callback: Callable[[bool], None] | None = None,
    ):
        """
        Args:
            cache_dir_path: Directory the `cache/` folder is created in.
            max_age_seconds: Lifetime given to entries written by `set()`.
            stats_callback: Called with True on a hit and False on a miss.
        """
        self.cache_dir = cache_dir_path / "cache"
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.max_age_seconds = max_age_seconds
        self._stats_callback = stats_callback

    def _get_cache_path(self, key: str) -> Path:
        digest = hashlib.md5(key.encode("utf-8")).hexdigest()  # noqa: S324
        return self.cache_dir / f"{digest}.json"

    def _entries(self) -> Iterator[Path]:
        yield from self.cache_dir.glob("*.json")

    @staticmethod
    def _load(path: Path) -> dict[str, Any] | None:
        """Reads an entry file; None when it is missing or unreadable."""
        try:
            with open(path, encoding="utf-8") as f:
                entry = json.load(f)
        except FileNotFoundError:
            return None
        except (json.JSONDecodeError, OSError) as e:
            log.debug(f"Unreadable cache entry '{path.name}': {e}")
            return None
        return entry if isinstance(entry, dict) else None

    def _is_expired(self, entry: dict[str, Any]) -> bool:
        return time.time() >= entry.get("expires_at", 0)

    def get(self, key: str) -> Any | None:
        """Returns the stored value, or None on a miss. Expired entries are removed."""
        path = self._get_cache_path(key)
        entry = self._load(path)

        hit = entry is not None and not self._is_expired(entry)
        if entry is not None and not hit:
            log.debug(f"Cache entry '{key}' expired")
            path.unlink(missing_ok=True)

        if self._stats_callback:
            self._stats_callback(hit)
        return entry.get("value") if hit else None

    def set(self, key: str, value: Any) -> bool:
        """Stores `value` under `key`. Returns False if it is too large or unwritable."""
        now = time.time()
        entry = {
            "key": key,
            "stored_at": now,
            "expires_at": now + self.max_age_seconds,
            "value": value,
        }
        try:
            serialized = json.dumps(entry)
        except TypeError as e:
            log.warning(f"Cannot cache '{key}': {e}")
            return False

        size_kb = len(serialized) / 1024
        if size_kb > self.MAX_CACHE_VALUE_KB:
            log.debug(f"Not caching '{key}': {size_kb:.1f} KB exceeds the limit")
            return False

        path = self._get_cache_path(key)
        tmp_path = path.with_suffix(".tmp")
        try:
            tmp_path.write_text(serialized, encoding="utf-8")
            tmp_path.replace(path)
        except OSError as e:
            log.warning(f"Cache write failed for '{key}': {e}")
            return False
        return True

    def invalidate(self, key: str) -> bool:
        """Drops a single entry. Returns True if something was removed."""
        try:
            self._get_cache_path(key).unlink()
        except FileNotFoundError:
            return False
        log.debug(f"Invalidated cache entry '{key}'")
        return True

    def cleanup_expired(self) -> int:
        """Removes every expired or unreadable entry and returns how many were removed."""
        removed = 0
        for path in self._entries():
            entry = self._load(path)
            if entry is None or self._is_expired(entry):
                path.unlink(missing_ok=True)
                removed += 1
        if removed:
            log.debug(f"Cache cleanup removed {removed} entries")
        return removed

    def clear(self) -> bool:
        """Removes all entries."""
        log.info("Clearing all cache entries...")
        try:
            for path in self._entries():
                path.unlink()
        except OSError as e:
            log.error(f"Failed to clear cache: {e}")
            return False
        return True
