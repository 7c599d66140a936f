"""
Dataclass for tracking update session statistics.
"""

import time
from dataclasses import dataclass, field


@dataclass
class DownloadStats:
    """Tracks statistics for an update session, including real-time speed."""

    packages_downloaded: int = 0
    packages_skipped_complete: int = 0
    packages_skipped_current: int = 0
    bytes_transferred: int = 0
    cache_hits: int = 0
    cache_misses: int = 0

    # Real-time speed calculation fields
    current_speed_bps: float = 0.0
    peak_speed_bps: float = 0.0
    _speed_samples: list[float] = field(default_factory=list, repr=False)
    _last_progress_time: float = field(default=0.0, repr=False)
    _last_progress_bytes: int = field(default=0, repr=False)

    def __post_init__(self):
        self._last_progress_time = time.monotonic()

    def record_cache(self, is_hit: bool) -> None:
        if is_hit:
            self.cache_hits += 1
        else:
            self.cache_misses += 1

    def add_transferred(self, delta: int) -> None:
        """
        Adds freshly transferred bytes and refreshes the speed estimate.

        Args:
            delta: Bytes received since the previous progress event.
        """
        self.bytes_transferred += delta
        now = time.monotonic()
        elapsed = now - self._last_progress_time

        # Update speed roughly twice per second
        if elapsed > 0.5:
            bytes_diff = self.bytes_transferred - self._last_progress_bytes
            if bytes_diff > 0:
                self._speed_samples.append(bytes_diff / elapsed)
                # Keep a sliding window of the last 10 speed samples
                if len(self._speed_samples) > 10:
                    self._speed_samples.pop(0)
                self.current_speed_bps = sum(self._speed_samples) / len(
                    self._speed_samples
                )
                self.peak_speed_bps = max(self.peak_speed_bps, self.current_speed_bps)

            self._last_progress_time = now
            self._last_progress_bytes = self.bytes_transferred
