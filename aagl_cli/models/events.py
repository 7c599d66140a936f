"""
Typed lifecycle events emitted by download streams.

A stream emits exactly one `DownloadStarted`, then zero or more
`DownloadProgress`, then exactly one `DownloadFinished`.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class DownloadStarted:
    """The artifact is identified and the transfer is about to begin."""

    artifact: str
    bytes_total: int | None = None


@dataclass(frozen=True)
class DownloadProgress:
    """Cumulative progress plus the bytes received since the previous event."""

    artifact: str
    bytes_done: int
    bytes_total: int
    bytes_delta: int


@dataclass(frozen=True)
class DownloadFinished:
    """Transfer and any required unpack are complete."""

    artifact: str


StreamEvent = DownloadStarted | DownloadProgress | DownloadFinished
