"""
Handles the low-level downloading of package archives over HTTP with resumable
transfers, and exposes each transfer as a stream of lifecycle events.
"""

import asyncio
import logging
import zipfile
from collections.abc import AsyncIterator, Callable
from pathlib import Path

import aiofiles
import aiohttp

from aagl_cli.exceptions import TransportError, UnpackError
from aagl_cli.models.events import (
    DownloadFinished,
    DownloadProgress,
    DownloadStarted,
    StreamEvent,
)
from aagl_cli.models.metadata import artifact_name_from_uri
from aagl_cli.utils.path import create_dir

log = logging.getLogger(__name__)

PART_SUFFIX = ".part"

_connection_pool: aiohttp.ClientSession | None = None
_pool_lock = asyncio.Lock()


async def get_connection_pool() -> aiohttp.ClientSession:
    """
    Gets or creates a shared aiohttp ClientSession for downloads.

    This function ensures that only one connection pool is created for the
    lifetime of the application run.
    """
    global _connection_pool
    async with _pool_lock:
        if _connection_pool and not _connection_pool.closed:
            return _connection_pool

        connector = aiohttp.TCPConnector(
            limit=4,
            limit_per_host=2,
            ttl_dns_cache=600,  # 10 minutes
            keepalive_timeout=30,
            enable_cleanup_closed=True,
        )
        # Packages are several GB: no total timeout, only stalled sockets fail
        timeout = aiohttp.ClientTimeout(total=None, sock_connect=15, sock_read=90)
        _connection_pool = aiohttp.ClientSession(connector=connector, timeout=timeout)
        log.debug("Created download connection pool")

    return _connection_pool


async def close_connection_pool() -> None:
    """Closes the shared global connection pool."""
    global _connection_pool
    async with _pool_lock:
        if _connection_pool and not _connection_pool.closed:
            await _connection_pool.close()
            _connection_pool = None
            log.debug("Shared downloader connection pool closed.")


def _extract_zip(archive: Path, destination: Path) -> None:
    if not zipfile.is_zipfile(archive):
        raise UnpackError(f"'{archive.name}' is not a zip archive.")
    try:
        with zipfile.ZipFile(archive) as zf:
            zf.extractall(destination)
    except (zipfile.BadZipFile, OSError) as e:
        raise UnpackError(f"Failed to unpack '{archive.name}': {e}") from e


async def unpack_archive(archive: Path, destination: Path) -> None:
    """Extracts a zip archive into `destination`, then removes the archive."""
    log.debug(f"Unpacking '{archive.name}' into '{destination}'")
    await asyncio.to_thread(_extract_zip, archive, destination)
    await asyncio.to_thread(archive.unlink)


class Downloader:
    """A low-level file downloader with retry logic and Range-based resume."""

    CHUNK_SIZE = 1048576  # 1 MB

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.5,
        session: aiohttp.ClientSession | None = None,
    ):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._session = session

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is not None:
            return self._session
        return await get_connection_pool()

    async def fetch(
        self, url: str, part_path: Path, expected_size: int | None = None
    ) -> AsyncIterator[tuple[int, int, int]]:
        """
        Downloads `url` into `part_path`, resuming from any bytes already there.

        Yields (bytes_done, bytes_total, bytes_delta) after every chunk. Both
        counters never decrease, even when a retry has to start over.

        Raises:
            TransportError: When every attempt failed.
        """
        reported = 0
        reported_total = expected_size or 0
        last_exception: Exception | None = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                offset = part_path.stat().st_size if part_path.is_file() else 0
                headers = {"Range": f"bytes={offset}-"} if offset else {}

                session = await self._get_session()
                async with session.get(
                    url, headers=headers, allow_redirects=True
                ) as response:
                    if response.status == 416:
                        # Our partial file does not fit the remote one anymore
                        part_path.unlink(missing_ok=True)
                        raise TransportError(f"Range not satisfiable for '{url}'")
                    response.raise_for_status()

                    resumed = response.status == 206
                    done = offset if resumed else 0
                    if resumed:
                        log.debug(f"Resuming '{part_path.name}' at {offset} bytes")
                        # Bytes already on disk are not part of this transfer
                        reported = max(reported, offset)

                    if response.content_length is not None:
                        reported_total = max(
                            reported_total, done + response.content_length
                        )

                    async with aiofiles.open(part_path, "ab" if resumed else "wb") as f:
                        async for chunk in response.content.iter_chunked(
                            self.CHUNK_SIZE
                        ):
                            await f.write(chunk)
                            done += len(chunk)
                            if done > reported:
                                delta = done - reported
                                reported = done
                                reported_total = max(reported_total, reported)
                                yield reported, reported_total, delta

                if expected_size is not None and done != expected_size:
                    part_path.unlink(missing_ok=True)
                    raise TransportError(
                        f"'{part_path.name}' has {done} bytes, expected {expected_size}"
                    )
                return
            except (aiohttp.ClientError, asyncio.TimeoutError, TransportError) as e:
                last_exception = e
                log.debug(
                    f"Download attempt {attempt}/{self.max_attempts} for "
                    f"'{part_path.name}' failed: {e}. Retrying..."
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.base_delay * (2 ** (attempt - 1)))
            except OSError as e:
                raise TransportError(
                    f"Cannot write '{part_path}': {e}"
                ) from e

        raise TransportError(
            f"Download of '{url}' failed after {self.max_attempts} attempts: "
            f"{last_exception}"
        ) from last_exception


class DownloadStream:
    """
    One package transfer: download into `destination_dir`, then unpack unless
    `skip_unpack` is set (pre-downloads keep the raw archive).

    Consume it either by iterating `events()` or by registering callbacks with
    `on_start`/`on_progress`/`on_finish` and awaiting `run()`. A stream can be
    consumed once.
    """

    def __init__(
        self,
        uri: str,
        destination_dir: Path,
        file_name: str | None = None,
        expected_size: int | None = None,
        skip_unpack: bool = False,
        downloader: Downloader | None = None,
    ):
        self.uri = uri
        self.destination_dir = destination_dir
        self.file_name = file_name or artifact_name_from_uri(uri)
        self.expected_size = expected_size
        self.skip_unpack = skip_unpack
        self._downloader = downloader or Downloader()
        self._start_handlers: list[Callable[[], None]] = []
        self._progress_handlers: list[Callable[[int, int, int], None]] = []
        self._finish_handlers: list[Callable[[], None]] = []
        self._consumed = False

    @property
    def destination(self) -> Path:
        return self.destination_dir / self.file_name

    def on_start(self, callback: Callable[[], None]) -> None:
        self._start_handlers.append(callback)

    def on_progress(self, callback: Callable[[int, int, int], None]) -> None:
        self._progress_handlers.append(callback)

    def on_finish(self, callback: Callable[[], None]) -> None:
        self._finish_handlers.append(callback)

    async def events(self) -> AsyncIterator[StreamEvent]:
        if self._consumed:
            raise RuntimeError("A download stream can only be consumed once.")
        self._consumed = True

        await asyncio.to_thread(create_dir, self.destination_dir)
        part_path = self.destination.with_name(self.file_name + PART_SUFFIX)

        log.debug(f"Downloading '{self.uri}' to '{self.destination}'")
        yield DownloadStarted(self.file_name, self.expected_size)

        async for done, total, delta in self._downloader.fetch(
            self.uri, part_path, self.expected_size
        ):
            yield DownloadProgress(self.file_name, done, total, delta)

        await asyncio.to_thread(part_path.replace, self.destination)
        if not self.skip_unpack:
            await unpack_archive(self.destination, self.destination_dir)

        yield DownloadFinished(self.file_name)

    async def run(self) -> None:
        """Consumes the stream, dispatching every event to the registered callbacks."""
        async for event in self.events():
            if isinstance(event, DownloadStarted):
                for callback in self._start_handlers:
                    callback()
            elif isinstance(event, DownloadProgress):
                for callback in self._progress_handlers:
                    callback(event.bytes_done, event.bytes_total, event.bytes_delta)
            else:
                for callback in self._finish_handlers:
                    callback()
