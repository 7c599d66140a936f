"""
Async client for the launcher versions server with a TTL cache and circuit breaker
protection.
"""

import asyncio
import logging
import time
from typing import Any

import aiohttp
from pydantic import ValidationError

from aagl_cli.exceptions import MetadataResponseError, MetadataUnavailableError
from aagl_cli.models.metadata import ServerResponse, VersionMetadata
from aagl_cli.storage.cache import CacheManager
from aagl_cli.utils.circuit_breaker import CircuitBreaker, CircuitBreakerError

log = logging.getLogger(__name__)


class VersionsAPIClient:
    """
    Fetches and caches the version metadata of one distribution channel.

    The parsed document is memoized in-process and persisted through the
    `CacheManager`; both expire after the same TTL and are dropped together by
    `invalidate()`.
    """

    def __init__(
        self,
        versions_uri: str,
        channel: str,
        cache: CacheManager | None = None,
        ttl_seconds: int = 6 * 3600,
        session: aiohttp.ClientSession | None = None,
    ):
        """
        Initializes the API client.

        Args:
            versions_uri: URL of the versions resource for the channel.
            channel: Distribution channel name, used as the cache key.
            cache: File cache shared between runs. None disables it.
            ttl_seconds: Freshness window of a fetched document.
            session: Optional externally managed aiohttp session.
        """
        self.versions_uri = versions_uri
        self.channel = channel
        self.ttl_seconds = ttl_seconds
        self._cache = cache
        self._session = session
        self._owns_session = session is None
        self._memo: tuple[float, VersionMetadata] | None = None

        # Circuit breaker for API resilience
        self._circuit_breaker = CircuitBreaker(
            failure_threshold=3,
            recovery_timeout=60,
            success_threshold=1,
        )

    @property
    def cache_key(self) -> str:
        return f"versions.ServerResponse.{self.channel}"

    async def _initialize_session(self) -> None:
        """Ensures an active aiohttp session is available with compression enabled."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"Accept-Encoding": "gzip, deflate"},
                timeout=aiohttp.ClientTimeout(total=30, connect=10),
            )
            self._owns_session = True

    async def close(self) -> None:
        """Gracefully closes the aiohttp session if this client created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    def invalidate(self) -> None:
        """Forgets the memoized and cached document for this channel."""
        self._memo = None
        if self._cache:
            self._cache.invalidate(self.cache_key)

    async def fetch_raw(self) -> dict[str, Any]:
        """
        Fetches the `data` payload of the versions resource.

        Raises:
            MetadataUnavailableError: Network failure or non-success HTTP status.
            MetadataResponseError: Non-OK application status or malformed body.
        """
        await self._initialize_session()

        try:
            async with self._circuit_breaker:
                start_time = time.monotonic()
                async with self._session.get(self.versions_uri) as r:
                    duration_ms = (time.monotonic() - start_time) * 1000
                    log.debug(
                        f"Versions server answered {r.status} in {duration_ms:.0f} ms"
                    )
                    if r.status != 200:
                        raise MetadataUnavailableError(
                            f"Versions server is unreachable (HTTP {r.status})."
                        )
                    body = await r.json(content_type=None)
        except CircuitBreakerError as e:
            raise MetadataUnavailableError(str(e)) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise MetadataUnavailableError(
                f"Versions server is unreachable: {e}"
            ) from e
        except ValueError as e:
            raise MetadataResponseError(
                f"Versions server returned invalid JSON: {e}"
            ) from e

        try:
            response = ServerResponse.model_validate(body)
        except ValidationError as e:
            raise MetadataResponseError(f"Unexpected versions response: {e}") from e

        if not response.ok or response.data is None:
            raise MetadataResponseError(
                f"Versions server responds with an error: "
                f"[{response.retcode}] {response.message}",
                retcode=response.retcode,
            )
        return response.data

    @staticmethod
    def _parse(data: dict[str, Any]) -> VersionMetadata:
        try:
            return VersionMetadata.model_validate(data)
        except ValidationError as e:
            raise MetadataResponseError(f"Malformed version metadata: {e}") from e

    async def get_metadata(self, force_refresh: bool = False) -> VersionMetadata:
        """
        Returns the channel's version metadata, fetching it on a cache miss or
        expiry.
        """
        if force_refresh:
            self.invalidate()

        if self._memo and time.monotonic() - self._memo[0] < self.ttl_seconds:
            return self._memo[1]

        cached = self._cache.get(self.cache_key) if self._cache else None
        if cached is not None:
            try:
                metadata = VersionMetadata.model_validate(cached)
                self._memo = (time.monotonic(), metadata)
                return metadata
            except ValidationError:
                log.debug("Cached version metadata is stale or corrupt; refetching.")
                self._cache.invalidate(self.cache_key)

        log.debug(f"Fetching version metadata for channel '{self.channel}'")
        data = await self.fetch_raw()
        metadata = self._parse(data)

        if self._cache:
            self._cache.set(self.cache_key, data)
        self._memo = (time.monotonic(), metadata)
        return metadata
