"""Tests for the versions server client."""

import aiohttp
import pytest

from aagl_cli.api.client import VersionsAPIClient
from aagl_cli.exceptions import MetadataResponseError, MetadataUnavailableError
from aagl_cli.storage.cache import CacheManager
from tests.fakes import FakeResponse, FakeSession, versions_data

URI = "https://example.org/resource"


def ok_body(data=None):
    return {"retcode": 0, "message": "OK", "data": data or versions_data()}


class TestGetMetadata:
    @pytest.mark.asyncio
    async def test_parses_ok_response(self):
        session = FakeSession(FakeResponse(body=ok_body()))
        client = VersionsAPIClient(URI, "global", session=session)

        metadata = await client.get_metadata()

        assert metadata.latest.version == "4.0.0"
        assert session.calls[0][0] == URI

    @pytest.mark.asyncio
    async def test_memoized_within_ttl(self):
        session = FakeSession(FakeResponse(body=ok_body()))
        client = VersionsAPIClient(URI, "global", session=session)

        first = await client.get_metadata()
        second = await client.get_metadata()

        assert first is second
        assert len(session.calls) == 1

    @pytest.mark.asyncio
    async def test_served_from_file_cache(self, tmp_path):
        cache = CacheManager(tmp_path)
        warm = VersionsAPIClient(
            URI, "global", cache=cache, session=FakeSession(FakeResponse(body=ok_body()))
        )
        await warm.get_metadata()

        cold_session = FakeSession()
        cold = VersionsAPIClient(URI, "global", cache=cache, session=cold_session)
        metadata = await cold.get_metadata()

        assert metadata.latest.version == "4.0.0"
        assert cold_session.calls == []

    @pytest.mark.asyncio
    async def test_channels_do_not_share_entries(self, tmp_path):
        cache = CacheManager(tmp_path)
        global_client = VersionsAPIClient(URI, "global", cache=cache)
        cn_client = VersionsAPIClient(URI, "cn", cache=cache)

        assert global_client.cache_key != cn_client.cache_key

    @pytest.mark.asyncio
    async def test_force_refresh_refetches(self, tmp_path):
        cache = CacheManager(tmp_path)
        session = FakeSession(
            FakeResponse(body=ok_body()),
            FakeResponse(body=ok_body(versions_data(latest="4.1.0", diffs=("4.0.0",)))),
        )
        client = VersionsAPIClient(URI, "global", cache=cache, session=session)

        await client.get_metadata()
        metadata = await client.get_metadata(force_refresh=True)

        assert metadata.latest.version == "4.1.0"
        assert len(session.calls) == 2

    @pytest.mark.asyncio
    async def test_invalidate_drops_cache_entry(self, tmp_path):
        cache = CacheManager(tmp_path)
        client = VersionsAPIClient(
            URI, "global", cache=cache, session=FakeSession(FakeResponse(body=ok_body()))
        )
        await client.get_metadata()

        client.invalidate()

        assert cache.get(client.cache_key) is None


class TestErrors:
    @pytest.mark.asyncio
    async def test_http_error_status(self):
        client = VersionsAPIClient(
            URI, "global", session=FakeSession(FakeResponse(status=503))
        )
        with pytest.raises(MetadataUnavailableError):
            await client.get_metadata()

    @pytest.mark.asyncio
    async def test_network_failure(self):
        client = VersionsAPIClient(
            URI,
            "global",
            session=FakeSession(aiohttp.ClientConnectionError("refused")),
        )
        with pytest.raises(MetadataUnavailableError):
            await client.get_metadata()

    @pytest.mark.asyncio
    async def test_non_ok_message_carries_retcode(self):
        body = {"retcode": -501, "message": "Invalid channel", "data": None}
        client = VersionsAPIClient(
            URI, "global", session=FakeSession(FakeResponse(body=body))
        )

        with pytest.raises(MetadataResponseError) as exc_info:
            await client.get_metadata()

        assert exc_info.value.retcode == -501

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        client = VersionsAPIClient(
            URI,
            "global",
            session=FakeSession(FakeResponse(body=ValueError("Expecting value"))),
        )
        with pytest.raises(MetadataResponseError):
            await client.get_metadata()

    @pytest.mark.asyncio
    async def test_malformed_payload(self, tmp_path):
        cache = CacheManager(tmp_path)
        body = ok_body({"game": {"diffs": []}})
        client = VersionsAPIClient(
            URI, "global", cache=cache, session=FakeSession(FakeResponse(body=body))
        )

        with pytest.raises(MetadataResponseError):
            await client.get_metadata()
        assert cache.get(client.cache_key) is None

    @pytest.mark.asyncio
    async def test_circuit_opens_after_repeated_failures(self):
        session = FakeSession(*(FakeResponse(status=500) for _ in range(4)))
        client = VersionsAPIClient(URI, "global", session=session)

        for _ in range(4):
            with pytest.raises(MetadataUnavailableError):
                await client.get_metadata()

        assert len(session.calls) == 3

    @pytest.mark.asyncio
    async def test_does_not_close_injected_session(self):
        session = FakeSession()
        client = VersionsAPIClient(URI, "global", session=session)

        await client.close()

        assert not session.closed
