"""Tests for resumable downloads and download streams."""

import io
import zipfile

import aiohttp
import pytest

from aagl_cli.exceptions import TransportError, UnpackError
from aagl_cli.media.downloader import PART_SUFFIX, Downloader, DownloadStream
from aagl_cli.models.events import DownloadFinished, DownloadProgress, DownloadStarted
from tests.fakes import FakeResponse, FakeSession

URL = "https://cdn.example.org/voice.zip"


def _zip_bytes(files: dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return buffer.getvalue()


async def _fetch_all(downloader, part_path, expected_size=None):
    return [item async for item in downloader.fetch(URL, part_path, expected_size)]


class TestDownloader:
    @pytest.mark.asyncio
    async def test_fresh_download(self, tmp_path):
        session = FakeSession(
            FakeResponse(chunks=[b"a" * 5, b"b" * 5], content_length=10)
        )
        part = tmp_path / "pkg.zip.part"

        progress = await _fetch_all(Downloader(session=session), part, 10)

        assert progress == [(5, 10, 5), (10, 10, 5)]
        assert part.read_bytes() == b"a" * 5 + b"b" * 5
        assert session.calls[0][1]["headers"] == {}

    @pytest.mark.asyncio
    async def test_resumes_from_partial_file(self, tmp_path):
        part = tmp_path / "pkg.zip.part"
        part.write_bytes(b"a" * 4)
        session = FakeSession(
            FakeResponse(status=206, chunks=[b"b" * 6], content_length=6)
        )

        progress = await _fetch_all(Downloader(session=session), part, 10)

        assert session.calls[0][1]["headers"] == {"Range": "bytes=4-"}
        assert progress[-1][0] == 10
        assert part.read_bytes() == b"a" * 4 + b"b" * 6

    @pytest.mark.asyncio
    async def test_resumed_delta_counts_only_new_bytes(self, tmp_path):
        part = tmp_path / "pkg.zip.part"
        part.write_bytes(b"a" * 4)
        session = FakeSession(
            FakeResponse(status=206, chunks=[b"b" * 3, b"c" * 3], content_length=6)
        )

        progress = await _fetch_all(Downloader(session=session), part, 10)

        assert progress == [(7, 10, 3), (10, 10, 3)]
        assert sum(delta for _, _, delta in progress) == 6

    @pytest.mark.asyncio
    async def test_progress_is_monotonic_across_retries(self, tmp_path):
        session = FakeSession(
            FakeResponse(
                chunks=[b"a" * 5, aiohttp.ClientPayloadError("reset")],
                content_length=10,
            ),
            FakeResponse(chunks=[b"a" * 5, b"b" * 5], content_length=10),
        )
        part = tmp_path / "pkg.zip.part"

        progress = await _fetch_all(
            Downloader(base_delay=0, session=session), part, 10
        )

        done = [item[0] for item in progress]
        assert done == sorted(done)
        assert done[-1] == 10
        assert sum(item[2] for item in progress) == 10
        assert session.calls[1][1]["headers"] == {"Range": "bytes=5-"}

    @pytest.mark.asyncio
    async def test_retries_server_errors(self, tmp_path):
        session = FakeSession(
            FakeResponse(status=500),
            FakeResponse(chunks=[b"x" * 3], content_length=3),
        )
        part = tmp_path / "pkg.zip.part"

        await _fetch_all(Downloader(base_delay=0, session=session), part, 3)

        assert part.read_bytes() == b"xxx"
        assert len(session.calls) == 2

    @pytest.mark.asyncio
    async def test_range_not_satisfiable_restarts(self, tmp_path):
        part = tmp_path / "pkg.zip.part"
        part.write_bytes(b"stale data")
        session = FakeSession(
            FakeResponse(status=416),
            FakeResponse(chunks=[b"x" * 3], content_length=3),
        )

        await _fetch_all(Downloader(base_delay=0, session=session), part, 3)

        assert session.calls[1][1]["headers"] == {}
        assert part.read_bytes() == b"xxx"

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, tmp_path):
        session = FakeSession(
            *(FakeResponse(chunks=[b"x" * 3], content_length=3) for _ in range(2))
        )
        part = tmp_path / "pkg.zip.part"

        with pytest.raises(TransportError):
            await _fetch_all(
                Downloader(max_attempts=2, base_delay=0, session=session), part, 4
            )
        assert not part.exists()


class TestDownloadStream:
    @pytest.mark.asyncio
    async def test_downloads_and_unpacks(self, tmp_path):
        archive = _zip_bytes({"Audio/English(US)/bank.pck": b"voice"})
        session = FakeSession(
            FakeResponse(chunks=[archive], content_length=len(archive))
        )
        stream = DownloadStream(
            URL,
            tmp_path,
            expected_size=len(archive),
            downloader=Downloader(session=session),
        )

        events = [event async for event in stream.events()]

        assert isinstance(events[0], DownloadStarted)
        assert events[0].bytes_total == len(archive)
        assert isinstance(events[-1], DownloadFinished)
        assert all(isinstance(e, DownloadProgress) for e in events[1:-1])
        assert (tmp_path / "Audio" / "English(US)" / "bank.pck").read_bytes() == b"voice"
        assert not (tmp_path / "voice.zip").exists()
        assert not (tmp_path / ("voice.zip" + PART_SUFFIX)).exists()

    @pytest.mark.asyncio
    async def test_skip_unpack_keeps_archive(self, tmp_path):
        archive = _zip_bytes({"bank.pck": b"voice"})
        session = FakeSession(
            FakeResponse(chunks=[archive], content_length=len(archive))
        )
        stream = DownloadStream(
            URL,
            tmp_path,
            file_name="en-us.zip",
            expected_size=len(archive),
            skip_unpack=True,
            downloader=Downloader(session=session),
        )

        events = [event async for event in stream.events()]

        assert events[-1] == DownloadFinished("en-us.zip")
        assert (tmp_path / "en-us.zip").read_bytes() == archive
        assert not (tmp_path / "bank.pck").exists()

    @pytest.mark.asyncio
    async def test_unpack_failure(self, tmp_path):
        session = FakeSession(FakeResponse(chunks=[b"not a zip"]))
        stream = DownloadStream(URL, tmp_path, downloader=Downloader(session=session))

        with pytest.raises(UnpackError):
            async for _ in stream.events():
                pass

    @pytest.mark.asyncio
    async def test_callbacks(self, tmp_path):
        session = FakeSession(FakeResponse(chunks=[b"ab", b"cd"], content_length=4))
        stream = DownloadStream(
            URL,
            tmp_path,
            expected_size=4,
            skip_unpack=True,
            downloader=Downloader(session=session),
        )
        calls = []
        stream.on_start(lambda: calls.append("start"))
        stream.on_progress(lambda done, total, delta: calls.append(done))
        stream.on_finish(lambda: calls.append("finish"))

        await stream.run()

        assert calls == ["start", 2, 4, "finish"]

    @pytest.mark.asyncio
    async def test_consumed_once(self, tmp_path):
        session = FakeSession(FakeResponse(chunks=[b"ab"], content_length=2))
        stream = DownloadStream(
            URL, tmp_path, skip_unpack=True, downloader=Downloader(session=session)
        )
        await stream.run()

        with pytest.raises(RuntimeError):
            await stream.run()
