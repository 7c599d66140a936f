"""Small in-memory stand-ins for aiohttp and the orchestrator's collaborators."""

from unittest.mock import MagicMock

import aiohttp

from aagl_cli.models.events import DownloadFinished, DownloadProgress, DownloadStarted


class FakeContent:
    def __init__(self, chunks):
        self._chunks = list(chunks)

    async def iter_chunked(self, n):
        for chunk in self._chunks:
            if isinstance(chunk, Exception):
                raise chunk
            yield chunk


class FakeResponse:
    def __init__(self, status=200, body=None, chunks=(), content_length=None):
        self.status = status
        self._body = body
        self.content = FakeContent(chunks)
        self.content_length = content_length

    async def json(self, content_type=None):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body

    def raise_for_status(self):
        if self.status >= 400:
            raise aiohttp.ClientResponseError(
                MagicMock(), (), status=self.status, message="error"
            )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Returns the queued responses in order; queued exceptions are raised."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []
        self.closed = False

    def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def close(self):
        self.closed = True


class FakeStream:
    """Emits a two-chunk lifecycle; writes the artifact when `download_dir` is set."""

    def __init__(self, artifact, skip_unpack, download_dir=None, chunks=(10, 10)):
        self.artifact = artifact
        self.skip_unpack = skip_unpack
        self.download_dir = download_dir
        self.chunks = chunks

    async def events(self):
        name = self.artifact.file_name
        total = sum(self.chunks)
        yield DownloadStarted(name, total)
        done = 0
        for chunk in self.chunks:
            done += chunk
            yield DownloadProgress(name, done, total, chunk)
        if self.download_dir is not None:
            (self.download_dir / name).write_bytes(b"x" * total)
        yield DownloadFinished(name)


class RecordingStreamFactory:
    """Builds `FakeStream`s and remembers which artifacts were requested."""

    def __init__(self, download_dir=None):
        self.download_dir = download_dir
        self.requested = []

    def __call__(self, artifact, skip_unpack):
        self.requested.append((artifact.file_name, skip_unpack))
        return FakeStream(artifact, skip_unpack, self.download_dir)


class FakeMetadataClient:
    def __init__(self, metadata):
        self.metadata = metadata
        self.calls = 0

    async def get_metadata(self, force_refresh=False):
        self.calls += 1
        return self.metadata


class FakePrefix:
    def __init__(self, exists=True, creates=True):
        self._exists = exists
        self._creates = creates
        self.created = False

    async def exists(self):
        return self._exists

    async def create(self):
        self.created = True
        self._exists = self._creates


def package(version, name, size=20, voices=()):
    return {
        "version": version,
        "name": name,
        "path": f"https://cdn.example.org/{name}",
        "size": str(size),
        "md5": "",
        "voice_packs": [
            {
                "language": locale,
                "name": f"{locale}_{name}",
                "path": f"https://cdn.example.org/{locale}_{name}",
                "size": str(size),
                "md5": "",
            }
            for locale in voices
        ],
    }


def versions_data(
    latest="4.0.0",
    diffs=("3.9.0",),
    pre_download=None,
    pre_download_diffs=("4.0.0",),
    voices=("en-us", "ja-jp"),
):
    """Builds the `data` payload of a versions response."""
    data = {
        "game": {
            "latest": package(latest, f"game_{latest}.zip", voices=voices),
            "diffs": [
                package(v, f"game_{v}_{latest}_hdiff.zip", voices=voices)
                for v in diffs
            ],
        },
        "pre_download_game": None,
    }
    if pre_download:
        data["pre_download_game"] = {
            "latest": package(pre_download, f"game_{pre_download}.zip", voices=voices),
            "diffs": [
                package(v, f"game_{v}_{pre_download}_hdiff.zip", voices=voices)
                for v in pre_download_diffs
            ],
        }
    return data
