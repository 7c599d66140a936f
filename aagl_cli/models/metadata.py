"""
Pydantic models for the versions server response.
Every model is frozen: a metadata snapshot is replaced, never mutated.
"""

import logging
import re
from posixpath import basename
from urllib.parse import unquote, urlparse

from pathvalidate import sanitize_filename
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

log = logging.getLogger(__name__)


def version_key(version: str) -> tuple[int, ...]:
    """Turns '3.4.0' into (3, 4, 0) for ordering. Non-numeric parts count as 0."""
    return tuple(int(part) if part.isdigit() else 0 for part in re.split(r"[.\-_]", version))


def artifact_name_from_uri(uri: str) -> str:
    """Derives a safe local file name from the last segment of a download URI."""
    name = basename(unquote(urlparse(uri).path))
    return sanitize_filename(name) or "package"


class _Artifact(BaseModel):
    """Fields shared by everything that can be downloaded as a single file."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    path: str
    name: str = ""
    size: int | None = None
    md5: str | None = None

    @field_validator("size", mode="before")
    @classmethod
    def empty_size_is_unknown(cls, v):
        """The server sends sizes as decimal strings and sometimes leaves them blank."""
        if v in ("", None):
            return None
        return v

    @property
    def file_name(self) -> str:
        """The name the artifact is stored under in the download directory."""
        if self.name:
            return sanitize_filename(self.name)
        return artifact_name_from_uri(self.path)


class AddOnPackage(_Artifact):
    """A locale-specific voice package attached to a game package."""

    language: str


class PackageDescriptor(_Artifact):
    """
    A full game package or a diff. For a diff, `version` is the version it
    upgrades *from*.
    """

    version: str
    add_on_packages: tuple[AddOnPackage, ...] = Field(
        default_factory=tuple, alias="voice_packs"
    )

    @model_validator(mode="after")
    def validate_unique_locales(self) -> "PackageDescriptor":
        languages = [pack.language for pack in self.add_on_packages]
        if len(languages) != len(set(languages)):
            raise ValueError(
                f"Package {self.version} lists the same voice language twice."
            )
        return self

    def add_on_for(self, locale: str) -> AddOnPackage | None:
        for pack in self.add_on_packages:
            if pack.language == locale:
                return pack
        return None


class GameData(BaseModel):
    """The latest full package plus the diffs leading to it."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    latest: PackageDescriptor
    diffs: tuple[PackageDescriptor, ...] = ()

    @model_validator(mode="after")
    def validate_unique_diffs(self) -> "GameData":
        from_versions = [diff.version for diff in self.diffs]
        if len(from_versions) != len(set(from_versions)):
            raise ValueError("Diff list contains duplicate 'from' versions.")
        return self

    def diff_from(self, version: str) -> PackageDescriptor | None:
        for diff in self.diffs:
            if diff.version == version:
                return diff
        return None


class VersionMetadata(BaseModel):
    """Snapshot of the server state for one distribution channel."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    game: GameData
    pre_download: GameData | None = Field(default=None, alias="pre_download_game")

    @model_validator(mode="before")
    @classmethod
    def drop_stale_pre_download(cls, data):
        """
        The server keeps announcing a pre-download for a while after it has
        been released. Such an entry is dropped instead of failing the parse.
        """
        if not isinstance(data, dict):
            return data
        key = "pre_download_game" if "pre_download_game" in data else "pre_download"
        try:
            pre_version = data[key]["latest"]["version"]
            latest_version = data["game"]["latest"]["version"]
        except (KeyError, TypeError):
            return data
        if not isinstance(pre_version, str) or not isinstance(latest_version, str):
            return data

        if version_key(pre_version) <= version_key(latest_version):
            log.debug(
                f"Ignoring pre-download {pre_version}: not newer than {latest_version}"
            )
            return {**data, key: None}
        return data

    @model_validator(mode="after")
    def validate_pre_download_is_newer(self) -> "VersionMetadata":
        if self.pre_download is not None and version_key(
            self.pre_download.latest.version
        ) <= version_key(self.game.latest.version):
            raise ValueError(
                f"Pre-download version {self.pre_download.latest.version} is not "
                f"newer than latest {self.game.latest.version}."
            )
        return self

    @property
    def latest(self) -> PackageDescriptor:
        return self.game.latest

    @property
    def diffs(self) -> tuple[PackageDescriptor, ...]:
        return self.game.diffs


class ServerResponse(BaseModel):
    """The envelope the versions server wraps its payload in."""

    model_config = ConfigDict(extra="ignore")

    retcode: int = 0
    message: str = ""
    data: dict | None = None

    @property
    def ok(self) -> bool:
        return self.retcode == 0 and self.message == "OK"


def available_versions(metadata: VersionMetadata) -> list[str]:
    """
    Lists versions the server knows about, newest first,
    e.g. ["3.4.0", "3.3.0", "3.2.0"].
    """
    return [metadata.latest.version, *(diff.version for diff in metadata.diffs)]
