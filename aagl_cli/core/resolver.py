"""
Maps an installed version and the server's version metadata to a concrete
download target.

Everything here is a pure function of its inputs: identical inputs always give
identical results, which lets an interrupted run resolve the same target again.
"""

from dataclasses import dataclass
from enum import Enum

from aagl_cli.models.metadata import (
    AddOnPackage,
    GameData,
    PackageDescriptor,
    VersionMetadata,
)


class TargetKind(Enum):
    FULL = "full"
    DIFF = "diff"


class ResolutionStatus(Enum):
    FOUND = "found"
    DIFF_NOT_FOUND = "diff_not_found"
    NO_PRE_DOWNLOAD = "no_pre_download"
    ADD_ON_NOT_FOUND = "add_on_not_found"


@dataclass(frozen=True)
class DownloadTarget:
    """A full package or a single diff, with the add-on packages that belong to it."""

    kind: TargetKind
    package: PackageDescriptor
    to_version: str

    @property
    def from_version(self) -> str | None:
        return self.package.version if self.kind is TargetKind.DIFF else None

    @property
    def add_on_packages(self) -> tuple[AddOnPackage, ...]:
        return self.package.add_on_packages

    def add_on_for(self, locale: str) -> AddOnPackage | None:
        return self.package.add_on_for(locale)


@dataclass(frozen=True)
class Resolution:
    """
    Outcome of a resolution. `target` is set only when `status` is FOUND;
    `add_on` is set when an add-on package was requested and found.
    """

    status: ResolutionStatus
    target: DownloadTarget | None = None
    locale: str | None = None
    add_on: AddOnPackage | None = None

    @property
    def found(self) -> bool:
        return self.status is ResolutionStatus.FOUND

    @property
    def artifact(self) -> PackageDescriptor | AddOnPackage | None:
        """The single file this resolution asks to download."""
        if self.target is None:
            return None
        return self.add_on if self.locale is not None else self.target.package


def _select(game: GameData, current_version: str | None) -> DownloadTarget | None:
    if current_version is None:
        return DownloadTarget(TargetKind.FULL, game.latest, game.latest.version)
    diff = game.diff_from(current_version)
    if diff is None:
        return None
    return DownloadTarget(TargetKind.DIFF, diff, game.latest.version)


def resolve_download_target(
    metadata: VersionMetadata,
    current_version: str | None,
    use_pre_download: bool = False,
) -> Resolution:
    """
    Resolves what has to be fetched to move the base package from
    `current_version` (None when nothing is installed) to the latest, or to the
    pre-download, version.
    """
    if use_pre_download:
        game = metadata.pre_download
        if game is None:
            return Resolution(ResolutionStatus.NO_PRE_DOWNLOAD)
    else:
        game = metadata.game

    target = _select(game, current_version)
    if target is None:
        return Resolution(ResolutionStatus.DIFF_NOT_FOUND)
    return Resolution(ResolutionStatus.FOUND, target)


def resolve_add_on_target(
    metadata: VersionMetadata,
    locale: str,
    current_version: str | None,
    use_pre_download: bool = False,
) -> Resolution:
    """
    Same as `resolve_download_target`, using the add-on's own installed version,
    narrowed down to the add-on package for `locale`.
    """
    resolution = resolve_download_target(metadata, current_version, use_pre_download)
    if not resolution.found:
        return Resolution(resolution.status, locale=locale)

    add_on = resolution.target.add_on_for(locale)
    if add_on is None:
        return Resolution(ResolutionStatus.ADD_ON_NOT_FOUND, locale=locale)
    return Resolution(
        ResolutionStatus.FOUND, resolution.target, locale=locale, add_on=add_on
    )


def full_package_fallback(use_pre_download: bool = False):
    """
    A not-found policy that falls back to the full package (a reinstall) when
    no diff matches the installed version.
    """

    def policy(resolution: Resolution, metadata: VersionMetadata) -> Resolution | None:
        if resolution.status is not ResolutionStatus.DIFF_NOT_FOUND:
            return None
        if resolution.locale is not None:
            return resolve_add_on_target(
                metadata, resolution.locale, None, use_pre_download
            )
        return resolve_download_target(metadata, None, use_pre_download)

    return policy
