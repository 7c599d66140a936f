"""Tests for download target resolution."""

import pytest

from aagl_cli.core.resolver import (
    ResolutionStatus,
    TargetKind,
    full_package_fallback,
    resolve_add_on_target,
    resolve_download_target,
)
from aagl_cli.models.metadata import VersionMetadata
from tests.fakes import versions_data


@pytest.fixture
def metadata() -> VersionMetadata:
    return VersionMetadata.model_validate(
        versions_data(
            latest="4.0.0",
            diffs=("3.9.0", "3.8.0"),
            pre_download="4.1.0",
            pre_download_diffs=("4.0.0",),
        )
    )


class TestResolveDownloadTarget:
    def test_diff_from_installed_version(self, metadata):
        resolution = resolve_download_target(metadata, "3.9.0")

        assert resolution.status is ResolutionStatus.FOUND
        assert resolution.target.kind is TargetKind.DIFF
        assert resolution.target.from_version == "3.9.0"
        assert resolution.target.to_version == "4.0.0"
        assert resolution.artifact.file_name == "game_3.9.0_4.0.0_hdiff.zip"

    def test_full_package_when_nothing_installed(self, metadata):
        resolution = resolve_download_target(metadata, None)

        assert resolution.target.kind is TargetKind.FULL
        assert resolution.target.from_version is None
        assert resolution.target.package.version == "4.0.0"

    def test_unknown_installed_version(self, metadata):
        resolution = resolve_download_target(metadata, "3.1.0")

        assert resolution.status is ResolutionStatus.DIFF_NOT_FOUND
        assert resolution.target is None
        assert resolution.artifact is None

    def test_pre_download_diff(self, metadata):
        resolution = resolve_download_target(metadata, "4.0.0", use_pre_download=True)

        assert resolution.found
        assert resolution.target.to_version == "4.1.0"
        assert resolution.target.from_version == "4.0.0"

    def test_no_pre_download_available(self):
        metadata = VersionMetadata.model_validate(versions_data())
        resolution = resolve_download_target(metadata, "4.0.0", use_pre_download=True)

        assert resolution.status is ResolutionStatus.NO_PRE_DOWNLOAD

    def test_is_deterministic(self, metadata):
        assert resolve_download_target(metadata, "3.8.0") == resolve_download_target(
            metadata, "3.8.0"
        )


class TestResolveAddOnTarget:
    def test_add_on_from_diff(self, metadata):
        resolution = resolve_add_on_target(metadata, "ja-jp", "3.9.0")

        assert resolution.found
        assert resolution.locale == "ja-jp"
        assert resolution.add_on.language == "ja-jp"
        assert resolution.artifact is resolution.add_on

    def test_locale_missing_from_target(self, metadata):
        resolution = resolve_add_on_target(metadata, "ko-kr", "3.9.0")

        assert resolution.status is ResolutionStatus.ADD_ON_NOT_FOUND
        assert resolution.locale == "ko-kr"

    def test_propagates_base_failure(self, metadata):
        resolution = resolve_add_on_target(metadata, "en-us", "2.0.0")

        assert resolution.status is ResolutionStatus.DIFF_NOT_FOUND
        assert resolution.locale == "en-us"


class TestFullPackageFallback:
    def test_replaces_missing_diff_with_full_package(self, metadata):
        policy = full_package_fallback()
        replacement = policy(resolve_download_target(metadata, "3.1.0"), metadata)

        assert replacement.found
        assert replacement.target.kind is TargetKind.FULL

    def test_keeps_locale_for_add_ons(self, metadata):
        policy = full_package_fallback()
        missing = resolve_add_on_target(metadata, "en-us", "3.1.0")
        replacement = policy(missing, metadata)

        assert replacement.add_on.language == "en-us"
        assert replacement.target.kind is TargetKind.FULL

    def test_ignores_other_statuses(self, metadata):
        policy = full_package_fallback()
        missing = resolve_add_on_target(metadata, "ko-kr", "3.9.0")

        assert policy(missing, metadata) is None
