"""Tests for the version metadata and configuration models."""

import pytest
from pydantic import ValidationError

from aagl_cli.models.config import LauncherConfig
from aagl_cli.models.metadata import (
    GameData,
    PackageDescriptor,
    ServerResponse,
    VersionMetadata,
    available_versions,
    version_key,
)
from tests.fakes import package, versions_data


class TestVersionMetadata:
    def test_parses_server_payload(self):
        metadata = VersionMetadata.model_validate(versions_data())

        assert metadata.latest.version == "4.0.0"
        assert metadata.latest.size == 20
        assert metadata.diffs[0].version == "3.9.0"
        assert metadata.latest.add_on_for("ja-jp").language == "ja-jp"
        assert metadata.pre_download is None

    def test_blank_size_is_unknown(self):
        data = package("4.0.0", "game.zip")
        data["size"] = ""
        assert PackageDescriptor.model_validate(data).size is None

    def test_duplicate_diff_versions_rejected(self):
        with pytest.raises(ValidationError):
            VersionMetadata.model_validate(versions_data(diffs=("3.9.0", "3.9.0")))

    def test_duplicate_voice_languages_rejected(self):
        data = package("4.0.0", "game.zip", voices=("en-us", "en-us"))
        with pytest.raises(ValidationError):
            PackageDescriptor.model_validate(data)

    @pytest.mark.parametrize("pre_download", ["4.0.0", "3.9.0"])
    def test_stale_pre_download_is_dropped(self, pre_download):
        metadata = VersionMetadata.model_validate(
            versions_data(pre_download=pre_download)
        )
        assert metadata.pre_download is None
        assert metadata.latest.version == "4.0.0"
        assert metadata.diffs[0].version == "3.9.0"

    def test_newer_pre_download_is_kept(self):
        metadata = VersionMetadata.model_validate(versions_data(pre_download="4.1.0"))
        assert metadata.pre_download.latest.version == "4.1.0"

    def test_pre_download_built_directly_must_be_newer(self):
        game = GameData.model_validate(versions_data()["game"])
        with pytest.raises(ValidationError):
            VersionMetadata(game=game, pre_download=game)

    def test_available_versions_newest_first(self):
        metadata = VersionMetadata.model_validate(
            versions_data(diffs=("3.9.0", "3.8.0"))
        )
        assert available_versions(metadata) == ["4.0.0", "3.9.0", "3.8.0"]

    def test_file_name_falls_back_to_uri(self):
        data = package("4.0.0", "game.zip")
        data["name"] = ""
        data["path"] = "https://cdn.example.org/dir/game%204.0.0.zip"
        assert PackageDescriptor.model_validate(data).file_name == "game 4.0.0.zip"


class TestVersionKey:
    def test_orders_numerically(self):
        assert version_key("3.10.0") > version_key("3.9.0")
        assert version_key("4.0.0") == (4, 0, 0)


class TestServerResponse:
    def test_ok_requires_message_ok(self):
        assert ServerResponse(retcode=0, message="OK", data={}).ok
        assert not ServerResponse(retcode=0, message="busy").ok
        assert not ServerResponse(retcode=-1, message="OK").ok


class TestLauncherConfig:
    def _config(self, **overrides):
        values = {
            "versions_uri": "https://example.org/resource",
            "game_dir": "/games/anime",
            "prefix_dir": "/games/prefix",
            "config_path": "/tmp",
        }
        values.update(overrides)
        return LauncherConfig(**values)

    def test_paths_are_derived(self):
        config = self._config()
        assert str(config.data_path) == "/games/anime/Game_Data"
        assert config.voice_path.name == "Windows"
        assert config.cache_ttl_seconds == 6 * 3600

    def test_selected_voices_deduplicated(self):
        config = self._config(selected_voices=["ja-jp", "en-us", "ja-jp"])
        assert config.selected_voices == ["ja-jp", "en-us"]

    @pytest.mark.parametrize(
        "overrides",
        [
            {"channel": "beta"},
            {"versions_uri": "ftp://example.org"},
            {"selected_voices": ["fr-fr"]},
            {"max_attempts": 0},
            {"voice_dir": "../outside"},
            {"game_dir": ""},
        ],
    )
    def test_invalid_values_rejected(self, overrides):
        with pytest.raises(ValidationError):
            self._config(**overrides)
