"""
Manages loading, validation, and migration of the INI configuration file.
"""

import configparser
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from aagl_cli.exceptions import ConfigurationError
from aagl_cli.models.config import DEFAULT_VOICE_DIR, LauncherConfig

log = logging.getLogger(__name__)

# Placeholders for required keys when constructing defaults without validation
_REQUIRED_PLACEHOLDERS = {"versions_uri": "", "game_dir": "", "prefix_dir": ""}


class ConfigManager:
    """Handles all operations related to the application's INI config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        self._parser = configparser.ConfigParser(interpolation=None)

    def load_config(self, cli_options: dict[str, Any] | None = None) -> LauncherConfig:
        """
        Loads configuration from the INI file, applies CLI overrides, and validates it.

        Args:
            cli_options: A dictionary of options provided via the command line.

        Returns:
            A validated LauncherConfig object.

        Raises:
            ConfigurationError: If the config file is missing, invalid, or validation
            fails.
        """
        if not self.config_file_path.is_file():
            raise ConfigurationError(
                f"Configuration file not found at '{self.config_file_path}'. "
                "Please run 'aagl-cli init' first."
            )

        try:
            self._parser.read(self.config_file_path, encoding="utf-8")
        except configparser.Error as e:
            raise ConfigurationError(f"Error parsing configuration file: {e}") from e

        if self._migrate_if_needed():
            log.info(
                "[yellow]Configuration file was updated with new default values."
                "[/yellow]"
            )

        config_from_file = self._get_config_as_dict()

        # Override with CLI options
        if cli_options:
            config_from_file.update(cli_options)

        try:
            config_dir = self.config_file_path.parent
            return LauncherConfig(**config_from_file, config_path=str(config_dir))
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def save_new_config(self, settings: dict[str, Any]) -> None:
        """
        Creates and saves a new configuration file.

        Args:
            settings: A dictionary of settings to save.
        """
        config = configparser.ConfigParser(interpolation=None)
        config["DEFAULT"] = {}

        # Get all possible keys from the model to create a complete default config
        defaults = LauncherConfig.model_construct(**_REQUIRED_PLACEHOLDERS)

        for key in sorted(LauncherConfig.get_ini_keys()):
            # Use provided settings first, then fall back to model defaults
            value = settings.get(key, getattr(defaults, key, None))
            config["DEFAULT"][key] = self._to_ini_value(value)

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                config.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    @staticmethod
    def _to_ini_value(value: Any) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, list):
            return ",".join(map(str, value))
        if value is None:
            return ""
        return str(value)

    def _get_config_as_dict(self) -> dict[str, Any]:
        """Reads the 'DEFAULT' section of the INI file into a dictionary."""
        section = self._parser["DEFAULT"]
        return {
            "channel": section.get("channel", "global"),
            "versions_uri": section.get("versions_uri", ""),
            "cache_ttl_hours": section.getfloat("cache_ttl_hours", 6),
            "game_dir": section.get("game_dir", ""),
            "prefix_dir": section.get("prefix_dir", ""),
            "data_dir_name": section.get("data_dir_name", "Game_Data"),
            "voice_dir": section.get("voice_dir", DEFAULT_VOICE_DIR),
            "selected_voices": [
                s.strip()
                for s in section.get("selected_voices", "en-us").split(",")
                if s.strip()
            ],
            "max_attempts": section.getint("max_attempts", 3),
            "verify_checksums": section.getboolean("verify_checksums", False),
            "wineboot": section.get("wineboot", "wineboot"),
        }

    def _migrate_if_needed(self) -> bool:
        """Adds missing default values to an existing config file."""
        defaults = LauncherConfig.model_construct(**_REQUIRED_PLACEHOLDERS)
        needs_saving = False

        config_section = self._parser["DEFAULT"]

        for key in sorted(LauncherConfig.get_ini_keys()):
            if key not in config_section:
                config_section[key] = self._to_ini_value(getattr(defaults, key))
                needs_saving = True
                log.debug(
                    f"Migrating config: added missing key '{key}' with "
                    f"value '{config_section[key]}'."
                )

        if needs_saving:
            try:
                with open(self.config_file_path, "w", encoding="utf-8") as f:
                    self._parser.write(f)
            except OSError as e:
                log.error(f"Could not save migrated configuration file: {e}")
                return False

        return needs_saving
