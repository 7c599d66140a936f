"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator

# Locale code -> folder name the game uses for the voice package
VOICE_LANGS = {
    "en-us": "English(US)",
    "ja-jp": "Japanese",
    "ko-kr": "Korean",
    "zh-cn": "Chinese",
}

CHANNELS = ("global", "cn")

DEFAULT_VOICE_DIR = "StreamingAssets/Audio/GeneratedSoundBanks/Windows"


class LauncherConfig(BaseModel):
    """A validated configuration model for the application."""

    # Versions server
    channel: str = "global"
    versions_uri: str
    cache_ttl_hours: float = 6

    # Installation layout
    game_dir: str
    prefix_dir: str
    data_dir_name: str = "Game_Data"
    voice_dir: str = DEFAULT_VOICE_DIR
    selected_voices: list[str] = Field(default_factory=lambda: ["en-us"])

    # Transfer options
    max_attempts: int = 3
    verify_checksums: bool = False

    # Prefix creation
    wineboot: str = "wineboot"

    # Internal fields not loaded from INI file
    config_path: str = Field(..., repr=False)

    class Config:
        """Pydantic model configuration."""

        validate_assignment = True
        str_strip_whitespace = True

    @field_validator("channel")
    @classmethod
    def validate_channel(cls, v: str) -> str:
        if v not in CHANNELS:
            raise ValueError(f"Channel must be one of: {', '.join(CHANNELS)}.")
        return v

    @field_validator("versions_uri")
    @classmethod
    def validate_versions_uri(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("Versions URI must be an http(s) URL.")
        return v

    @field_validator("selected_voices")
    @classmethod
    def validate_voices(cls, v: list[str]) -> list[str]:
        """Ensures every selected voice locale is known and listed once."""
        unknown = [locale for locale in v if locale not in VOICE_LANGS]
        if unknown:
            raise ValueError(
                f"Unknown voice locale(s): {', '.join(unknown)}. "
                f"Known: {', '.join(VOICE_LANGS)}."
            )
        return list(dict.fromkeys(v))

    @field_validator("max_attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 1 or v > 10:
            raise ValueError("Max attempts must be between 1 and 10.")
        return v

    @field_validator("cache_ttl_hours")
    @classmethod
    def validate_ttl(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Cache TTL must be positive.")
        return v

    @model_validator(mode="after")
    def validate_layout(self) -> "LauncherConfig":
        """Validates that the installation directories are configured."""
        if not self.game_dir:
            raise ValueError("'game_dir' is required.")
        if not self.prefix_dir:
            raise ValueError("'prefix_dir' is required.")
        if Path(self.voice_dir).is_absolute() or ".." in Path(self.voice_dir).parts:
            raise ValueError("'voice_dir' must be relative to the game data directory.")
        return self

    @property
    def game_path(self) -> Path:
        return Path(self.game_dir).expanduser()

    @property
    def data_path(self) -> Path:
        return self.game_path / self.data_dir_name

    @property
    def voice_path(self) -> Path:
        return self.data_path / self.voice_dir

    @property
    def prefix_path(self) -> Path:
        return Path(self.prefix_dir).expanduser()

    @property
    def cache_ttl_seconds(self) -> int:
        return int(self.cache_ttl_hours * 3600)

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path"}
        return {key for key in cls.model_fields if key not in internal_fields}
