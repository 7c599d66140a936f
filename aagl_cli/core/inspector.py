"""
Inspects the local installation: the installed game version and the voice
packages present on disk.
"""

import asyncio
import logging
import re
import shutil
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path

import aiofiles

from aagl_cli.models.config import VOICE_LANGS
from aagl_cli.utils.path import directory_size, remove_lines_containing

from .estimator import VOICE_PACKAGES_SIZES, estimate_version

log = logging.getLogger(__name__)

VERSION_MARKER = ".version"
GAME_VERSION_FILE = "globalgamemanagers"
AUDIO_LANG_FILE = Path("Persistent") / "audio_lang_14"

# Anything smaller is a leftover, not an installed voice package
MIN_FOOTPRINT_BYTES = 1024 * 1024

_GAME_VERSION_RE = re.compile(rb"([1-9]+\.[0-9]+\.[0-9]+)_\d+_\d+")


@dataclass(frozen=True)
class InstalledAddOn:
    locale: str
    version: str
    source: str  # "marker" or "footprint"


class InstalledStateInspector:
    """
    Reads installed versions from disk. Nothing is cached: every call looks at
    the filesystem again.
    """

    def __init__(
        self,
        game_dir: Path,
        data_dir: Path,
        voice_dir: Path,
        size_history: Mapping[str, Mapping[str, int]] = VOICE_PACKAGES_SIZES,
        voice_langs: Mapping[str, str] = VOICE_LANGS,
    ):
        self.game_dir = game_dir
        self.data_dir = data_dir
        self.voice_dir = voice_dir
        self.size_history = size_history
        self.voice_langs = voice_langs

    async def current_game_version(self) -> str | None:
        """
        Returns the installed game version, or None if the game is not
        installed or its version cannot be parsed.
        """
        version_file = self.data_dir / GAME_VERSION_FILE
        try:
            async with aiofiles.open(version_file, "rb") as f:
                content = await f.read()
        except OSError:
            log.debug(f"No readable game version file at '{version_file}'")
            return None

        match = _GAME_VERSION_RE.search(content)
        version = match.group(1).decode("ascii") if match else None
        log.debug(f"Current game version: {version or '<unknown>'}")
        return version

    async def read_marker(self, locale: str) -> str | None:
        """Reads the 3-byte (major, minor, patch) marker of a voice package."""
        marker = self.voice_dir / self.voice_langs[locale] / VERSION_MARKER
        try:
            async with aiofiles.open(marker, "rb") as f:
                raw = await f.read()
        except OSError:
            return None
        if len(raw) != 3:
            log.debug(f"Ignoring malformed version marker '{marker}' ({len(raw)} bytes)")
            return None
        return f"{raw[0]}.{raw[1]}.{raw[2]}"

    async def write_marker(self, locale: str, version: str) -> None:
        """Records an installed voice package version as a 3-byte marker."""
        parts = [int(part) for part in version.split(".")[:3]]
        if len(parts) != 3 or any(not 0 <= part <= 255 for part in parts):
            raise ValueError(f"Version '{version}' does not fit a 3-byte marker")
        marker = self.voice_dir / self.voice_langs[locale] / VERSION_MARKER
        await asyncio.to_thread(marker.parent.mkdir, parents=True, exist_ok=True)
        async with aiofiles.open(marker, "wb") as f:
            await f.write(bytes(parts))

    async def list_installed(
        self, latest_version: str, locales: Iterable[str] | None = None
    ) -> list[InstalledAddOn]:
        """
        Lists installed voice packages among `locales` (all known locales when
        None). The marker file wins; otherwise the version is estimated from the
        directory size against `latest_version`.
        """
        installed: list[InstalledAddOn] = []

        for locale in locales if locales is not None else self.voice_langs:
            folder_name = self.voice_langs.get(locale)
            if folder_name is None:
                log.debug(f"Unknown voice locale '{locale}'")
                continue
            folder = self.voice_dir / folder_name
            if not await asyncio.to_thread(folder.is_dir):
                continue

            version = await self.read_marker(locale)
            if version is not None:
                installed.append(InstalledAddOn(locale, version, "marker"))
                continue

            size = await asyncio.to_thread(directory_size, folder)
            if size <= MIN_FOOTPRINT_BYTES:
                log.debug(f"Voice folder for {locale} is empty ({size} bytes)")
                continue

            version = estimate_version(self.size_history, locale, size, latest_version)
            if version is None:
                log.debug(
                    f"Could not estimate {locale} voice version from {size} bytes"
                )
                continue
            installed.append(InstalledAddOn(locale, version, "footprint"))

        log.debug(
            "Installed voices: "
            + (", ".join(f"{v.locale} ({v.version})" for v in installed) or "none")
        )
        return installed

    async def remove(self, locale: str) -> None:
        """
        Deletes a voice package: its folder, its package version file and its
        entry in the game's list of installed audio languages.
        """
        folder_name = self.voice_langs[locale]
        await asyncio.to_thread(
            shutil.rmtree, self.voice_dir / folder_name, ignore_errors=True
        )

        pkg_version = self.game_dir / f"Audio_{folder_name}_pkg_version"
        await asyncio.to_thread(pkg_version.unlink, missing_ok=True)

        await asyncio.to_thread(
            remove_lines_containing, self.data_dir / AUDIO_LANG_FILE, folder_name
        )
        log.info(f"[green]✓ Deleted {folder_name} ({locale}) voice package[/green]")
