"""
The compatibility prefix every download is gated on.
"""

import asyncio
import logging
import os
from pathlib import Path

from aagl_cli.exceptions import PrerequisiteError
from aagl_cli.utils.path import create_dir

log = logging.getLogger(__name__)


class PrefixManager:
    """Checks for and creates the wine prefix used to run the game."""

    def __init__(self, prefix_dir: Path, wineboot: str = "wineboot"):
        self.prefix_dir = prefix_dir
        self.wineboot = wineboot

    async def exists(self) -> bool:
        return await asyncio.to_thread((self.prefix_dir / "drive_c").is_dir)

    async def create(self) -> None:
        """
        Initializes the prefix with `wineboot -i`.

        Raises:
            PrerequisiteError: If wineboot is missing or exits with an error.
        """
        log.info(f"[cyan]Creating wine prefix at '{self.prefix_dir}'...[/cyan]")
        await asyncio.to_thread(create_dir, self.prefix_dir)

        env = {**os.environ, "WINEPREFIX": str(self.prefix_dir)}
        try:
            process = await asyncio.create_subprocess_exec(
                self.wineboot,
                "-i",
                env=env,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except FileNotFoundError as e:
            raise PrerequisiteError(
                f"'{self.wineboot}' was not found. Is wine installed?"
            ) from e

        output, _ = await process.communicate()
        for line in output.decode(errors="replace").splitlines():
            if line.strip():
                log.debug(f"wineboot: {line.strip()}")

        if process.returncode != 0:
            raise PrerequisiteError(
                f"Prefix creation failed: '{self.wineboot} -i' exited with "
                f"code {process.returncode}."
            )
        log.info("[green]✓ Wine prefix created.[/green]")
