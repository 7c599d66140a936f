"""
Decides whether a resolved target is already fully downloaded, so that an
interrupted run can be restarted without fetching anything twice.
"""

import asyncio
import logging
from collections.abc import Sequence
from pathlib import Path

from aagl_cli.media.integrity import FileIntegrityChecker
from aagl_cli.models.metadata import AddOnPackage, PackageDescriptor

from .resolver import DownloadTarget

log = logging.getLogger(__name__)


class DownloadCompletionChecker:
    """
    Compares the files in the download directory with the artifacts a target
    names. Never downloads anything.
    """

    def __init__(self, download_dir: Path, verify_checksums: bool = False):
        self.download_dir = download_dir
        self.verify_checksums = verify_checksums

    async def is_artifact_complete(
        self, artifact: PackageDescriptor | AddOnPackage
    ) -> bool:
        path = self.download_dir / artifact.file_name
        if not await asyncio.to_thread(
            FileIntegrityChecker.check_size, path, artifact.size
        ):
            return False
        if self.verify_checksums and artifact.md5:
            return await asyncio.to_thread(
                FileIntegrityChecker.check_md5, path, artifact.md5
            )
        return True

    async def is_complete(
        self, target: DownloadTarget, locales: Sequence[str] | None = None
    ) -> bool:
        """
        Checks the base package when `locales` is None, otherwise the add-on
        package of every listed locale. A locale the target does not carry
        counts as not downloaded.
        """
        if locales is None:
            complete = await self.is_artifact_complete(target.package)
            log.debug(f"Package '{target.package.file_name}' complete: {complete}")
            return complete

        for locale in locales:
            add_on = target.add_on_for(locale)
            if add_on is None:
                log.debug(f"Target {target.to_version} has no {locale} voice package")
                return False
            if not await self.is_artifact_complete(add_on):
                log.debug(f"Voice package '{add_on.file_name}' is not complete")
                return False
        return True
