"""Tests for wine prefix creation."""

import stat

import pytest

from aagl_cli.core.prefix import PrefixManager
from aagl_cli.exceptions import PrerequisiteError


def _script(path, body):
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR)
    return str(path)


class TestPrefixManager:
    @pytest.mark.asyncio
    async def test_creates_prefix(self, tmp_path):
        wineboot = _script(tmp_path / "wineboot", 'mkdir -p "$WINEPREFIX/drive_c"\n')
        manager = PrefixManager(tmp_path / "prefix", wineboot)

        assert not await manager.exists()
        await manager.create()
        assert await manager.exists()

    @pytest.mark.asyncio
    async def test_missing_wineboot(self, tmp_path):
        manager = PrefixManager(tmp_path / "prefix", str(tmp_path / "no-such-binary"))

        with pytest.raises(PrerequisiteError):
            await manager.create()

    @pytest.mark.asyncio
    async def test_failing_wineboot(self, tmp_path):
        wineboot = _script(tmp_path / "wineboot", "echo broken\nexit 3\n")
        manager = PrefixManager(tmp_path / "prefix", wineboot)

        with pytest.raises(PrerequisiteError, match="code 3"):
            await manager.create()
