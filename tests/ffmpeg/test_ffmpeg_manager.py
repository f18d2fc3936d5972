"""
Tests for module/intro_player/ffmpeg/manager.py - FFmpegManager.
"""

import shutil
from unittest.mock import AsyncMock

import pytest

from module.intro_player.ffmpeg.manager import FFmpegManager


class TestFFmpegManager:
    """Executable lookup order."""

    @pytest.mark.asyncio
    async def test_configured_path_wins(self, monkeypatch):
        verify = AsyncMock(return_value=True)
        monkeypatch.setattr(FFmpegManager, "_verify", verify)
        monkeypatch.setattr(shutil, "which", lambda name: "/usr/bin/ffmpeg")

        manager = FFmpegManager(configured_path="/opt/ffmpeg/bin/ffmpeg")

        assert await manager.ensure_ffmpeg() == "/opt/ffmpeg/bin/ffmpeg"
        verify.assert_awaited_once_with("/opt/ffmpeg/bin/ffmpeg")

    @pytest.mark.asyncio
    async def test_falls_back_to_system_path(self, monkeypatch):
        verify = AsyncMock(side_effect=lambda path: path == "/usr/bin/ffmpeg")
        monkeypatch.setattr(FFmpegManager, "_verify", verify)
        monkeypatch.setattr(shutil, "which", lambda name: "/usr/bin/ffmpeg")

        manager = FFmpegManager(configured_path="/missing/ffmpeg")

        assert await manager.ensure_ffmpeg() == "/usr/bin/ffmpeg"
        assert manager.ffmpeg_path == "/usr/bin/ffmpeg"

    @pytest.mark.asyncio
    async def test_only_configured_and_system_candidates(self, monkeypatch):
        verify = AsyncMock(return_value=True)
        monkeypatch.setattr(FFmpegManager, "_verify", verify)
        monkeypatch.setattr(shutil, "which", lambda name: None)

        manager = FFmpegManager()

        assert await manager.ensure_ffmpeg() is None
        verify.assert_not_awaited()
