"""
Tests for cogs/intro_cog.py - wiring between discord.py events and the session manager.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import discord
import pytest
import pytest_asyncio

from module.intro_player import Settings


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_path=str(tmp_path / "config" / "db.sqlite"),
        sounds_dir=str(tmp_path / "sounds"),
        cache_dir=str(tmp_path / "cache"),
        idle_disconnect_timeout=60,
    )


@pytest.fixture
def bot():
    bot = Mock()
    bot.user = SimpleNamespace(id=99)
    bot.guilds = []
    bot.is_ready.return_value = False
    bot.wait_until_ready = AsyncMock()
    return bot


@pytest_asyncio.fixture
async def cog(bot, settings, monkeypatch):
    from cogs.intro_cog import FFmpegManager, IntroCog

    monkeypatch.setattr(FFmpegManager, "ensure_ffmpeg", AsyncMock(return_value="ffmpeg"))
    cog = IntroCog(bot, settings=settings)
    await cog.cog_load()
    yield cog
    await cog.cog_unload()


def join(user_id=1, guild_id=7, channel_id=3):
    member = SimpleNamespace(id=user_id, name="alice", guild=SimpleNamespace(id=guild_id, name="meow"))
    before = SimpleNamespace(channel=None)
    after = SimpleNamespace(channel=SimpleNamespace(id=channel_id, type=discord.ChannelType.voice, name="general"))
    return member, before, after


class TestIntroCog:
    """Gateway events reach the right components."""

    @pytest.mark.asyncio
    async def test_join_creates_guild_session(self, cog):
        await cog.on_voice_state_update(*join())

        assert cog.manager.get(7) is not None

    @pytest.mark.asyncio
    async def test_bot_join_is_ignored(self, cog):
        await cog.on_voice_state_update(*join(user_id=99))

        assert len(cog.manager) == 0

    @pytest.mark.asyncio
    async def test_guild_remove_closes_session(self, cog):
        await cog.on_voice_state_update(*join())
        session = cog.manager.get(7)

        await cog.on_guild_remove(SimpleNamespace(id=7, name="meow"))

        assert session.is_closed
        assert cog.manager.get(7) is None

    @pytest.mark.asyncio
    async def test_guild_join_registers_voice_channels(self, cog, settings):
        voice = SimpleNamespace(id=3, name="general")
        guild = SimpleNamespace(id=7, name="meow", voice_channels=[voice], stage_channels=[])

        await cog.on_guild_join(guild)

        stored = cog.database.get_guild(7)
        assert stored.name == "meow"
        assert stored.sound_delay == settings.default_sound_delay

    @pytest.mark.asyncio
    async def test_ready_restores_bot_credential(self, cog):
        cog.refresher.invalidate_bot_credential("401 Unauthorized")

        await cog.on_ready()

        assert cog.refresher.is_bot_credential_valid
