"""
discord.py 語音傳輸實作

- 連線：VoiceChannel.connect()
- 播放：VoiceClient.play(after=...)，結束回調在音訊執行緒中執行，
  透過 loop.call_soon_threadsafe 回到事件循環
"""

import asyncio
from typing import Optional

import discord
from loguru import logger

from ..constants import CONNECT_TIMEOUT
from ..utils.errors import CredentialInvalidError, PlaybackError, VoiceConnectionError

# 語音 Gateway 關閉碼：驗證失敗（憑證被拒）
VOICE_AUTHENTICATION_FAILED = 4004


class DiscordVoiceConnection:
    """
    包裝 discord.VoiceClient

    使用方式：
        connection = DiscordVoiceConnection(voice_client)
        await connection.play(source)   # 播放完畢才返回
    """

    def __init__(self, voice_client: discord.VoiceClient):
        self._voice_client = voice_client

    @property
    def voice_client(self) -> discord.VoiceClient:
        return self._voice_client

    @property
    def channel_id(self) -> Optional[int]:
        channel = self._voice_client.channel
        return channel.id if channel else None

    def is_connected(self) -> bool:
        return self._voice_client.is_connected()

    async def move_to(self, channel_id: int) -> None:
        channel = self._voice_client.guild.get_channel(channel_id)
        if not isinstance(channel, discord.VoiceChannel | discord.StageChannel):
            raise VoiceConnectionError(f"channel {channel_id} is not a voice channel")
        try:
            await self._voice_client.move_to(channel)
        except (discord.DiscordException, asyncio.TimeoutError) as e:
            raise VoiceConnectionError(f"move to {channel_id} failed: {e}")

    async def play(self, source: discord.AudioSource) -> None:
        if not self.is_connected():
            source.cleanup()
            raise PlaybackError("voice client is not connected")

        loop = asyncio.get_running_loop()
        finished: asyncio.Future = loop.create_future()

        def _on_playback_finished(error: Optional[Exception]) -> None:
            # 此回調在音訊執行緒中執行
            def _resolve():
                if not finished.done():
                    finished.set_result(error)
            loop.call_soon_threadsafe(_resolve)

        try:
            self._voice_client.play(source, after=_on_playback_finished)
        except discord.ClientException as e:
            source.cleanup()
            raise PlaybackError(f"failed to start playback: {e}")

        try:
            error = await finished
        except asyncio.CancelledError:
            self.stop()
            raise

        if error:
            raise PlaybackError(f"playback stream error: {error}")

    def stop(self) -> None:
        if self._voice_client.is_playing() or self._voice_client.is_paused():
            self._voice_client.stop()

    async def disconnect(self) -> None:
        self.stop()
        try:
            await self._voice_client.disconnect(force=True)
        except discord.DiscordException as e:
            logger.warning(f"[DiscordVoice] 斷開語音連接失敗: {e}")


class DiscordVoiceTransport:
    """
    使用 bot 的連線建立語音連線

    使用方式：
        transport = DiscordVoiceTransport(bot, timeout=15)
        connection = await transport.connect(guild_id, channel_id)
    """

    def __init__(self, bot: discord.Client, timeout: float = CONNECT_TIMEOUT):
        self.bot = bot
        self.timeout = timeout

    async def connect(self, guild_id: int, channel_id: int) -> DiscordVoiceConnection:
        guild = self.bot.get_guild(guild_id)
        if guild is None:
            raise VoiceConnectionError(f"guild {guild_id} is not available")

        channel = guild.get_channel(channel_id)
        if not isinstance(channel, discord.VoiceChannel | discord.StageChannel):
            raise VoiceConnectionError(f"channel {channel_id} is not a voice channel")

        # 殘留的連線（例如 session 重建前的）直接沿用
        existing = guild.voice_client
        if isinstance(existing, discord.VoiceClient) and existing.is_connected():
            connection = DiscordVoiceConnection(existing)
            if connection.channel_id != channel_id:
                await connection.move_to(channel_id)
            return connection

        try:
            voice_client = await channel.connect(timeout=self.timeout, reconnect=False, self_deaf=True)
        except discord.LoginFailure as e:
            raise CredentialInvalidError(f"connect to {guild_id}/{channel_id} rejected: {e}")
        except discord.ConnectionClosed as e:
            if e.code == VOICE_AUTHENTICATION_FAILED:
                raise CredentialInvalidError(f"voice gateway rejected {guild_id}/{channel_id}: code {e.code}")
            raise VoiceConnectionError(f"connect to {guild_id}/{channel_id} closed: code {e.code}")
        except (discord.DiscordException, asyncio.TimeoutError) as e:
            raise VoiceConnectionError(f"connect to {guild_id}/{channel_id} failed: {e}")

        logger.debug(f"[DiscordVoice] 已連接到語音頻道: {guild.name}/{channel.name}")
        return DiscordVoiceConnection(voice_client)
