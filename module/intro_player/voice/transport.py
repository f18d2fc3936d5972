"""
語音傳輸介面

GuildSession 只透過這兩個介面操作語音連線，
正式環境使用 discord_transport.py，測試使用假的實作。
"""

from typing import Optional, Protocol

import discord


class VoiceConnection(Protocol):
    """單一伺服器的語音連線"""

    @property
    def channel_id(self) -> Optional[int]: ...

    def is_connected(self) -> bool: ...

    async def move_to(self, channel_id: int) -> None: ...

    async def play(self, source: discord.AudioSource) -> None:
        """
        播放音源直到結束

        Raises:
            PlaybackError: 播放中途失敗
        """
        ...

    def stop(self) -> None: ...

    async def disconnect(self) -> None: ...


class VoiceTransport(Protocol):
    async def connect(self, guild_id: int, channel_id: int) -> VoiceConnection:
        """
        連接到語音頻道

        Raises:
            VoiceConnectionError: 連線失敗
        """
        ...
