"""
入場音效資料結構

Guild / Channel / Intro 由資料庫讀出，
VoiceJoinEvent 由 Discord 的語音狀態變化正規化而來。
"""

import time
from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class Guild:
    """伺服器設定"""
    id: int
    name: str
    sound_delay: int = 0             # 同一伺服器兩次播放之間的最短間隔（秒）


@dataclass(frozen=True)
class Channel:
    """語音頻道"""
    id: int
    guild_id: int
    name: str = ""


@dataclass(frozen=True)
class Intro:
    """
    入場音效

    filename 可以是 sounds 目錄下的檔名，也可以是 http(s) 遠端網址。
    """
    id: int
    name: str
    volume: float                    # 1.0 為原始音量
    guild_id: int
    filename: str

    @property
    def is_remote(self) -> bool:
        """是否為遠端音檔"""
        lowered = self.filename.lower()
        return lowered.startswith("http://") or lowered.startswith("https://")


@dataclass(frozen=True)
class VoiceJoinEvent:
    """
    使用者加入語音頻道的事件

    只有「從沒有頻道進入語音頻道」才會被轉成這個事件，
    離開與換頻道都在 listener 被過濾掉。
    """
    user_id: int
    guild_id: int
    channel_id: int
    from_channel_id: Optional[int] = None
    timestamp: float = field(default_factory=time.monotonic)
    user_name: str = ""

    def describe(self) -> str:
        """給 log 用的簡短描述"""
        who = self.user_name or str(self.user_id)
        return f"{who} -> {self.guild_id}/{self.channel_id}"
