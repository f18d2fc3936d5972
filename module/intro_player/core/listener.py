"""
語音狀態事件監聽

把 Discord 的 on_voice_state_update(member, before, after) 正規化成 VoiceJoinEvent。
只轉發「從沒有頻道進入語音頻道」：
- 離開頻道、換頻道、靜音 / 拒聽切換都會被過濾
- 機器人自己的語音狀態也會被過濾
"""

import time
from typing import Callable, Optional

import discord
from loguru import logger

from .manager import SessionManager
from .models import VoiceJoinEvent

VOICE_CHANNEL_TYPES = (discord.ChannelType.voice, discord.ChannelType.stage_voice)


def normalize_voice_update(
    member: discord.Member,
    before: discord.VoiceState,
    after: discord.VoiceState,
    bot_user_id: Optional[int] = None,
    clock: Callable[[], float] = time.monotonic,
) -> Optional[VoiceJoinEvent]:
    """
    判斷語音狀態變化是否為「加入」

    Returns:
        加入事件，不是加入則返回 None
    """
    if bot_user_id is not None and member.id == bot_user_id:
        return None

    if before.channel is not None:
        return None

    channel = after.channel
    if channel is None or channel.type not in VOICE_CHANNEL_TYPES:
        return None

    return VoiceJoinEvent(
        user_id=member.id,
        guild_id=member.guild.id,
        channel_id=channel.id,
        from_channel_id=None,
        timestamp=clock(),
        user_name=member.name,
    )


class VoiceEventListener:
    """
    事件入口

    on_voice_state_update 是同步的，只做正規化與分派，不會等待播放。

    使用方式：
        listener = VoiceEventListener(manager, bot_user_id=lambda: bot.user.id)
        listener.on_voice_state_update(member, before, after)
    """

    def __init__(
        self,
        manager: SessionManager,
        bot_user_id: Callable[[], Optional[int]],
        clock: Callable[[], float] = time.monotonic,
    ):
        self.manager = manager
        self._bot_user_id = bot_user_id
        self._clock = clock

    def on_voice_state_update(
        self,
        member: discord.Member,
        before: discord.VoiceState,
        after: discord.VoiceState,
    ) -> Optional[VoiceJoinEvent]:
        event = normalize_voice_update(member, before, after, self._bot_user_id(), self._clock)
        if event is None:
            return None

        logger.info(
            f"[VoiceEventListener] {member.name} 加入語音頻道 "
            f"{getattr(after.channel, 'name', event.channel_id)} ({member.guild.name})"
        )
        self.manager.dispatch(event)
        return event
