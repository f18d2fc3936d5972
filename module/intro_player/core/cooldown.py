"""
伺服器冷卻判斷

每個伺服器有自己的 sound_delay，上次成功播放後未滿 sound_delay 秒不會再播放。
從未播放過的伺服器一律允許。
"""

from typing import Dict, Optional, Protocol
from loguru import logger


class GuildDelaySource(Protocol):
    async def get_guild_delay(self, guild_id: int) -> float: ...


class CooldownGate:
    """
    冷卻閘門

    只記錄「成功播放」的時間；播放失敗不會產生冷卻。
    每個伺服器的時間戳只由該伺服器的工作任務寫入。

    使用方式：
        gate = CooldownGate(store)
        if await gate.allow(guild_id, now):
            ...
            gate.record(guild_id, finished_at)
    """

    def __init__(self, delays: GuildDelaySource):
        self._delays = delays
        self._last_playback: Dict[int, float] = {}

    async def allow(self, guild_id: int, now: float) -> bool:
        """
        判斷現在是否允許播放

        Args:
            guild_id: 伺服器 ID
            now: 目前時間（與 record() 使用同一個時鐘）
        """
        last = self._last_playback.get(guild_id)
        if last is None:
            return True

        try:
            delay = max(0.0, float(await self._delays.get_guild_delay(guild_id)))
        except Exception as e:
            # 讀不到設定時以 0 秒處理，不阻擋播放
            logger.warning(f"[CooldownGate {guild_id}] 讀取 sound_delay 失敗，視為 0: {e}")
            delay = 0.0

        elapsed = now - last
        if elapsed >= delay:
            return True

        logger.debug(f"[CooldownGate {guild_id}] 冷卻中: 已過 {elapsed:.1f}s / {delay:.1f}s")
        return False

    def record(self, guild_id: int, when: float) -> None:
        """記錄一次成功播放"""
        self._last_playback[guild_id] = when

    def last_playback(self, guild_id: int) -> Optional[float]:
        return self._last_playback.get(guild_id)

    def forget(self, guild_id: int) -> None:
        """機器人離開伺服器時清除紀錄"""
        self._last_playback.pop(guild_id, None)
