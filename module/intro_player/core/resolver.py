"""
入場音效查詢

大部分使用者沒有設定入場音效，所以「找不到」是正常結果，
查詢失敗也只記錄並當作找不到，不會中斷流程。
"""

from typing import List, Optional, Protocol
from loguru import logger

from .models import Intro


class BindingSource(Protocol):
    async def lookup_bindings(self, user_id: int, guild_id: int, channel_id: int) -> List[Intro]: ...


class IntroResolver:
    """
    依 (使用者, 伺服器, 頻道) 找出要播放的入場音效

    同一組合有多筆設定時，固定選 id 最小的那一筆。
    """

    def __init__(self, bindings: BindingSource):
        self._bindings = bindings

    async def resolve(self, user_id: int, guild_id: int, channel_id: int) -> Optional[Intro]:
        try:
            intros = await self._bindings.lookup_bindings(user_id, guild_id, channel_id)
        except Exception as e:
            logger.error(f"[IntroResolver] 查詢入場音效失敗 ({user_id}, {guild_id}, {channel_id}): {e}")
            return None

        if not intros:
            return None

        if len(intros) > 1:
            logger.debug(
                f"[IntroResolver] ({user_id}, {guild_id}, {channel_id}) 有 {len(intros)} 筆設定，"
                f"使用 id 最小者"
            )
        return min(intros, key=lambda intro: intro.id)
