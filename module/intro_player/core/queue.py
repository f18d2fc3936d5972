"""
加入事件佇列

特性：
- 每個伺服器一個獨立佇列
- 同一時間最多一個事件在處理中（active）
- 同一使用者尚未被處理的事件只保留最新一筆
- 可設定上限，超過時丟棄最舊的等待事件
"""

import asyncio
from collections import deque
from typing import Deque, List, Optional
from loguru import logger

from .models import VoiceJoinEvent


class PlaybackQueue:
    """
    單一伺服器的加入事件佇列

    put() 是同步且不會阻塞的，listener 可以直接呼叫；
    get() 會等待直到有事件，並把它標記為處理中，
    處理完畢後必須呼叫 task_done() 才會放行下一個事件。

    使用方式：
        queue = PlaybackQueue(guild_id=7, max_pending=25)
        queue.put(event)

        event = await queue.get()
        try:
            ...
        finally:
            queue.task_done()
    """

    def __init__(self, guild_id: int, max_pending: Optional[int] = None):
        if max_pending is not None and max_pending < 1:
            raise ValueError("max_pending must be >= 1 or None")
        self.guild_id = guild_id
        self.max_pending = max_pending
        self._pending: Deque[VoiceJoinEvent] = deque()
        self._active: Optional[VoiceJoinEvent] = None
        self._wakeup = asyncio.Event()
        self._dropped = 0

    # === 屬性 ===

    @property
    def active(self) -> Optional[VoiceJoinEvent]:
        """正在處理中的事件"""
        return self._active

    @property
    def is_busy(self) -> bool:
        """是否有事件正在處理"""
        return self._active is not None

    @property
    def pending(self) -> List[VoiceJoinEvent]:
        """等待中的事件（只讀）"""
        return list(self._pending)

    @property
    def dropped(self) -> int:
        """因超過上限被丟棄的事件數量"""
        return self._dropped

    def __len__(self) -> int:
        return len(self._pending)

    # === 新增 / 取出 ===

    def put(self, event: VoiceJoinEvent) -> Optional[VoiceJoinEvent]:
        """
        新增事件到佇列尾端

        同一使用者已有等待中的事件時，舊的會被移除（新的排到尾端）。

        Returns:
            因此被取代或被丟棄的事件，沒有則返回 None
        """
        if event.guild_id != self.guild_id:
            raise ValueError(f"event for guild {event.guild_id} put into queue of {self.guild_id}")

        removed: Optional[VoiceJoinEvent] = None

        for queued in self._pending:
            if queued.user_id == event.user_id:
                removed = queued
                break
        if removed is not None:
            self._pending.remove(removed)
            logger.debug(f"[PlaybackQueue {self.guild_id}] 以新事件取代: {removed.describe()}")

        self._pending.append(event)

        if self.max_pending is not None and len(self._pending) > self.max_pending:
            removed = self._pending.popleft()
            self._dropped += 1
            logger.warning(
                f"[PlaybackQueue {self.guild_id}] 佇列超過上限 {self.max_pending}，"
                f"丟棄最舊事件: {removed.describe()}"
            )

        self._wakeup.set()
        logger.debug(f"[PlaybackQueue {self.guild_id}] 已加入: {event.describe()}，等待中 {len(self._pending)} 筆")
        return removed

    async def wait(self, timeout: Optional[float] = None) -> bool:
        """
        等待直到有事件，但不取出

        Args:
            timeout: 超時時間（秒），None 表示一直等

        Returns:
            是否有事件（超時返回 False）
        """
        while not self._pending:
            self._wakeup.clear()
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                return bool(self._pending)
        return True

    async def get(self) -> VoiceJoinEvent:
        """
        取出下一個事件並標記為處理中

        佇列為空時會等待。
        """
        if self._active is not None:
            raise RuntimeError(f"guild {self.guild_id}: get() called while an event is active")

        await self.wait()
        self._active = self._pending.popleft()
        return self._active

    def task_done(self) -> None:
        """目前事件處理完畢（成功、失敗或略過）"""
        self._active = None

    def clear(self) -> int:
        """
        清空等待中的事件

        Returns:
            被清空的事件數量
        """
        count = len(self._pending)
        self._pending.clear()
        if count:
            logger.debug(f"[PlaybackQueue {self.guild_id}] 已清空 {count} 筆等待事件")
        return count
