"""
伺服器會話管理

以伺服器 ID 為 key 保存 GuildSession，
不同伺服器之間不共用任何鎖，也不會互相等待。
"""

import asyncio
import time
from typing import Callable, Dict, List, Optional

from loguru import logger

from ..constants import IDLE_DISCONNECT_TIMEOUT
from ..voice.transport import VoiceTransport
from .cooldown import CooldownGate
from .models import VoiceJoinEvent
from .resolver import IntroResolver
from .session import AudioSourceOpener, BotCredentialStatus, GuildSession, OutcomeCallback


class SessionManager:
    """
    所有伺服器的會話

    使用方式：
        manager = SessionManager(transport, pipeline, resolver, cooldown)
        manager.dispatch(event)              # 不會阻塞
        await manager.remove_guild(guild_id) # 機器人被移出伺服器
        await manager.shutdown()             # 程式結束
    """

    def __init__(
        self,
        transport: VoiceTransport,
        pipeline: AudioSourceOpener,
        resolver: IntroResolver,
        cooldown: CooldownGate,
        credentials: Optional[BotCredentialStatus] = None,
        idle_timeout: float = IDLE_DISCONNECT_TIMEOUT,
        max_pending: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
        on_outcome: Optional[OutcomeCallback] = None,
    ):
        self.transport = transport
        self.pipeline = pipeline
        self.resolver = resolver
        self.cooldown = cooldown
        self.credentials = credentials
        self.idle_timeout = idle_timeout
        self.max_pending = max_pending
        self._clock = clock
        self._on_outcome = on_outcome

        self._sessions: Dict[int, GuildSession] = {}
        self._shutting_down = False

    # === 查詢 ===

    def get(self, guild_id: int) -> Optional[GuildSession]:
        return self._sessions.get(guild_id)

    @property
    def guild_ids(self) -> List[int]:
        return list(self._sessions)

    def __len__(self) -> int:
        return len(self._sessions)

    def get_status(self) -> List[dict]:
        """取得所有會話的狀態"""
        return [session.get_status() for session in self._sessions.values()]

    # === 事件分派 ===

    def dispatch(self, event: VoiceJoinEvent) -> bool:
        """
        把加入事件交給對應伺服器的會話

        Returns:
            是否有交出去（關閉中返回 False）
        """
        if self._shutting_down:
            logger.debug(f"[SessionManager] 關閉中，忽略事件: {event.describe()}")
            return False

        session = self._sessions.get(event.guild_id)
        if session is None or session.is_closed:
            session = self._create_session(event.guild_id)

        session.enqueue(event)
        return True

    def _create_session(self, guild_id: int) -> GuildSession:
        session = GuildSession(
            guild_id=guild_id,
            transport=self.transport,
            pipeline=self.pipeline,
            resolver=self.resolver,
            cooldown=self.cooldown,
            credentials=self.credentials,
            idle_timeout=self.idle_timeout,
            max_pending=self.max_pending,
            clock=self._clock,
            on_outcome=self._on_outcome,
        )
        self._sessions[guild_id] = session
        logger.debug(f"[SessionManager] 建立伺服器會話: {guild_id}")
        return session

    # === 生命週期 ===

    async def remove_guild(self, guild_id: int) -> bool:
        """
        機器人被移出伺服器：取消佇列並強制回到 IDLE

        Returns:
            是否有會話被關閉
        """
        session = self._sessions.pop(guild_id, None)
        self.cooldown.forget(guild_id)
        if session is None:
            return False
        await session.close("removed from guild")
        return True

    async def shutdown(self) -> int:
        """
        關閉所有會話（進行中的播放會被取消）

        Returns:
            被關閉的會話數量
        """
        self._shutting_down = True
        sessions = list(self._sessions.values())
        self._sessions.clear()

        results = await asyncio.gather(
            *(session.close("shutdown") for session in sessions),
            return_exceptions=True,
        )
        for session, result in zip(sessions, results):
            if isinstance(result, Exception):
                logger.error(f"[SessionManager] 關閉伺服器 {session.guild_id} 失敗: {result}")

        logger.info(f"[SessionManager] 已關閉 {len(sessions)} 個伺服器會話")
        return len(sessions)
