"""
單一伺服器的語音會話

每個伺服器一個 GuildSession，擁有：
- 該伺服器唯一的語音連線（其他元件不得操作）
- 加入事件佇列（PlaybackQueue）
- 一個長駐的工作任務，依序處理事件

處理單一事件的流程：
    冷卻判斷 → 查詢入場音效 → 打開音源 → 連線 / 換頻道 → 播放
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional, Protocol

import discord
from loguru import logger

from ..constants import IDLE_DISCONNECT_TIMEOUT
from ..utils.decorators import contain_errors
from ..utils.errors import (
    AudioPipelineError,
    CredentialInvalidError,
    PlaybackError,
    VoiceConnectionError,
)
from ..voice.transport import VoiceConnection, VoiceTransport
from .cooldown import CooldownGate
from .models import Intro, VoiceJoinEvent
from .queue import PlaybackQueue
from .resolver import IntroResolver
from .state import GuildSessionState, PlaybackOutcome, SessionState

OutcomeCallback = Callable[[VoiceJoinEvent, PlaybackOutcome], Awaitable[None]]


class AudioSourceOpener(Protocol):
    async def open(self, intro: Intro) -> discord.AudioSource: ...


class BotCredentialStatus(Protocol):
    @property
    def is_bot_credential_valid(self) -> bool: ...

    def invalidate_bot_credential(self, reason: str) -> None: ...


class GuildSession:
    """
    伺服器語音會話

    使用方式：
        session = GuildSession(
            guild_id=7,
            transport=DiscordVoiceTransport(bot),
            pipeline=pipeline,
            resolver=resolver,
            cooldown=cooldown,
        )
        session.enqueue(event)      # 不會阻塞
        ...
        await session.close("shutdown")
    """

    def __init__(
        self,
        guild_id: int,
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
        """
        Args:
            guild_id: 伺服器 ID
            transport: 語音傳輸
            pipeline: 音訊管線
            resolver: 入場音效查詢
            cooldown: 冷卻閘門（所有伺服器共用，但每個伺服器只寫自己的紀錄）
            credentials: 機器人憑證狀態，失效時不會嘗試連線
            idle_timeout: 播放結束後閒置多久離開頻道（秒）
            max_pending: 佇列上限
            clock: 時鐘（測試用）
            on_outcome: 每個事件處理完的回調
        """
        self.guild_id = guild_id
        self.transport = transport
        self.pipeline = pipeline
        self.resolver = resolver
        self.cooldown = cooldown
        self.credentials = credentials
        self.idle_timeout = idle_timeout
        self._clock = clock
        self._on_outcome = on_outcome

        self.queue = PlaybackQueue(guild_id, max_pending=max_pending)
        self.state = GuildSessionState(guild_id)

        self._connection: Optional[VoiceConnection] = None
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    # === 屬性 ===

    @property
    def connection(self) -> Optional[VoiceConnection]:
        return self._connection

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_closed(self) -> bool:
        return self._closed

    # === 對外操作 ===

    def start(self) -> None:
        """啟動工作任務（重複呼叫無作用）"""
        if self._closed:
            raise RuntimeError(f"guild {self.guild_id}: session is closed")
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name=f"guild_session_{self.guild_id}")

    def enqueue(self, event: VoiceJoinEvent) -> None:
        """
        加入事件（不會阻塞）

        會話已關閉時事件直接丟棄
        """
        if self._closed:
            logger.debug(f"[GuildSession {self.guild_id}] 會話已關閉，忽略事件: {event.describe()}")
            return
        self.queue.put(event)
        self.start()

    async def close(self, reason: str = "shutdown") -> None:
        """
        關閉會話並強制回到 IDLE

        進行中的播放會被取消，不會等它播完
        """
        if self._closed:
            return
        self._closed = True

        dropped = self.queue.clear()
        logger.info(f"[GuildSession {self.guild_id}] 關閉會話（{reason}），丟棄 {dropped} 筆等待事件")

        task = self._task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        self._task = None

        await self._drop_connection()
        self.state.force_idle()

    def get_status(self) -> dict:
        """
        取得會話完整狀態
        """
        status = self.state.to_dict()
        status.update({
            "pending": len(self.queue),
            "dropped": self.queue.dropped,
            "running": self.is_running,
        })
        return status

    # === 工作迴圈 ===

    async def _run(self) -> None:
        logger.debug(f"[GuildSession {self.guild_id}] 工作任務啟動")
        while True:
            if not await self._wait_for_event():
                await self._disconnect("閒置逾時")
                continue

            event = await self.queue.get()
            try:
                outcome = await self._process_contained(event)
                if outcome is None:
                    self._recover_state()
                    continue
                self.state.count(outcome)
                if self._on_outcome:
                    await self._notify(event, outcome)
            finally:
                self.queue.task_done()

    async def _wait_for_event(self) -> bool:
        """
        等待下一個事件

        持有語音連線時最多等 idle_timeout 秒，逾時返回 False
        """
        if self._connection is not None and not self._connection.is_connected():
            logger.info(f"[GuildSession {self.guild_id}] 語音連線已被中斷")
            self._connection = None
            self.state.force_idle()

        if self._connection is None:
            return await self.queue.wait()
        return await self.queue.wait(timeout=self.idle_timeout)

    @contain_errors(default=None)
    async def _process_contained(self, event: VoiceJoinEvent) -> Optional[PlaybackOutcome]:
        return await self.process(event)

    async def process(self, event: VoiceJoinEvent) -> PlaybackOutcome:
        """
        處理單一加入事件

        Returns:
            處理結果
        """
        now = self._clock()
        if not await self.cooldown.allow(self.guild_id, now):
            logger.debug(f"[GuildSession {self.guild_id}] 冷卻中，略過: {event.describe()}")
            return PlaybackOutcome.COOLDOWN

        intro = await self.resolver.resolve(event.user_id, event.guild_id, event.channel_id)
        if intro is None:
            logger.debug(f"[GuildSession {self.guild_id}] 沒有入場音效: {event.describe()}")
            return PlaybackOutcome.NO_INTRO

        try:
            source = await self.pipeline.open(intro)
        except AudioPipelineError as e:
            logger.warning(f"[GuildSession {self.guild_id}] 無法開啟 intro {intro.id}: {e.message}")
            return PlaybackOutcome.ASSET_FAILED

        try:
            await self._ensure_connected(event.channel_id)
        except CredentialInvalidError as e:
            self._cleanup_source(source)
            logger.error(f"[GuildSession {self.guild_id}] 憑證失效，無法連線: {e.message}")
            return PlaybackOutcome.CREDENTIAL_INVALID
        except VoiceConnectionError as e:
            self._cleanup_source(source)
            logger.warning(f"[GuildSession {self.guild_id}] 連線失敗，丟棄事件 {event.describe()}: {e.message}")
            return PlaybackOutcome.CONNECTION_FAILED
        except asyncio.CancelledError:
            self._cleanup_source(source)
            raise

        logger.info(f"[GuildSession {self.guild_id}] 播放 intro {intro.id} ({intro.name}) 給 {event.describe()}")
        return await self._play(source)

    # === 連線管理 ===

    async def _ensure_connected(self, channel_id: int) -> None:
        """
        確保連到指定頻道

        Raises:
            CredentialInvalidError: 機器人憑證失效
            VoiceConnectionError: 連線或換頻道失敗
        """
        connection = self._connection
        if connection is not None and not connection.is_connected():
            self._connection = None
            self.state.force_idle()
            connection = None

        if connection is not None:
            if connection.channel_id == channel_id:
                return
            self.state.transition(SessionState.CONNECTING)
            try:
                await connection.move_to(channel_id)
            except VoiceConnectionError:
                await self._drop_connection()
                self.state.force_idle()
                raise
            self.state.channel_id = channel_id
            return

        if self.credentials is not None and not self.credentials.is_bot_credential_valid:
            raise CredentialInvalidError()

        self.state.transition(SessionState.CONNECTING)
        try:
            connection = await self.transport.connect(self.guild_id, channel_id)
        except CredentialInvalidError as e:
            self.state.transition(SessionState.IDLE)
            if self.credentials is not None:
                self.credentials.invalidate_bot_credential(e.message)
            raise
        except VoiceConnectionError:
            self.state.transition(SessionState.IDLE)
            raise
        except asyncio.CancelledError:
            self.state.force_idle()
            raise
        except Exception as e:
            self.state.transition(SessionState.IDLE)
            raise VoiceConnectionError(f"unexpected error while connecting: {e}")

        self._connection = connection
        self.state.channel_id = channel_id
        logger.debug(f"[GuildSession {self.guild_id}] 已連接到頻道 {channel_id}")

    async def _disconnect(self, reason: str) -> None:
        """主動離開語音頻道"""
        if self._connection is None:
            return
        logger.info(f"[GuildSession {self.guild_id}] 離開語音頻道（{reason}）")
        await self._drop_connection()
        self.state.force_idle()

    async def _drop_connection(self) -> None:
        # 斷線完成前保留連線，中途被取消時 close() 會再斷一次
        connection = self._connection
        if connection is None:
            return
        try:
            connection.stop()
            await connection.disconnect()
        except Exception as e:
            logger.warning(f"[GuildSession {self.guild_id}] 斷開語音連接失敗: {e}")
        if self._connection is connection:
            self._connection = None

    # === 播放 ===

    async def _play(self, source: discord.AudioSource) -> PlaybackOutcome:
        connection = self._connection
        self.state.transition(SessionState.PLAYING)

        try:
            await connection.play(source)
        except PlaybackError as e:
            logger.warning(f"[GuildSession {self.guild_id}] 播放中途失敗: {e.message}")
            self._settle_after_playback(connection)
            return PlaybackOutcome.PLAYBACK_FAILED
        except asyncio.CancelledError:
            self._cleanup_source(source)
            raise

        finished_at = self._clock()
        self.cooldown.record(self.guild_id, finished_at)
        self.state.last_playback = finished_at
        self._settle_after_playback(connection)
        return PlaybackOutcome.PLAYED

    def _settle_after_playback(self, connection: VoiceConnection) -> None:
        """播放結束：仍在頻道則回到 CONNECTED，否則 IDLE"""
        if connection.is_connected():
            self.state.transition(SessionState.CONNECTED)
        else:
            self._connection = None
            self.state.force_idle()

    def _recover_state(self) -> None:
        """未預期錯誤後，依實際連線狀態修正狀態機"""
        if self._connection is not None and self._connection.is_connected():
            self.state.state = SessionState.CONNECTED
        else:
            self._connection = None
            self.state.force_idle()

    @staticmethod
    def _cleanup_source(source: discord.AudioSource) -> None:
        try:
            source.cleanup()
        except Exception as e:
            logger.warning(f"清理音源失敗: {e}")

    async def _notify(self, event: VoiceJoinEvent, outcome: PlaybackOutcome) -> None:
        try:
            await self._on_outcome(event, outcome)
        except Exception as e:
            logger.error(f"[GuildSession {self.guild_id}] on_outcome 回調執行失敗: {e}")
