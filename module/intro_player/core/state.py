"""
伺服器語音狀態追蹤

每個伺服器一份 GuildSessionState，只由該伺服器的 GuildSession 修改。
狀態轉換：
    IDLE → CONNECTING → PLAYING → CONNECTED → （閒置逾時）→ IDLE
    CONNECTING 失敗 → IDLE
    任何狀態收到關閉訊號 → IDLE
"""

import enum
from dataclasses import dataclass, field
from typing import Dict, Optional


class SessionState(enum.Enum):
    """語音連線狀態"""
    IDLE = "idle"                # 沒有語音連線
    CONNECTING = "connecting"    # 握手中
    CONNECTED = "connected"      # 已在頻道，沒有播放
    PLAYING = "playing"          # 正在送出音訊


class PlaybackOutcome(enum.Enum):
    """單一加入事件的處理結果"""
    PLAYED = "played"
    COOLDOWN = "cooldown"                  # 冷卻中，事件被丟棄
    NO_INTRO = "no_intro"                  # 沒有設定入場音效
    ASSET_FAILED = "asset_failed"          # 下載或解碼失敗
    CONNECTION_FAILED = "connection_failed"
    CREDENTIAL_INVALID = "credential_invalid"
    PLAYBACK_FAILED = "playback_failed"    # 播放中途失敗
    CANCELLED = "cancelled"


# 允許的狀態轉換
_TRANSITIONS = {
    SessionState.IDLE: {SessionState.CONNECTING},
    SessionState.CONNECTING: {SessionState.PLAYING, SessionState.IDLE},
    SessionState.CONNECTED: {SessionState.CONNECTING, SessionState.PLAYING, SessionState.IDLE},
    SessionState.PLAYING: {SessionState.CONNECTED, SessionState.IDLE},
}


@dataclass
class GuildSessionState:
    """
    單一伺服器的執行期狀態（不寫入資料庫）

    使用方式：
        state = GuildSessionState(guild_id=7)
        state.transition(SessionState.CONNECTING)
        state.transition(SessionState.PLAYING)
        state.transition(SessionState.CONNECTED)
    """

    guild_id: int
    state: SessionState = SessionState.IDLE
    channel_id: Optional[int] = None
    last_playback: Optional[float] = None

    # 各種結果的次數（給狀態指令與 log 用）
    outcomes: Dict[PlaybackOutcome, int] = field(default_factory=dict, repr=False)

    def transition(self, new_state: SessionState) -> None:
        """
        切換狀態

        Raises:
            ValueError: 不合法的狀態轉換
        """
        if new_state is self.state:
            return
        if new_state not in _TRANSITIONS[self.state]:
            raise ValueError(
                f"guild {self.guild_id}: illegal transition {self.state.value} -> {new_state.value}"
            )
        self.state = new_state

    def force_idle(self) -> None:
        """關閉或被移出伺服器時，無條件回到 IDLE"""
        self.state = SessionState.IDLE
        self.channel_id = None

    def count(self, outcome: PlaybackOutcome) -> None:
        self.outcomes[outcome] = self.outcomes.get(outcome, 0) + 1

    @property
    def is_playing(self) -> bool:
        return self.state is SessionState.PLAYING

    @property
    def is_connected(self) -> bool:
        """是否持有語音連線（含播放中）"""
        return self.state in (SessionState.CONNECTED, SessionState.PLAYING)

    def to_dict(self) -> dict:
        return {
            "guild_id": self.guild_id,
            "state": self.state.value,
            "channel_id": self.channel_id,
            "last_playback": self.last_playback,
            "outcomes": {o.value: n for o, n in self.outcomes.items()},
        }
