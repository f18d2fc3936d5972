"""
入場音效模組

使用者加入語音頻道時，播放他在該頻道設定的入場音效：
- 每個伺服器一個會話，同一時間只播放一個音效
- 同一使用者連續進出只保留最新的加入事件
- 每個伺服器有自己的冷卻時間（sound_delay）
- 遠端音檔下載後快取，同時要求只下載一次
- 閒置一段時間自動離開語音頻道
"""

# Core
from .core.models import Guild, Channel, Intro, VoiceJoinEvent
from .core.state import GuildSessionState, PlaybackOutcome, SessionState
from .core.queue import PlaybackQueue
from .core.cooldown import CooldownGate
from .core.resolver import IntroResolver
from .core.session import GuildSession
from .core.manager import SessionManager
from .core.listener import VoiceEventListener, normalize_voice_update

# Audio
from .audio.cache import AssetCache
from .audio.pipeline import AudioPipeline, FFmpegSourceFactory, clamp_volume

# Downloader
from .downloader import AutoFetcher, HTTPFetcher, YTDLPFetcher

# FFmpeg
from .ffmpeg.manager import FFmpegManager

# Voice
from .voice.discord_transport import DiscordVoiceConnection, DiscordVoiceTransport

# Storage
from .storage import Database, IntroStore

# Auth
from .auth import Credential, CredentialRefresher, DiscordTokenRenewer, Permission

# Settings
from .settings import Settings

# Utils
from .utils.errors import (
    IntroError,
    AudioPipelineError,
    AssetFetchError,
    FetchTimeoutError,
    DecodeError,
    VoiceConnectionError,
    PlaybackError,
    CredentialInvalidError,
    StoreError,
)
from .utils.decorators import contain_errors, log_operation

__all__ = [
    # Core
    "Guild",
    "Channel",
    "Intro",
    "VoiceJoinEvent",
    "GuildSessionState",
    "PlaybackOutcome",
    "SessionState",
    "PlaybackQueue",
    "CooldownGate",
    "IntroResolver",
    "GuildSession",
    "SessionManager",
    "VoiceEventListener",
    "normalize_voice_update",
    # Audio
    "AssetCache",
    "AudioPipeline",
    "FFmpegSourceFactory",
    "clamp_volume",
    # Downloader
    "AutoFetcher",
    "HTTPFetcher",
    "YTDLPFetcher",
    # FFmpeg
    "FFmpegManager",
    # Voice
    "DiscordVoiceConnection",
    "DiscordVoiceTransport",
    # Storage
    "Database",
    "IntroStore",
    # Auth
    "Credential",
    "CredentialRefresher",
    "DiscordTokenRenewer",
    "Permission",
    # Settings
    "Settings",
    # Utils
    "IntroError",
    "AudioPipelineError",
    "AssetFetchError",
    "FetchTimeoutError",
    "DecodeError",
    "VoiceConnectionError",
    "PlaybackError",
    "CredentialInvalidError",
    "StoreError",
    "contain_errors",
    "log_operation",
]
