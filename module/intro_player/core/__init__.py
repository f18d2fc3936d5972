# Core module
from .models import Guild, Channel, Intro, VoiceJoinEvent
from .state import GuildSessionState, PlaybackOutcome, SessionState
from .queue import PlaybackQueue
from .cooldown import CooldownGate
from .resolver import IntroResolver
from .session import GuildSession
from .manager import SessionManager
from .listener import VoiceEventListener, normalize_voice_update

__all__ = [
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
]
